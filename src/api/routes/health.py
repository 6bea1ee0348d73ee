"""Health and readiness endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    from src.main import get_uptime

    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": get_uptime(),
    }


async def _check_redis() -> bool:
    client = Redis.from_url(settings.redis_url)
    try:
        await client.ping()
        return True
    except (RedisError, OSError):
        return False
    finally:
        await client.aclose()


@router.get("/ready")
async def ready() -> JSONResponse:
    from src.db.database import check_db

    # Windows and cache live in Redis; without it every detector fails open
    redis_ok = await _check_redis()
    db_ok = await check_db()

    status_code = 200 if redis_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if redis_ok and db_ok else "degraded",
            "redis": redis_ok,
            "database": db_ok,
        },
    )
