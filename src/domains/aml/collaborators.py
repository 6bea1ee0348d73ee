"""External collaborators consumed by the AML engine.

- Isolation service: confirms the tenant/card context before any detector runs.
- Transaction history: read-only, time-bounded history for rapid movement.
- Fraud correlation: best-effort cross-signal sharing.

Each collaborator is an ABC with an HTTP (httpx) or SQL (SQLAlchemy)
implementation. Implementations translate transport failures into the
domain errors in ``errors.py``; the engine decides which of those are fatal.
"""

from abc import ABC, abstractmethod
from datetime import datetime

import httpx
import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models import PaymentTransaction

from .errors import FraudCorrelationError, HistoryServiceError, IsolationError
from .models import FraudResult, FraudView, HistoryRecord

logger = structlog.get_logger()


class IsolationService(ABC):
    @abstractmethod
    async def enforce_isolation(self, entity_id: str) -> None:
        """Raise ``IsolationError`` unless the entity's context is isolated."""
        ...


class TransactionHistoryService(ABC):
    @abstractmethod
    async def recent_transactions(self, entity_id: str, since: datetime) -> list[HistoryRecord]:
        ...


class FraudCorrelationService(ABC):
    @abstractmethod
    async def analyze_transaction(self, view: FraudView) -> FraudResult: ...


class HttpIsolationService(IsolationService):
    """Calls ``POST {base_url}/isolation/enforce`` for the entity's context hash."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def enforce_isolation(self, entity_id: str) -> None:
        try:
            response = await self._client.post(
                "/isolation/enforce", json={"card_context_hash": entity_id}
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            logger.error("isolation_enforcement_failed", entity_id=entity_id, error=str(exc))
            raise IsolationError(entity_id, "isolation service unavailable") from exc
        except ValueError as exc:
            raise IsolationError(entity_id, "malformed isolation response") from exc

        if not body.get("verified", False):
            logger.error("isolation_verification_failed", entity_id=entity_id)
            raise IsolationError(entity_id, "isolation verification failed")


class HttpFraudCorrelationService(FraudCorrelationService):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def analyze_transaction(self, view: FraudView) -> FraudResult:
        try:
            response = await self._client.post(
                "/fraud/analyze", content=view.model_dump_json(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            return FraudResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise FraudCorrelationError(f"fraud correlation for {view.id} failed") from exc


class SqlTransactionHistoryService(TransactionHistoryService):
    """Reads ``payment_transactions`` rows for one card context since a timestamp."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def recent_transactions(self, entity_id: str, since: datetime) -> list[HistoryRecord]:
        stmt = (
            select(
                PaymentTransaction.transaction_id,
                PaymentTransaction.amount,
                PaymentTransaction.created_at,
                PaymentTransaction.transaction_type,
            )
            .where(
                PaymentTransaction.card_context_hash == entity_id,
                PaymentTransaction.created_at >= since,
            )
            .order_by(PaymentTransaction.created_at.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            logger.warning("history_query_failed", entity_id=entity_id, error=str(exc))
            raise HistoryServiceError(f"history query for {entity_id} failed") from exc

        return [
            HistoryRecord(
                id=row.transaction_id,
                amount=row.amount,
                created_at=row.created_at,
                transaction_type=row.transaction_type,
            )
            for row in rows
        ]
