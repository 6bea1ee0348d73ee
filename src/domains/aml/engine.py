"""AML analysis pipeline: isolation -> cache -> detectors -> aggregate -> cache."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import httpx
import structlog

from .aggregator import RiskAggregator
from .cache import AnalysisCache, RedisAnalysisCache
from .collaborators import (
    FraudCorrelationService,
    HttpFraudCorrelationService,
    HttpIsolationService,
    IsolationService,
    SqlTransactionHistoryService,
    TransactionHistoryService,
)
from .config import AMLConfig, default_config
from .detectors import ALL_DETECTORS, DetectionContext, PatternDetector
from .errors import AnalysisCacheError, IsolationError
from .models import (
    AMLAnalysisResult,
    AMLTransaction,
    FraudResult,
    FraudView,
    RiskLevel,
    SuspiciousActivity,
)
from .window_store import RedisTimeWindowStore, TimeWindowStore

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AMLMonitoringEngine:
    """Single entry point for transaction AML analysis.

    ``analyze_transaction`` is idempotent within the cache TTL: repeat calls
    for the same entity return the cached result unchanged, so retries and
    duplicate webhooks do not recompute or re-append.

    Failure policy:
    - isolation failures are fatal and propagate as ``IsolationError``
    - window-store / history failures make that detector report no finding
    - detectors that miss the deadline report no finding
    - cache failures behave as a miss
    """

    def __init__(
        self,
        store: TimeWindowStore,
        cache: AnalysisCache,
        isolation: IsolationService,
        history: TransactionHistoryService | None = None,
        fraud_service: FraudCorrelationService | None = None,
        config: AMLConfig | None = None,
        detectors: list[PatternDetector] | None = None,
        clock: Callable[[], datetime] = _utc_now,
        closers: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._isolation = isolation
        self._history = history
        self._fraud_service = fraud_service
        self._config = config or default_config
        self._detectors = list(detectors if detectors is not None else ALL_DETECTORS)
        self._aggregator = RiskAggregator(config=self._config)
        self._clock = clock
        self._closers = closers or []
        logger.info(
            "aml_engine_initialized",
            detector_count=len(self._detectors),
            config_version=self._config.version,
        )

    @property
    def config(self) -> AMLConfig:
        return self._config

    @property
    def detectors(self) -> list[PatternDetector]:
        return list(self._detectors)

    async def analyze_transaction(self, transaction: AMLTransaction) -> AMLAnalysisResult:
        """Analyze one transaction for suspicious AML patterns."""
        # 1. Tenant isolation is a correctness boundary: never fail open
        await self._enforce_isolation(transaction)

        # 2. Serve a fresh cached analysis if one exists
        cached = await self._get_cached(transaction.entity_id)
        if cached is not None:
            logger.info(
                "aml_analysis_cache_hit",
                entity_id=transaction.entity_id,
                transaction_id=transaction.transaction_id,
                overall_risk_score=cached.overall_risk_score,
            )
            return cached

        # 3. Fan out to all detectors
        context = DetectionContext(
            store=self._store,
            config=self._config,
            history=self._history,
            now=self._clock(),
        )
        activities = await self._run_detectors(transaction, context)

        # 4. Aggregate
        result = self._aggregator.aggregate(transaction.entity_id, activities)

        # 5. Cache (best-effort)
        await self._set_cached(transaction.entity_id, result)

        logger.info(
            "aml_analysis_completed",
            entity_id=transaction.entity_id,
            transaction_id=transaction.transaction_id,
            overall_risk_score=result.overall_risk_score,
            risk_level=result.risk_level.value,
            recommended_action=result.recommended_action.value,
            patterns=result.pattern_types,
            config_version=result.config_version,
        )
        return result

    async def share_with_fraud_service(self, transaction: AMLTransaction) -> FraudResult | None:
        """Best-effort cross-signal correlation. Failures are logged, never raised."""
        if self._fraud_service is None:
            return None

        try:
            fraud_result = await self._fraud_service.analyze_transaction(
                FraudView.from_transaction(transaction)
            )
        except Exception:
            logger.exception(
                "fraud_correlation_failed",
                transaction_id=transaction.transaction_id,
            )
            return None

        if fraud_result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.info(
                "fraud_risk_correlated",
                transaction_id=transaction.transaction_id,
                fraud_risk_score=fraud_result.risk_score,
                fraud_risk_level=fraud_result.risk_level.value,
            )
        return fraud_result

    async def close(self) -> None:
        for closer in self._closers:
            with contextlib.suppress(Exception):
                await closer()
        logger.info("aml_engine_closed")

    async def _enforce_isolation(self, transaction: AMLTransaction) -> None:
        try:
            await self._isolation.enforce_isolation(transaction.entity_id)
        except IsolationError:
            logger.error(
                "aml_isolation_rejected",
                entity_id=transaction.entity_id,
                transaction_id=transaction.transaction_id,
            )
            raise
        except Exception as exc:
            logger.exception(
                "aml_isolation_error",
                entity_id=transaction.entity_id,
                transaction_id=transaction.transaction_id,
            )
            raise IsolationError(transaction.entity_id, str(exc) or type(exc).__name__) from exc

    async def _get_cached(self, entity_id: str) -> AMLAnalysisResult | None:
        try:
            return await self._cache.get(entity_id)
        except AnalysisCacheError as exc:
            logger.warning("analysis_cache_read_failed", entity_id=entity_id, error=str(exc))
            return None

    async def _set_cached(self, entity_id: str, result: AMLAnalysisResult) -> None:
        try:
            await self._cache.set(entity_id, result, self._config.cache.analysis_ttl_seconds)
        except AnalysisCacheError as exc:
            logger.warning("analysis_cache_write_failed", entity_id=entity_id, error=str(exc))

    async def _run_detector(
        self,
        detector: PatternDetector,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        """Error and timeout boundary around one detector."""
        try:
            return await asyncio.wait_for(
                detector.detect(transaction, context),
                timeout=self._config.execution.detector_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "detector_timed_out",
                detector_id=detector.detector_id,
                transaction_id=transaction.transaction_id,
            )
        except Exception:
            logger.exception(
                "detector_failed",
                detector_id=detector.detector_id,
                transaction_id=transaction.transaction_id,
            )
        return None

    async def _run_detectors(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> list[SuspiciousActivity]:
        tasks = [
            asyncio.create_task(
                self._run_detector(detector, transaction, context),
                name=f"aml-{detector.detector_id}",
            )
            for detector in self._detectors
        ]
        if not tasks:
            return []
        try:
            done, pending = await asyncio.wait(
                tasks, timeout=self._config.execution.analysis_timeout_seconds
            )
        finally:
            stragglers = [task for task in tasks if not task.done()]
            for task in stragglers:
                task.cancel()
            # Cancelled tasks must finish unwinding before this call returns or raises
            if stragglers:
                await asyncio.gather(*stragglers, return_exceptions=True)

        if pending:
            logger.warning(
                "aml_analysis_deadline_exceeded",
                transaction_id=transaction.transaction_id,
                pending=[task.get_name() for task in pending],
            )

        # Keep detector order so results are deterministic
        activities: list[SuspiciousActivity] = []
        for task in tasks:
            if task in done and not task.cancelled():
                activity = task.result()
                if activity is not None:
                    activities.append(activity)
        return activities

    @classmethod
    def from_settings(cls, settings, config: AMLConfig | None = None) -> "AMLMonitoringEngine":
        """Wire the production collaborators: Redis, HTTP services, and the history DB."""
        from redis.asyncio import Redis

        from src.db.database import async_session_factory, engine as db_engine

        redis = Redis.from_url(settings.redis_url)
        cfg = config or AMLConfig.from_env()
        timeout = httpx.Timeout(settings.collaborator_timeout_seconds)

        isolation_client = httpx.AsyncClient(
            base_url=settings.isolation_service_url, timeout=timeout
        )
        closers = [redis.aclose, isolation_client.aclose, db_engine.dispose]

        fraud_service = None
        if settings.fraud_service_url:
            fraud_client = httpx.AsyncClient(base_url=settings.fraud_service_url, timeout=timeout)
            fraud_service = HttpFraudCorrelationService(fraud_client)
            closers.append(fraud_client.aclose)

        return cls(
            store=RedisTimeWindowStore(redis),
            cache=RedisAnalysisCache(redis, key_prefix=cfg.key_prefix),
            isolation=HttpIsolationService(isolation_client),
            history=SqlTransactionHistoryService(async_session_factory),
            fraud_service=fraud_service,
            config=cfg,
            closers=closers,
        )
