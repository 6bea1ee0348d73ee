"""Tests for the AML engine orchestration and failure policy."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.domains.aml.cache import InMemoryAnalysisCache
from src.domains.aml.config import AMLConfig
from src.domains.aml.detectors import ALL_DETECTORS, PatternDetector
from src.domains.aml.engine import AMLMonitoringEngine
from src.domains.aml.errors import AnalysisCacheError, IsolationError, WindowStoreError
from src.domains.aml.models import (
    FraudResult,
    PatternType,
    RecommendedAction,
    RiskLevel,
    WindowEntry,
)
from src.domains.aml.window_store import InMemoryTimeWindowStore
from tests.conftest import ENTITY, NOW, make_transaction, minutes_ago


def _entry(entry_id, amount, timestamp) -> WindowEntry:
    return WindowEntry(id=entry_id, amount=amount, timestamp_ms=int(timestamp.timestamp() * 1000))


class FailingFamilyStore(InMemoryTimeWindowStore):
    """Simulates an outage that only affects one detector family's keys."""

    def __init__(self, family: str) -> None:
        super().__init__()
        self._family = family

    async def append(self, key, entry, expiry_seconds):
        if f":{self._family}:" in key:
            raise WindowStoreError(f"{key} unavailable")
        await super().append(key, entry, expiry_seconds)

    async def range_since(self, key, since_ms):
        if f":{self._family}:" in key:
            raise WindowStoreError(f"{key} unavailable")
        return await super().range_since(key, since_ms)


class SlowDetector(PatternDetector):
    detector_id = "slow"
    pattern_type = PatternType.STRUCTURING

    async def evaluate(self, transaction, context):
        await asyncio.sleep(5)
        return None


class BlockingDetector(PatternDetector):
    detector_id = "blocking"
    pattern_type = PatternType.STRUCTURING

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.cancelled = False

    async def evaluate(self, transaction, context):
        self.started.set()
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return None


class BrokenDetector(PatternDetector):
    detector_id = "broken"
    pattern_type = PatternType.STRUCTURING

    async def evaluate(self, transaction, context):
        raise RuntimeError("bug in detector")


def _engine(store=None, cache=None, isolation=None, history=None, **kwargs):
    if isolation is None:
        isolation = AsyncMock()
    if history is None:
        history = AsyncMock()
        history.recent_transactions = AsyncMock(return_value=[])
    return AMLMonitoringEngine(
        store=store if store is not None else InMemoryTimeWindowStore(),
        cache=cache if cache is not None else InMemoryAnalysisCache(),
        isolation=isolation,
        history=history,
        clock=lambda: NOW,
        **kwargs,
    )


class TestAnalyzeTransaction:
    @pytest.mark.asyncio
    async def test_clean_transaction(self, engine, isolation):
        result = await engine.analyze_transaction(make_transaction())

        isolation.enforce_isolation.assert_awaited_once_with(ENTITY)
        assert result.entity_id == ENTITY
        assert result.suspicious_activities == []
        assert result.overall_risk_score == 0
        assert result.risk_level == RiskLevel.LOW
        assert result.recommended_action == RecommendedAction.NONE
        assert result.config_version == AMLConfig().version

    @pytest.mark.asyncio
    async def test_high_risk_merchant_result(self, engine):
        result = await engine.analyze_transaction(make_transaction(merchant_category="7995"))

        assert result.pattern_types == ["high_risk_merchant"]
        assert result.overall_risk_score == 48
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.recommended_action == RecommendedAction.MONITOR

    @pytest.mark.asyncio
    async def test_isolation_failure_is_fatal(self, engine, isolation, store):
        isolation.enforce_isolation.side_effect = IsolationError(ENTITY)

        with pytest.raises(IsolationError):
            await engine.analyze_transaction(make_transaction(amount=1_000))

        # No detector ran
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unexpected_isolation_error_is_wrapped(self, engine, isolation):
        isolation.enforce_isolation.side_effect = ConnectionError("refused")

        with pytest.raises(IsolationError) as exc_info:
            await engine.analyze_transaction(make_transaction())
        assert exc_info.value.entity_id == ENTITY

    @pytest.mark.asyncio
    async def test_repeat_call_within_ttl_is_identical(self, engine, store):
        first = await engine.analyze_transaction(make_transaction(amount=1_000))
        second = await engine.analyze_transaction(make_transaction(amount=1_000))

        assert second == first
        assert second.model_dump_json() == first.model_dump_json()
        # Second call was served from cache and did not append
        velocity = await store.range_since(f"aml:velocity:{ENTITY}", 0)
        assert len(velocity) == 1

    @pytest.mark.asyncio
    async def test_isolation_checked_even_on_cache_hit(self, engine, isolation):
        await engine.analyze_transaction(make_transaction())
        await engine.analyze_transaction(make_transaction())
        assert isolation.enforce_isolation.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_cache_recomputes(self, isolation):
        clock = {"t": 0.0}
        cache = InMemoryAnalysisCache(clock=lambda: clock["t"])
        engine = _engine(cache=cache, isolation=isolation)

        first = await engine.analyze_transaction(make_transaction())
        clock["t"] = 301.0
        second = await engine.analyze_transaction(make_transaction(merchant_category="7995"))

        assert first.overall_risk_score == 0
        assert second.overall_risk_score == 48

    @pytest.mark.asyncio
    async def test_results_follow_detector_order(self, store, engine):
        for i in range(10):
            await store.append(
                f"aml:velocity:{ENTITY}", _entry(f"prior-{i}", 1, minutes_ago(30 + i)), 3600
            )
        result = await engine.analyze_transaction(
            make_transaction(amount=1_000, merchant_category="7995")
        )
        assert result.pattern_types == ["unusual_velocity", "high_risk_merchant"]


class TestFailOpen:
    @pytest.mark.asyncio
    async def test_one_store_family_down_still_completes(self):
        store = FailingFamilyStore("structuring")
        engine = _engine(store=store)

        # Four prior round amounts so the fifth fires
        for i in range(4):
            await store.append(
                f"aml:round:{ENTITY}",
                _entry(f"r-{i}", 1_000, minutes_ago(60 + i)),
                172_800,
            )

        result = await engine.analyze_transaction(
            make_transaction(amount=8_500, merchant_category="7995")
        )

        assert "structuring" not in result.pattern_types
        assert result.pattern_types == ["high_risk_merchant", "round_amount_pattern"]
        assert 0 <= result.overall_risk_score <= 100
        assert result.overall_risk_score == 46

    @pytest.mark.asyncio
    async def test_empty_store_passed_in_is_the_one_used(self):
        store = InMemoryTimeWindowStore()
        engine = _engine(store=store)

        await engine.analyze_transaction(make_transaction(amount=1_000))

        assert len(store) > 0
        assert await store.range_since(f"aml:velocity:{ENTITY}", 0)

    @pytest.mark.asyncio
    async def test_broken_detector_is_no_finding(self):
        engine = _engine(detectors=[BrokenDetector(), *ALL_DETECTORS])
        result = await engine.analyze_transaction(make_transaction(merchant_category="7995"))
        assert result.pattern_types == ["high_risk_merchant"]

    @pytest.mark.asyncio
    async def test_slow_detector_times_out(self):
        config = AMLConfig()
        config.execution.detector_timeout_seconds = 0.05
        config.execution.analysis_timeout_seconds = 0.2
        engine = _engine(config=config, detectors=[SlowDetector(), *ALL_DETECTORS])

        result = await asyncio.wait_for(
            engine.analyze_transaction(make_transaction(merchant_category="7995")), timeout=2
        )
        assert result.pattern_types == ["high_risk_merchant"]

    @pytest.mark.asyncio
    async def test_overall_deadline_cancels_stragglers(self):
        config = AMLConfig()
        config.execution.detector_timeout_seconds = 10
        config.execution.analysis_timeout_seconds = 0.05
        engine = _engine(config=config, detectors=[SlowDetector(), *ALL_DETECTORS])

        result = await asyncio.wait_for(
            engine.analyze_transaction(make_transaction(merchant_category="7995")), timeout=2
        )
        assert result.pattern_types == ["high_risk_merchant"]

    @pytest.mark.asyncio
    async def test_cache_read_failure_is_a_miss(self):
        cache = AsyncMock(spec=InMemoryAnalysisCache)
        cache.get.side_effect = AnalysisCacheError("read failed")
        engine = _engine(cache=cache)

        result = await engine.analyze_transaction(make_transaction(merchant_category="7995"))

        assert result.overall_risk_score == 48
        cache.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns(self):
        cache = AsyncMock(spec=InMemoryAnalysisCache)
        cache.get.return_value = None
        cache.set.side_effect = AnalysisCacheError("write failed")
        engine = _engine(cache=cache)

        result = await engine.analyze_transaction(make_transaction())
        assert result.overall_risk_score == 0

    @pytest.mark.asyncio
    async def test_caller_cancellation_waits_for_detectors(self):
        config = AMLConfig()
        config.execution.detector_timeout_seconds = 10
        config.execution.analysis_timeout_seconds = 10
        detector = BlockingDetector()
        engine = _engine(config=config, detectors=[detector])

        call = asyncio.create_task(engine.analyze_transaction(make_transaction()))
        await asyncio.wait_for(detector.started.wait(), timeout=1)
        call.cancel()

        with pytest.raises(asyncio.CancelledError):
            await call
        assert detector.cancelled is True


class TestShareWithFraudService:
    @pytest.mark.asyncio
    async def test_not_configured(self, engine):
        assert await engine.share_with_fraud_service(make_transaction()) is None

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        fraud = AsyncMock()
        fraud.analyze_transaction.side_effect = RuntimeError("fraud service down")
        engine = _engine(fraud_service=fraud)

        assert await engine.share_with_fraud_service(make_transaction()) is None

    @pytest.mark.asyncio
    async def test_sends_isolated_view(self):
        fraud = AsyncMock()
        fraud.analyze_transaction.return_value = FraudResult(
            risk_score=82, risk_level=RiskLevel.HIGH, recommended_action="alert"
        )
        engine = _engine(fraud_service=fraud)
        txn = make_transaction(merchant_category="7995")

        result = await engine.share_with_fraud_service(txn)

        assert result.risk_level == RiskLevel.HIGH
        view = fraud.analyze_transaction.await_args.args[0]
        assert view.card_id == ENTITY
        assert view.id == txn.transaction_id


class TestClose:
    @pytest.mark.asyncio
    async def test_close_runs_every_closer(self):
        first = AsyncMock()
        second = AsyncMock(side_effect=RuntimeError("already closed"))
        third = AsyncMock()
        engine = _engine(closers=[first, second, third])

        await engine.close()

        first.assert_awaited_once()
        third.assert_awaited_once()
