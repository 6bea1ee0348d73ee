"""Abstract base class for AML pattern detectors."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from ..collaborators import TransactionHistoryService
from ..config import AMLConfig
from ..errors import HistoryServiceError, WindowStoreError
from ..models import AMLTransaction, PatternType, SuspiciousActivity
from ..window_store import TimeWindowStore, window_key

logger = structlog.get_logger()


@dataclass
class DetectionContext:
    """Everything a detector may touch during one analysis.

    ``now`` anchors every sliding window for the call, so all detectors agree
    on where "the last N hours" starts.
    """

    store: TimeWindowStore
    config: AMLConfig
    history: TransactionHistoryService | None = None
    now: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def now_ms(self) -> int:
        return int(self.now.timestamp() * 1000)

    def window_start_ms(self, hours: float) -> int:
        return self.now_ms - int(hours * 3600 * 1000)

    def window_key(self, family: str, entity_id: str) -> str:
        return window_key(self.config.key_prefix, family, entity_id)


class PatternDetector(ABC):
    """Base class for all detectors.

    Detectors are independent: none reads another's output, and the windowed
    ones each own a separate key family in the store. Infrastructure failures
    degrade to "no finding" here; anything else propagates to the engine's
    per-detector boundary.
    """

    detector_id: str
    pattern_type: PatternType

    async def detect(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        try:
            return await self.evaluate(transaction, context)
        except (WindowStoreError, HistoryServiceError) as exc:
            logger.warning(
                "detector_infrastructure_error",
                detector_id=self.detector_id,
                entity_id=transaction.entity_id,
                transaction_id=transaction.transaction_id,
                error=str(exc),
            )
            return None

    @abstractmethod
    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        """Evaluate this pattern and return a finding, or None."""
        ...

    def _activity(
        self,
        transaction: AMLTransaction,
        risk_score: int,
        confidence: float,
        threshold: float,
        actual_value: float,
        evidence: dict | None = None,
    ) -> SuspiciousActivity:
        """Convenience: build a finding for this detector."""
        activity = SuspiciousActivity(
            activity_id=str(uuid.uuid4()),
            entity_id=transaction.entity_id,
            pattern_type=self.pattern_type,
            risk_score=risk_score,
            confidence=confidence,
            detected_at=datetime.now(UTC),
            evidence=evidence or {},
            threshold=threshold,
            actual_value=actual_value,
        )
        logger.info(
            "suspicious_pattern_detected",
            detector_id=self.detector_id,
            entity_id=transaction.entity_id,
            transaction_id=transaction.transaction_id,
            risk_score=risk_score,
            actual_value=actual_value,
            threshold=threshold,
        )
        return activity
