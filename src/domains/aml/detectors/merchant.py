"""High-risk merchant category detection."""

from ..models import AMLTransaction, PatternType, SuspiciousActivity
from .base import DetectionContext, PatternDetector


class HighRiskMerchantDetector(PatternDetector):
    """Fires on any MCC in the denylist. No window, no history."""

    detector_id = "high_risk_merchant"
    pattern_type = PatternType.HIGH_RISK_MERCHANT

    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        cfg = context.config.high_risk_merchant
        if transaction.merchant_category not in cfg.high_risk_mccs:
            return None

        # Binary trigger: threshold and actual value are both 1
        return self._activity(
            transaction,
            risk_score=cfg.risk_score,
            confidence=cfg.confidence,
            threshold=1,
            actual_value=1,
            evidence={
                "merchant_category": transaction.merchant_category,
                "merchant_name": transaction.merchant_name,
                "amount": transaction.amount,
            },
        )
