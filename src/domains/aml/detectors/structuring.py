"""Structuring: payments kept just under the reporting threshold."""

from ..models import AMLTransaction, PatternType, SuspiciousActivity, WindowEntry
from ..scoring import clamp_score
from .base import DetectionContext, PatternDetector


class StructuringDetector(PatternDetector):
    """Fires when the last 24h hold enough near-threshold payments and their
    total reaches the daily aggregate."""

    detector_id = "structuring"
    pattern_type = PatternType.STRUCTURING
    window_family = "structuring"

    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        cfg = context.config.structuring
        key = context.window_key(self.window_family, transaction.entity_id)

        await context.store.append(
            key, WindowEntry.from_transaction(transaction), cfg.window_hours * 3600
        )
        entries = await context.store.range_since(key, context.window_start_ms(cfg.window_hours))

        # The current entry may be missing if a concurrent read raced the append
        if len(entries) < cfg.min_transactions:
            return None

        total_amount = sum(e.amount for e in entries)
        band_low = cfg.single_threshold * cfg.near_threshold_ratio
        below_threshold_count = sum(
            1 for e in entries if band_low <= e.amount < cfg.single_threshold
        )

        if total_amount < cfg.daily_aggregate or below_threshold_count < cfg.min_transactions:
            return None

        risk_score = clamp_score(
            (total_amount / cfg.daily_aggregate) * 50
            + (below_threshold_count / len(entries)) * 50
        )

        return self._activity(
            transaction,
            risk_score=risk_score,
            confidence=cfg.confidence,
            threshold=cfg.daily_aggregate,
            actual_value=total_amount,
            evidence={
                "total_amount": total_amount,
                "transaction_count": len(entries),
                "below_threshold_count": below_threshold_count,
                "time_window": f"{cfg.window_hours} hours",
                "transactions": [{"id": e.id, "amount": e.amount} for e in entries],
            },
        )
