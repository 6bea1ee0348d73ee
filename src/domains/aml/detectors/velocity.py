"""Velocity: abnormal transaction count or volume in the last hour."""

from ..models import AMLTransaction, PatternType, SuspiciousActivity, WindowEntry
from ..scoring import clamp_score
from .base import DetectionContext, PatternDetector


class VelocityDetector(PatternDetector):
    """Hard numeric trigger on hourly count or hourly amount."""

    detector_id = "unusual_velocity"
    pattern_type = PatternType.UNUSUAL_VELOCITY
    window_family = "velocity"

    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        cfg = context.config.velocity
        key = context.window_key(self.window_family, transaction.entity_id)

        await context.store.append(
            key, WindowEntry.from_transaction(transaction), cfg.window_hours * 3600
        )
        entries = await context.store.range_since(key, context.window_start_ms(cfg.window_hours))

        hourly_count = len(entries)
        hourly_amount = sum(e.amount for e in entries)

        if hourly_count <= cfg.hourly_limit and hourly_amount <= cfg.amount_per_hour:
            return None

        count_risk = (hourly_count / cfg.hourly_limit) * 50
        amount_risk = (hourly_amount / cfg.amount_per_hour) * 50

        return self._activity(
            transaction,
            risk_score=clamp_score(max(count_risk, amount_risk)),
            confidence=cfg.confidence,
            threshold=max(cfg.hourly_limit, cfg.amount_per_hour),
            actual_value=max(hourly_count, hourly_amount),
            evidence={
                "hourly_count": hourly_count,
                "hourly_amount": hourly_amount,
                "count_limit": cfg.hourly_limit,
                "amount_limit": cfg.amount_per_hour,
            },
        )
