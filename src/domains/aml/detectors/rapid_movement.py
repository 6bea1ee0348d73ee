"""Rapid movement: funds entering and leaving within minutes."""

from datetime import timedelta

from ..models import AMLTransaction, HistoryRecord, PatternType, SuspiciousActivity
from ..scoring import clamp_score, round_half_up
from .base import DetectionContext, PatternDetector


def average_minutes_between(records: list[HistoryRecord]) -> int:
    """Mean inter-arrival time across the records' sorted timestamps, in whole minutes."""
    if len(records) < 2:
        return 0
    times = sorted(r.created_at for r in records)
    intervals = []
    for i in range(1, len(times)):
        intervals.append((times[i] - times[i - 1]).total_seconds())
    return round_half_up(sum(intervals) / len(intervals) / 60.0)


class RapidMovementDetector(PatternDetector):
    """Reads the transaction history service, not the window store."""

    detector_id = "rapid_movement"
    pattern_type = PatternType.RAPID_MOVEMENT

    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        if context.history is None:
            return None

        cfg = context.config.rapid_movement
        since = context.now - timedelta(minutes=cfg.time_window_minutes)
        records = await context.history.recent_transactions(transaction.entity_id, since)

        if len(records) < cfg.min_transactions:
            return None

        total_amount = sum(abs(r.amount) for r in records)
        avg_between = average_minutes_between(records)

        if total_amount < cfg.amount_threshold or avg_between >= cfg.max_avg_minutes_between:
            return None

        amount_term = (total_amount / cfg.amount_threshold) * 60
        if avg_between > 0:
            risk_score = clamp_score(amount_term + (cfg.max_avg_minutes_between / avg_between) * 40)
        else:
            # Average rounds to zero minutes: the timing term is unbounded
            risk_score = 100

        return self._activity(
            transaction,
            risk_score=risk_score,
            confidence=cfg.confidence,
            threshold=cfg.amount_threshold,
            actual_value=total_amount,
            evidence={
                "total_amount": total_amount,
                "transaction_count": len(records),
                "avg_time_between_minutes": avg_between,
                "time_window": f"{cfg.time_window_minutes} minutes",
            },
        )
