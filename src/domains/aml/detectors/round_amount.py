"""Round-amount clustering, independent of the structuring threshold."""

from ..config import RoundAmountConfig
from ..models import AMLTransaction, PatternType, SuspiciousActivity, WindowEntry
from .base import DetectionContext, PatternDetector


def is_round_amount(amount: int, config: RoundAmountConfig) -> bool:
    return (
        any(amount % divisor == 0 for divisor in config.round_divisors)
        or amount in config.common_round_amounts
    )


class RoundAmountDetector(PatternDetector):
    """Only round amounts enter the window; fires once it holds enough of them."""

    detector_id = "round_amount_pattern"
    pattern_type = PatternType.ROUND_AMOUNT_PATTERN
    window_family = "round"

    async def evaluate(
        self,
        transaction: AMLTransaction,
        context: DetectionContext,
    ) -> SuspiciousActivity | None:
        cfg = context.config.round_amount
        if not is_round_amount(transaction.amount, cfg):
            return None

        key = context.window_key(self.window_family, transaction.entity_id)
        await context.store.append(
            key, WindowEntry.from_transaction(transaction), cfg.window_hours * 3600
        )
        entries = await context.store.range_since(key, context.window_start_ms(cfg.window_hours))

        if len(entries) < cfg.threshold_count:
            return None

        amounts = [e.amount for e in entries]
        total_amount = sum(amounts)

        return self._activity(
            transaction,
            risk_score=cfg.risk_score,
            confidence=cfg.confidence,
            threshold=cfg.threshold_count,
            actual_value=len(entries),
            evidence={
                "round_transaction_count": len(entries),
                "total_amount": total_amount,
                "avg_amount": total_amount / len(entries),
                "time_window": f"{cfg.window_hours} hours",
                "amounts": amounts,
            },
        )
