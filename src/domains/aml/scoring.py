"""Score arithmetic shared by detectors and the aggregator."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive scores."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float, low: int = 0, high: int = 100) -> int:
    """Clamp to ``[low, high]`` and round to an integer score."""
    if math.isnan(value):
        return low
    if math.isinf(value):
        return high if value > 0 else low
    return max(low, min(high, round_half_up(value)))
