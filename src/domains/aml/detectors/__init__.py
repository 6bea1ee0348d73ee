"""AML pattern detectors package.

Exports ALL_DETECTORS (one instance of each detector, in result order) and the
individual detector classes for direct use.
"""

from .base import DetectionContext, PatternDetector
from .merchant import HighRiskMerchantDetector
from .rapid_movement import RapidMovementDetector, average_minutes_between
from .round_amount import RoundAmountDetector, is_round_amount
from .structuring import StructuringDetector
from .velocity import VelocityDetector

# Findings are reported in this order
ALL_DETECTORS: list[PatternDetector] = [
    StructuringDetector(),
    RapidMovementDetector(),
    VelocityDetector(),
    HighRiskMerchantDetector(),
    RoundAmountDetector(),
]

__all__ = [
    "ALL_DETECTORS",
    "DetectionContext",
    "PatternDetector",
    "StructuringDetector",
    "RapidMovementDetector",
    "VelocityDetector",
    "HighRiskMerchantDetector",
    "RoundAmountDetector",
    "average_minutes_between",
    "is_round_amount",
]
