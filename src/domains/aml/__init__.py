"""AML transaction pattern detection.

Five independent detectors (structuring, rapid movement, velocity, high-risk
merchant, round amounts) run concurrently per transaction; the aggregator
folds their findings into one scored, cached ``AMLAnalysisResult``.
"""

from .aggregator import RiskAggregator
from .config import AMLConfig, default_config
from .engine import AMLMonitoringEngine
from .errors import IsolationError
from .models import (
    AMLAnalysisResult,
    AMLTransaction,
    PatternType,
    RecommendedAction,
    RiskLevel,
    SuspiciousActivity,
)

__all__ = [
    "AMLAnalysisResult",
    "AMLConfig",
    "AMLMonitoringEngine",
    "AMLTransaction",
    "IsolationError",
    "PatternType",
    "RecommendedAction",
    "RiskAggregator",
    "RiskLevel",
    "SuspiciousActivity",
    "default_config",
]
