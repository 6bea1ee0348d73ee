"""Combine detector findings into one analysis result.

Scoring:
1. Weight each finding by pattern type and by its own confidence
2. base = sum(score * weight * confidence) / sum(weight)
3. Multiply by 1 + step * (n - 1) for n simultaneous findings
4. Clamp to [0, 100] and round
5. Map the score to a risk level and a recommended action via fixed cut points
"""

from datetime import UTC, datetime

from .config import AggregationConfig, AMLConfig, default_config
from .models import AMLAnalysisResult, RecommendedAction, RiskLevel, SuspiciousActivity
from .scoring import clamp_score


def classify_risk_level(score: int, config: AggregationConfig) -> RiskLevel:
    if score >= config.critical_min:
        return RiskLevel.CRITICAL
    if score >= config.high_min:
        return RiskLevel.HIGH
    if score >= config.medium_min:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommend_action(score: int, config: AggregationConfig) -> RecommendedAction:
    if score >= config.report_min:
        return RecommendedAction.REPORT_SAR
    if score >= config.review_min:
        return RecommendedAction.REVIEW
    if score >= config.monitor_min:
        return RecommendedAction.MONITOR
    return RecommendedAction.NONE


def overall_risk_score(activities: list[SuspiciousActivity], config: AggregationConfig) -> int:
    if not activities:
        return 0

    total_score = 0.0
    total_weight = 0.0
    for activity in activities:
        weight = config.pattern_weights.get(activity.pattern_type.value, config.default_weight)
        total_score += activity.risk_score * weight * activity.confidence
        total_weight += weight

    if total_weight <= 0:
        return 0

    base_score = total_score / total_weight
    compound_multiplier = 1 + (len(activities) - 1) * config.compound_step
    return clamp_score(base_score * compound_multiplier)


class RiskAggregator:
    """Pure function over a list of findings. Never raises on well-typed input."""

    def __init__(self, config: AMLConfig | None = None) -> None:
        self._config = config or default_config

    def aggregate(
        self,
        entity_id: str,
        activities: list[SuspiciousActivity],
        analysis_timestamp: datetime | None = None,
    ) -> AMLAnalysisResult:
        cfg = self._config.aggregation
        score = overall_risk_score(activities, cfg)
        return AMLAnalysisResult(
            entity_id=entity_id,
            suspicious_activities=list(activities),
            overall_risk_score=score,
            risk_level=classify_risk_level(score, cfg),
            recommended_action=recommend_action(score, cfg),
            analysis_timestamp=analysis_timestamp or datetime.now(UTC),
            config_version=self._config.version,
        )
