"""AML pattern detection configuration with documented defaults.

Every threshold, window, weight, and cut point used by the detectors and the
aggregator lives here. Amounts are integer minor units matching the upstream
card ledger. The scoring formulas themselves stay in code; only their
parameters are tunable.

References:
- 31 CFR § 1010.311 - Currency transaction reports above $10,000
- 31 USC § 5324 - Structuring transactions to evade reporting requirements
- FinCEN Advisory FIN-2014-A007 - Round-amount and rapid-movement typologies
"""

import os
from dataclasses import dataclass, field


@dataclass
class StructuringConfig:
    """Structuring: several payments just under the single-payment threshold
    that add up past the daily aggregate."""

    single_threshold: int = 9_000
    # Lower edge of the "just under" band, as a fraction of single_threshold
    near_threshold_ratio: float = 0.80
    daily_aggregate: int = 10_000
    window_hours: int = 24
    min_transactions: int = 3
    confidence: float = 0.80


@dataclass
class RapidMovementConfig:
    """Rapid movement: funds moving through the entity within minutes."""

    time_window_minutes: int = 60
    min_transactions: int = 5
    amount_threshold: int = 5_000
    max_avg_minutes_between: float = 10.0
    confidence: float = 0.70


@dataclass
class VelocityConfig:
    hourly_limit: int = 10
    amount_per_hour: int = 25_000
    window_hours: int = 1
    confidence: float = 0.90


@dataclass
class HighRiskMerchantConfig:
    # Gambling, direct marketing, drugs, dating, telecom
    high_risk_mccs: frozenset[str] = field(
        default_factory=lambda: frozenset({"7995", "5967", "5122", "7273", "4812"})
    )
    risk_score: int = 60
    confidence: float = 0.80


@dataclass
class RoundAmountConfig:
    threshold_count: int = 5
    window_hours: int = 48
    round_divisors: tuple[int, ...] = (100, 50)
    common_round_amounts: frozenset[int] = field(
        default_factory=lambda: frozenset({1_000, 2_000, 2_500, 5_000, 7_500, 10_000})
    )
    risk_score: int = 45
    confidence: float = 0.60


@dataclass
class AggregationConfig:
    pattern_weights: dict[str, float] = field(
        default_factory=lambda: {
            "structuring": 3.0,
            "rapid_movement": 2.5,
            "unusual_velocity": 2.0,
            "high_risk_merchant": 1.5,
            "round_amount_pattern": 1.0,
        }
    )
    default_weight: float = 1.0
    # Each additional simultaneous pattern adds 15% to the base score
    compound_step: float = 0.15

    critical_min: int = 80
    high_min: int = 60
    medium_min: int = 35

    report_min: int = 75
    review_min: int = 50
    monitor_min: int = 25


@dataclass
class CacheConfig:
    analysis_ttl_seconds: int = 300


@dataclass
class ExecutionConfig:
    # Overall fan-out deadline; unfinished detectors count as no finding
    analysis_timeout_seconds: float = 0.5
    detector_timeout_seconds: float = 0.4


@dataclass
class AMLConfig:
    """Top-level AML engine configuration.

    ``version`` is stamped on every analysis result so a decision can be traced
    back to the thresholds that produced it.
    """

    version: str = "aml-thresholds-v1"
    # Namespace for window and cache keys in the shared store
    key_prefix: str = "aml"
    structuring: StructuringConfig = field(default_factory=StructuringConfig)
    rapid_movement: RapidMovementConfig = field(default_factory=RapidMovementConfig)
    velocity: VelocityConfig = field(default_factory=VelocityConfig)
    high_risk_merchant: HighRiskMerchantConfig = field(default_factory=HighRiskMerchantConfig)
    round_amount: RoundAmountConfig = field(default_factory=RoundAmountConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    @classmethod
    def from_env(cls) -> "AMLConfig":
        """Load config with env var overrides. Env vars use AML_ prefix."""
        config = cls()

        if v := os.getenv("AML_CONFIG_VERSION"):
            config.version = v

        # Structuring overrides
        if v := os.getenv("AML_STRUCTURING_SINGLE_THRESHOLD"):
            config.structuring.single_threshold = int(v)
        if v := os.getenv("AML_STRUCTURING_DAILY_AGGREGATE"):
            config.structuring.daily_aggregate = int(v)
        if v := os.getenv("AML_STRUCTURING_MIN_TRANSACTIONS"):
            config.structuring.min_transactions = int(v)

        # Rapid movement overrides
        if v := os.getenv("AML_RAPID_MOVEMENT_WINDOW_MINUTES"):
            config.rapid_movement.time_window_minutes = int(v)
        if v := os.getenv("AML_RAPID_MOVEMENT_AMOUNT_THRESHOLD"):
            config.rapid_movement.amount_threshold = int(v)

        # Velocity overrides
        if v := os.getenv("AML_VELOCITY_HOURLY_LIMIT"):
            config.velocity.hourly_limit = int(v)
        if v := os.getenv("AML_VELOCITY_AMOUNT_PER_HOUR"):
            config.velocity.amount_per_hour = int(v)

        # Merchant overrides (comma-separated MCC list)
        if v := os.getenv("AML_HIGH_RISK_MCCS"):
            config.high_risk_merchant.high_risk_mccs = frozenset(
                code.strip() for code in v.split(",") if code.strip()
            )

        # Round amount overrides
        if v := os.getenv("AML_ROUND_AMOUNT_THRESHOLD_COUNT"):
            config.round_amount.threshold_count = int(v)

        # Cache / execution overrides
        if v := os.getenv("AML_ANALYSIS_CACHE_TTL_SECONDS"):
            config.cache.analysis_ttl_seconds = int(v)
        if v := os.getenv("AML_ANALYSIS_TIMEOUT_SECONDS"):
            config.execution.analysis_timeout_seconds = float(v)
        if v := os.getenv("AML_DETECTOR_TIMEOUT_SECONDS"):
            config.execution.detector_timeout_seconds = float(v)

        return config


# Module-level default instance
default_config = AMLConfig()
