"""Pydantic models for the AML domain."""

import json
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(StrEnum):
    PURCHASE = "purchase"
    WITHDRAWAL = "withdrawal"
    REFUND = "refund"
    FEE = "fee"


class PatternType(StrEnum):
    STRUCTURING = "structuring"
    RAPID_MOVEMENT = "rapid_movement"
    UNUSUAL_VELOCITY = "unusual_velocity"
    HIGH_RISK_MERCHANT = "high_risk_merchant"
    ROUND_AMOUNT_PATTERN = "round_amount_pattern"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendedAction(StrEnum):
    NONE = "none"
    MONITOR = "monitor"
    REVIEW = "review"
    REPORT_SAR = "report_sar"


class AMLTransaction(BaseModel):
    """A validated, tenant-isolated card transaction.

    ``entity_id`` is the opaque card context hash, never a raw account number.
    ``amount`` is in integer minor units.
    """

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    entity_id: str = Field(min_length=1)
    amount: int
    currency: str = "USD"
    timestamp: datetime
    merchant_name: str = ""
    merchant_category: str = ""
    transaction_type: TransactionType = TransactionType.PURCHASE

    @property
    def timestamp_ms(self) -> int:
        return int(self.timestamp.timestamp() * 1000)


class WindowEntry(BaseModel):
    """Minimal projection of a transaction kept in a sliding window."""

    model_config = ConfigDict(frozen=True)

    id: str
    amount: int
    timestamp_ms: int

    @classmethod
    def from_transaction(cls, transaction: AMLTransaction) -> "WindowEntry":
        return cls(
            id=transaction.transaction_id,
            amount=transaction.amount,
            timestamp_ms=transaction.timestamp_ms,
        )

    def to_member(self) -> str:
        """Stable JSON encoding; the same transaction always maps to the same member."""
        return json.dumps(
            {"id": self.id, "amount": self.amount, "timestamp": self.timestamp_ms},
            sort_keys=True,
            separators=(",", ":"),
        )

    @classmethod
    def from_member(cls, member: str | bytes) -> "WindowEntry":
        data = json.loads(member)
        return cls(id=data["id"], amount=data["amount"], timestamp_ms=data["timestamp"])


class SuspiciousActivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    activity_id: str
    entity_id: str
    pattern_type: PatternType
    risk_score: int = Field(ge=0, le=100)
    confidence: float = Field(ge=0.0, le=1.0)
    detected_at: datetime
    evidence: dict = Field(default_factory=dict)
    threshold: float
    actual_value: float


class AMLAnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    suspicious_activities: list[SuspiciousActivity] = []
    overall_risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    recommended_action: RecommendedAction
    analysis_timestamp: datetime
    config_version: str = ""

    @property
    def pattern_types(self) -> list[str]:
        return [a.pattern_type.value for a in self.suspicious_activities]


class HistoryRecord(BaseModel):
    """Read-only row returned by the transaction history service."""

    id: str
    amount: int
    created_at: datetime
    transaction_type: str | None = None


class FraudView(BaseModel):
    """Projection of a transaction shared with the fraud correlation service."""

    id: str
    card_id: str
    amount: int
    merchant_name: str
    merchant_category: str
    timestamp: datetime
    currency: str

    @classmethod
    def from_transaction(cls, transaction: AMLTransaction) -> "FraudView":
        # The context hash stands in for the card id to keep isolation intact
        return cls(
            id=transaction.transaction_id,
            card_id=transaction.entity_id,
            amount=transaction.amount,
            merchant_name=transaction.merchant_name,
            merchant_category=transaction.merchant_category,
            timestamp=transaction.timestamp,
            currency=transaction.currency,
        )


class FraudResult(BaseModel):
    risk_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    recommended_action: str = "none"
