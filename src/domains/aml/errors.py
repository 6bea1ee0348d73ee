"""Exceptions raised by the AML engine and its collaborators."""


class AMLError(Exception):
    """Base class for AML engine errors."""


class IsolationError(AMLError):
    """Tenant isolation could not be confirmed. Always fatal for an analysis."""

    def __init__(self, entity_id: str, reason: str = "isolation enforcement failed") -> None:
        super().__init__(f"{reason} for entity {entity_id}")
        self.entity_id = entity_id
        self.reason = reason


class WindowStoreError(AMLError):
    """The sliding-window backend was unreachable or returned bad data."""


class HistoryServiceError(AMLError):
    """The transaction history read path failed."""


class AnalysisCacheError(AMLError):
    """Reading or writing a cached analysis failed."""


class FraudCorrelationError(AMLError):
    """The fraud correlation collaborator failed."""
