"""Error taxonomy for the decision workflow."""


class ClarityError(Exception):
    """Base exception for Clarity."""

    code = "error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class NotFound(ClarityError):
    """Decision does not exist or belongs to another subject."""

    code = "not_found"

    def __init__(self, decision_id: str):
        self.decision_id = decision_id
        super().__init__(f"No such decision: {decision_id}")


class ValidationError(ClarityError):
    """Required input is missing or the requested transition is not allowed."""

    code = "validation_error"

    def __init__(self, message: str, missing: list[str] | None = None):
        self.missing = list(missing or [])
        super().__init__(message)


class DecisionLocked(ValidationError):
    code = "decision_locked"

    def __init__(self, decision_id: str):
        super().__init__(f"Decision {decision_id} is locked")


class PersistenceError(ClarityError):
    """The record store is unavailable or a write failed."""

    code = "persistence_error"


class AnalysisError(ClarityError):
    """The analysis service could not produce a result. Always retryable."""

    code = "analysis_error"


class RateLimited(AnalysisError):
    code = "rate_limited"


class QuotaExceeded(AnalysisError):
    code = "quota_exceeded"


class Unavailable(AnalysisError):
    code = "unavailable"


class Malformed(AnalysisError):
    """The response could not be parsed into the expected shape."""

    code = "malformed"
