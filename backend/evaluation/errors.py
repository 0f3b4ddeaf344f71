"""
errors.py — Error taxonomy of the evaluation engine.

- ConfigurationError: no rule / no assessment types for a grade (per subject)
- DataInconsistencyError: orphan or mismatched recovery links (logged, never raised by the engine)
- ValidationError: bad values at gradebook entry time
- TransferStateError: illegal transfer workflow transition
"""

from typing import Any, Dict, Optional


class EvaluationError(Exception):
    """Base class for evaluation errors."""

    code = "evaluation_error"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


class ConfigurationError(EvaluationError):
    """Raised when no evaluation rule or assessment types apply to a grade."""

    code = "not_configured"


class DataInconsistencyError(EvaluationError):
    """Recovery data that cannot be trusted for grading."""

    code = "data_inconsistency"


class ValidationError(EvaluationError):
    """Raised when a gradebook entry is invalid."""

    code = "invalid_entry"


class TransferStateError(EvaluationError):
    """Raised when a transfer is moved through an illegal transition."""

    code = "invalid_transition"
