"""
Error types for payrecon.

All errors derive from ValueError so existing callers that guard with
``except ValueError`` keep working.

- ConfigurationError: policy contract or run constants are invalid (fatal)
- InputMissingError: a required source dataset is absent (fatal)
- AuditValidationError: an audit ingest call cannot be accepted (all-or-nothing)
"""


class PayreconError(ValueError):
    """Base class for payrecon errors."""


class ConfigurationError(PayreconError):
    """Raised when policy configuration is missing or contradictory."""


class InputMissingError(PayreconError):
    """Raised when a required source dataset is absent or empty."""

    def __init__(self, dataset: str, message: str = ""):
        self.dataset = dataset
        super().__init__(message or f"Required dataset missing: {dataset}")


class AuditValidationError(PayreconError):
    """Raised when an audit ingest or query request is rejected."""


__all__ = [
    "PayreconError",
    "ConfigurationError",
    "InputMissingError",
    "AuditValidationError",
]
