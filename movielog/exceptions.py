"""
Error taxonomy for movielog operations.

Every recoverable failure raised inside a service is a MovieLogError subclass.
The operation boundary (movielog.handlers) turns these into failed
OperationResult payloads; anything else is reported as an internal error.
"""
from typing import Any, Optional


class MovieLogError(Exception):
    """Base class for recoverable, caller-facing errors"""

    error_type = "error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(MovieLogError):
    """Malformed arguments (rating out of range, missing key, ...)"""

    error_type = "validation"


class BusinessRuleError(MovieLogError):
    """Well-formed request that the current state does not allow"""

    error_type = "business_rule"


class ProviderError(MovieLogError):
    """External metadata / person lookup failed or timed out"""

    error_type = "dependency"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
