from pydantic import BaseModel
from typing import Any, Optional


class OperationResult(BaseModel):
    """
    Tagged outcome of a public operation.

    success=True carries ``data``; success=False carries ``error`` and an
    ``error_type`` of validation, business_rule, dependency or internal.
    """
    success: bool
    message: str
    data: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    details: Optional[Any] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: str, error_type: str, details: Any = None) -> "OperationResult":
        return cls(success=False, message=message, error=error, error_type=error_type, details=details)
