from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiError(BaseModel):
    message: str
    fields: Optional[Dict[str, str]] = None
    status_code: Optional[int] = None  # None for transport failures


class ActionResult(BaseModel, Generic[T]):
    """Uniform success/failure envelope returned by every gateway operation."""

    success: bool
    data: Optional[T] = None
    meta: Optional[Dict[str, Any]] = None
    error: Optional[ApiError] = None

    @classmethod
    def ok(cls, data: Any = None, meta: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=True, data=data, meta=meta)

    @classmethod
    def fail(cls, message: str, fields: Optional[Dict[str, str]] = None,
             status_code: Optional[int] = None, data: Any = None) -> "ActionResult":
        return cls(success=False, data=data,
                   error=ApiError(message=message, fields=fields or None, status_code=status_code))
