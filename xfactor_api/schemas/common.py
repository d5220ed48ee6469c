"""Common schemas used across the API."""

from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Global API response envelope."""

    status: Literal["success", "error"]
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[dict[str, Any]] = None


def success(data: Any = None, message: Optional[str] = None) -> dict:
    """Success envelope as a plain dict (JSON-encoded by FastAPI)."""
    return {"status": "success", "message": message, "data": data}


def error_body(message: str, error: Optional[dict[str, Any]] = None) -> dict:
    return {"status": "error", "message": message, "error": error}
