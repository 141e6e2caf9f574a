"""
Common API response schemas.

Every management endpoint answers with the same envelope.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorDetails(BaseModel):
    """Error payload of a failed response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional error context",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope.

    Success:
        {"success": true, "data": {...}}

    Failure:
        {"success": false, "error": {"code": "MODEL_NOT_READY", "message": "...", "details": {}}}
    """

    success: bool = Field(..., description="Whether the request succeeded")
    data: T | None = Field(default=None, description="Response data (on success)")
    error: ErrorDetails | None = Field(
        default=None,
        description="Error details (on failure)",
    )

    @classmethod
    def ok(cls, data: T) -> "ApiResponse[T]":
        return cls(success=True, data=data, error=None)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> "ApiResponse[None]":
        """
        Build a failed response.

        Args:
            code: Machine-readable error code.
            message: Human-readable error message.
            details: Additional error context.
        """
        return cls(
            success=False,
            data=None,
            error=ErrorDetails(code=code, message=message, details=details or {}),
        )
