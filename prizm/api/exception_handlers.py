"""
Exception handlers for FastAPI.

Converts application errors into the ApiResponse error envelope.
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from prizm.api.schemas.common import ApiResponse
from prizm.core.error_messages import get_user_friendly_message
from prizm.core.errors import PrizmError
from prizm.core.logging import get_logger

logger = get_logger(__name__)


async def prizm_error_handler(request: Request, exc: PrizmError) -> JSONResponse:
    """
    Convert a PrizmError into an error response.

    The user-facing message comes from the error message table; the
    original message is kept in the details.
    """
    logger.warning(
        "api_error",
        error_code=exc.code,
        error_message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
        details=exc.details,
    )

    user_message = get_user_friendly_message(exc.code, exc.message)

    response = ApiResponse.fail(
        code=exc.code,
        message=user_message,
        details={
            **exc.details,
            "user_message": user_message,
            "technical_message": exc.message,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(mode="json"),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions as INTERNAL_ERROR."""
    debug = request.app.state.settings.DEBUG
    logger.error(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    response = ApiResponse.fail(
        code="INTERNAL_ERROR",
        message=get_user_friendly_message("INTERNAL_ERROR"),
        details={
            "type": type(exc).__name__,
            "technical_message": str(exc) if debug else "See server logs",
        },
    )

    return JSONResponse(
        status_code=500,
        content=response.model_dump(mode="json"),
    )
