"""
Custom exception hierarchy for Prizm.

All application errors inherit from PrizmError, which provides
consistent error codes and HTTP status codes for API responses.
"""

from typing import Any, Optional


class PrizmError(Exception):
    """Base exception for all Prizm errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Embedding Model Errors
# =============================================================================


class ModelLoadError(PrizmError):
    """Raised when the embedding model fails to load."""

    code = "MODEL_LOAD_FAILED"
    status_code = 500


class ModelLoadTimeoutError(ModelLoadError):
    """Raised when the embedding model does not load before the deadline."""

    code = "MODEL_LOAD_TIMEOUT"
    status_code = 504


class ModelNotReadyError(PrizmError):
    """Raised when embedding is requested while the model is not ready."""

    code = "MODEL_NOT_READY"
    status_code = 503

    def __init__(
        self,
        state: str,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.state = state
        super().__init__(
            message or f"Embedding model not ready (state: {state})",
            details={"state": state, **(details or {})},
        )


class ModelDisabledError(ModelNotReadyError):
    """Raised when embedding is requested but disabled by configuration."""

    code = "MODEL_DISABLED"
    status_code = 503

    def __init__(self, state: str = "idle") -> None:
        super().__init__(
            state,
            message="Local embedding is disabled by configuration",
        )


# =============================================================================
# Inference Errors
# =============================================================================


class InferenceError(PrizmError):
    """Raised when the embedding backend fails during inference."""

    code = "INFERENCE_FAILED"
    status_code = 500


class EmbeddingDisposedError(PrizmError):
    """Raised for callers still waiting for an inference slot at dispose time."""

    code = "EMBEDDING_DISPOSED"
    status_code = 503


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(PrizmError):
    """Raised when request validation fails."""

    code = "VALIDATION_ERROR"
    status_code = 422


# =============================================================================
# Error code to class mapping for lookup
# =============================================================================

ERROR_CLASSES: dict[str, type[PrizmError]] = {
    "INTERNAL_ERROR": PrizmError,
    "MODEL_LOAD_FAILED": ModelLoadError,
    "MODEL_LOAD_TIMEOUT": ModelLoadTimeoutError,
    "MODEL_NOT_READY": ModelNotReadyError,
    "MODEL_DISABLED": ModelDisabledError,
    "INFERENCE_FAILED": InferenceError,
    "EMBEDDING_DISPOSED": EmbeddingDisposedError,
    "VALIDATION_ERROR": ValidationError,
}
