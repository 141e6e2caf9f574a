"""
User-friendly error messages for all error scenarios.

Maps error codes to human-readable messages for display in the client.
"""

from typing import Optional

ERROR_MESSAGES: dict[str, str] = {
    # Embedding model errors
    "MODEL_LOAD_FAILED": "The embedding model could not be loaded. Memories will be saved without vectors until it is available.",
    "MODEL_LOAD_TIMEOUT": "The embedding model took too long to load. Check your network connection or the model cache directory, then reload.",
    "MODEL_NOT_READY": "The embedding model is not ready yet. Please wait for it to finish loading or reload it.",
    "MODEL_DISABLED": "Local embedding is disabled in the configuration (PRIZM_EMBEDDING_ENABLED=false).",

    # Inference errors
    "INFERENCE_FAILED": "The embedding model failed to process this text.",
    "EMBEDDING_DISPOSED": "The embedding model was unloaded while this request was waiting. Please try again.",

    # Validation errors
    "VALIDATION_ERROR": "The request contains invalid data. Please check your input and try again.",

    # Generic error
    "INTERNAL_ERROR": "An unexpected error occurred. Please try again or contact support if the problem persists.",
}


def get_user_friendly_message(
    error_code: str,
    default_message: Optional[str] = None,
) -> str:
    """
    Get a user-friendly error message for an error code.

    Args:
        error_code: The error code to look up
        default_message: Optional default message if code not found

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(
        error_code,
        default_message or ERROR_MESSAGES["INTERNAL_ERROR"]
    )
