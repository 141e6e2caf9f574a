"""
FastAPI dependency injection.

The embedding service is created by the application factory and kept
on ``app.state``; routes receive it through these dependencies.
"""

from typing import Annotated

from fastapi import Depends, Request

from prizm.services.embedding_service import EmbeddingService


def get_embedding_service(request: Request) -> EmbeddingService:
    """
    Get the embedding service from app state.

    Args:
        request: FastAPI request object.

    Returns:
        The application's EmbeddingService.
    """
    return request.app.state.embedding_service


# Type alias for injected EmbeddingService
EmbeddingServiceDep = Annotated[EmbeddingService, Depends(get_embedding_service)]
