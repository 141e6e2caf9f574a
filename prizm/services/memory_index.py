"""
Embedding provider registry for the memory index.

The memory subsystem asks this registry for vectors when it stores or
searches memories. The local embedding service registers itself here;
without a provider, memories are saved without vectors and text-based
dedup keeps working.
"""

from typing import Awaitable, Callable, Optional

from prizm.core.errors import ModelNotReadyError
from prizm.core.logging import get_logger

logger = get_logger(__name__)

EmbeddingProvider = Callable[[str], Awaitable[list[float]]]


class MemoryIndex:
    """
    Holds the active embedding provider for memory indexing.

    Attributes:
        has_provider: Whether a provider is currently registered
    """

    def __init__(self) -> None:
        self._provider: Optional[EmbeddingProvider] = None
        self._missing_warned = False

    def register_provider(self, provider: EmbeddingProvider) -> None:
        """Make ``provider`` the source of memory vectors."""
        self._provider = provider
        self._missing_warned = False
        logger.info("embedding_provider_registered")

    def clear_provider(self) -> None:
        """Remove the registered provider, if any."""
        if self._provider is not None:
            logger.info("embedding_provider_cleared")
        self._provider = None
        self._missing_warned = False

    @property
    def has_provider(self) -> bool:
        return self._provider is not None

    async def get_embedding(self, text: str) -> list[float]:
        """
        Get the vector for ``text``.

        Returns:
            The vector, or an empty list when no provider is available or
            the model is not ready. Callers store the memory without a
            vector in that case.

        Raises:
            Any other provider error.
        """
        provider = self._provider
        if provider is None:
            if not self._missing_warned:
                logger.warning(
                    "embedding_provider_missing",
                    message="Memories will be saved without vectors until the embedding model is available",
                )
                self._missing_warned = True
            return []

        try:
            return await provider(text)
        except ModelNotReadyError as e:
            logger.warning("embedding_provider_not_ready", state=e.state)
            return []
