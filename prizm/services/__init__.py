"""
Service layer for Prizm.

Services own the embedding model lifecycle and coordinate between the
ML backend and the memory index.
"""

from prizm.services.embedding_service import EmbeddingService, EmbeddingState, EmbeddingStatus
from prizm.services.embedding_stats import EmbeddingStats
from prizm.services.inference_queue import InferenceSlotQueue
from prizm.services.memory_index import MemoryIndex

__all__ = [
    "EmbeddingService",
    "EmbeddingState",
    "EmbeddingStats",
    "EmbeddingStatus",
    "InferenceSlotQueue",
    "MemoryIndex",
]
