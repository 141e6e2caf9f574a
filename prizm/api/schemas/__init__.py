"""
Pydantic schemas for API request/response validation.
"""

from prizm.api.schemas.common import ApiResponse, ErrorDetails
from prizm.api.schemas.embedding import (
    BenchmarkPairResult,
    BenchmarkResponse,
    BenchmarkSummary,
    EmbeddingStatusResponse,
    EmbeddingTestRequest,
    EmbeddingTestResponse,
    ReloadRequest,
    ReloadResponse,
)

__all__ = [
    "ApiResponse",
    "BenchmarkPairResult",
    "BenchmarkResponse",
    "BenchmarkSummary",
    "EmbeddingStatusResponse",
    "EmbeddingTestRequest",
    "EmbeddingTestResponse",
    "ErrorDetails",
    "ReloadRequest",
    "ReloadResponse",
]
