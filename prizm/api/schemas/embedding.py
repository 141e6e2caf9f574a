"""
Pydantic schemas for the embedding management API.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from prizm.core.config import PrecisionMode
from prizm.ml.similarity import BenchmarkExpected, SimilarityLevel
from prizm.services.embedding_service import EmbeddingState

# Longest text accepted by the test endpoint
MAX_TEST_TEXT_LENGTH = 10_000

# Texts up to this length get their full vector echoed back
FULL_VECTOR_MAX_CHARS = 100

# Number of leading vector components shown in previews
VECTOR_PREVIEW_SIZE = 10


# =============================================================================
# Status
# =============================================================================


class LastErrorInfo(BaseModel):
    """Most recent embedding failure."""

    message: str = Field(..., description="Error message")
    timestamp: int = Field(..., description="When the error happened (epoch ms)")

    model_config = {"from_attributes": True}


class EmbeddingStatsInfo(BaseModel):
    """Inference statistics."""

    total_calls: int = Field(..., description="Successful embedding calls")
    total_errors: int = Field(..., description="Failed embedding calls")
    total_chars_processed: int = Field(..., description="Characters embedded")
    avg_latency_ms: float = Field(..., description="Average latency over the recent window")
    p95_latency_ms: float = Field(..., description="95th percentile latency over the recent window")
    min_latency_ms: float = Field(..., description="Lowest latency since reset")
    max_latency_ms: float = Field(..., description="Highest latency since reset")
    last_error: Optional[LastErrorInfo] = Field(None, description="Most recent failure")
    model_load_time_ms: float = Field(..., description="Duration of the last successful load")

    model_config = {"from_attributes": True}


class EmbeddingStatusResponse(BaseModel):
    """Full status of the local embedding model."""

    state: EmbeddingState = Field(..., description="Lifecycle state")
    model_name: str = Field(..., description="Configured model identifier")
    dimension: int = Field(..., description="Vector size, 0 when not loaded")
    enabled: bool = Field(..., description="Whether local embedding is enabled")
    precision: str = Field(..., description="Precision mode (q4, q8, fp16, fp32)")
    source: str = Field(..., description="Where the model was loaded from: bundled, cache or unknown")
    stats: EmbeddingStatsInfo = Field(..., description="Inference statistics")
    cache_dir: str = Field(..., description="Directory the model was loaded from")
    model_memory_mb: float = Field(..., description="Process memory growth caused by the load")
    process_memory_mb: float = Field(..., description="Current process resident memory")
    up_since_ms: Optional[int] = Field(None, description="When the model became ready (epoch ms)")

    model_config = {"from_attributes": True}

    @classmethod
    def from_status(cls, status: Any) -> "EmbeddingStatusResponse":
        """Build the response from an EmbeddingStatus."""
        return cls.model_validate(status)


# =============================================================================
# Test
# =============================================================================


class EmbeddingTestRequest(BaseModel):
    """Request schema for embedding a text (and optionally comparing it)."""

    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEST_TEXT_LENGTH,
        description="Text to embed",
    )
    compare_with: Optional[str] = Field(
        default=None,
        max_length=MAX_TEST_TEXT_LENGTH,
        description="Second text to compare against",
    )


class VectorStatsInfo(BaseModel):
    """Summary statistics of a vector."""

    mean: float
    std: float
    min: float
    max: float
    norm: float

    model_config = {"from_attributes": True}


class EmbeddingTestResponse(BaseModel):
    """Result of embedding a test text."""

    text: str
    text_length: int
    dimension: int
    latency_ms: float
    vector_preview: list[float] = Field(..., description="First 10 components, 4 decimals")
    vector_stats: VectorStatsInfo
    vector_full: Optional[list[float]] = Field(
        None,
        description="Full vector, only for texts of at most 100 characters",
    )

    # Comparison block, present when compare_with was given
    compare_with: Optional[str] = None
    compare_text_length: Optional[int] = None
    compare_latency_ms: Optional[float] = None
    compare_vector_preview: Optional[list[float]] = None
    compare_vector_stats: Optional[VectorStatsInfo] = None
    similarity: Optional[float] = Field(None, description="Raw cosine similarity")
    calibrated_similarity: Optional[float] = None
    similarity_level: Optional[SimilarityLevel] = None
    similarity_label: Optional[str] = None


# =============================================================================
# Benchmark
# =============================================================================


class BenchmarkPairResult(BaseModel):
    """Similarity outcome for one benchmark pair."""

    text_a: str
    text_b: str
    category: str
    expected: BenchmarkExpected
    similarity: float
    calibrated_similarity: float
    similarity_level: SimilarityLevel
    similarity_label: str
    passed: Optional[bool] = Field(
        None,
        description="Pass/fail verdict; null for pairs that are not scored",
    )


class BenchmarkSummary(BaseModel):
    """Aggregate benchmark results."""

    total_pairs: int
    scorable_pairs: int
    cross_lang_pairs: int
    antonym_pairs: int
    pass_count: int
    fail_count: int
    pass_rate: float
    threshold: float = Field(..., description="Calibrated similarity threshold")
    avg_high_calibrated_similarity: float
    avg_low_calibrated_similarity: float
    avg_cross_lang_calibrated_similarity: float
    discrimination: float = Field(
        ...,
        description="Average calibrated score of similar pairs minus unrelated pairs",
    )
    total_latency_ms: float
    model_name: str
    dimension: int


class BenchmarkResponse(BaseModel):
    """Response schema for the benchmark endpoint."""

    pairs: list[BenchmarkPairResult]
    summary: BenchmarkSummary


# =============================================================================
# Reload
# =============================================================================


class ReloadRequest(BaseModel):
    """Request schema for reloading the model."""

    precision: Optional[PrecisionMode] = Field(
        default=None,
        description="New precision mode; keeps the current one when omitted",
    )


class ReloadResponse(BaseModel):
    """Result of a model reload."""

    message: str
    previous_state: str
    current_state: str
    model_name: str
    dimension: int
    precision: str
    load_time_ms: float
