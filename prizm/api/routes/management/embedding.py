"""
Embedding management API endpoints.

Status, ad-hoc testing, a built-in quality benchmark and hot reload of
the local embedding model.
"""

import time

from fastapi import APIRouter

from prizm.api.dependencies import EmbeddingServiceDep
from prizm.api.schemas.common import ApiResponse
from prizm.api.schemas.embedding import (
    FULL_VECTOR_MAX_CHARS,
    VECTOR_PREVIEW_SIZE,
    BenchmarkPairResult,
    BenchmarkResponse,
    BenchmarkSummary,
    EmbeddingStatusResponse,
    EmbeddingTestRequest,
    EmbeddingTestResponse,
    ReloadRequest,
    ReloadResponse,
    VectorStatsInfo,
)
from prizm.core.errors import ModelNotReadyError
from prizm.core.logging import get_logger
from prizm.ml.similarity import (
    BENCHMARK_PAIRS,
    BENCHMARK_THRESHOLD,
    calibrate_similarity,
    compute_vector_stats,
    cosine_similarity,
    get_similarity_level,
    round4,
)
from prizm.services.embedding_service import EmbeddingService, EmbeddingState

router = APIRouter(prefix="/api/embedding", tags=["embedding"])

logger = get_logger(__name__)


def _require_ready(service: EmbeddingService) -> None:
    state = service.get_state()
    if state is not EmbeddingState.READY:
        raise ModelNotReadyError(state.value)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _preview(vector: list[float]) -> list[float]:
    return [round4(v) for v in vector[:VECTOR_PREVIEW_SIZE]]


def _average(values: list[float]) -> float:
    return round4(sum(values) / len(values)) if values else 0.0


@router.get(
    "/status",
    response_model=ApiResponse[EmbeddingStatusResponse],
    summary="Get embedding status",
    description="Full state, configuration and inference statistics of the local embedding model.",
)
async def get_embedding_status(
    service: EmbeddingServiceDep,
) -> ApiResponse[EmbeddingStatusResponse]:
    return ApiResponse.ok(EmbeddingStatusResponse.from_status(service.get_status()))


@router.post(
    "/test",
    response_model=ApiResponse[EmbeddingTestResponse],
    summary="Test embedding",
    description="Embed a text and optionally compare it with a second text.",
)
async def test_embedding(
    request: EmbeddingTestRequest,
    service: EmbeddingServiceDep,
) -> ApiResponse[EmbeddingTestResponse]:
    """
    Embed ``text`` and report a vector preview and statistics.

    Texts of at most 100 characters also get the full vector. When
    ``compare_with`` is given, the raw and calibrated cosine similarity
    between both texts is included.
    """
    _require_ready(service)

    started = time.perf_counter()
    vector = await service.embed(request.text)
    latency_ms = _elapsed_ms(started)

    result = EmbeddingTestResponse(
        text=request.text,
        text_length=len(request.text),
        dimension=len(vector),
        latency_ms=latency_ms,
        vector_preview=_preview(vector),
        vector_stats=VectorStatsInfo.model_validate(compute_vector_stats(vector)),
    )

    if len(request.text) <= FULL_VECTOR_MAX_CHARS:
        result.vector_full = [round4(v) for v in vector]

    if request.compare_with:
        started = time.perf_counter()
        other = await service.embed(request.compare_with)
        raw = cosine_similarity(vector, other)
        calibrated = calibrate_similarity(raw)
        level, label = get_similarity_level(calibrated)

        result.compare_with = request.compare_with
        result.compare_text_length = len(request.compare_with)
        result.compare_latency_ms = _elapsed_ms(started)
        result.compare_vector_preview = _preview(other)
        result.compare_vector_stats = VectorStatsInfo.model_validate(compute_vector_stats(other))
        result.similarity = round4(raw)
        result.calibrated_similarity = round4(calibrated)
        result.similarity_level = level
        result.similarity_label = label

    return ApiResponse.ok(result)


@router.post(
    "/benchmark",
    response_model=ApiResponse[BenchmarkResponse],
    summary="Run embedding benchmark",
    description="Score the built-in semantic pairs to evaluate model quality.",
)
async def run_benchmark(
    service: EmbeddingServiceDep,
) -> ApiResponse[BenchmarkResponse]:
    """
    Embed every benchmark pair and summarize the results.

    Cross-language and antonym pairs are reported but not scored.
    """
    _require_ready(service)

    started = time.perf_counter()
    pairs: list[BenchmarkPairResult] = []

    for pair in BENCHMARK_PAIRS:
        vec_a = await service.embed(pair.a)
        vec_b = await service.embed(pair.b)
        raw = cosine_similarity(vec_a, vec_b)
        calibrated = calibrate_similarity(raw)
        level, label = get_similarity_level(calibrated)

        pairs.append(BenchmarkPairResult(
            text_a=pair.a,
            text_b=pair.b,
            category=pair.category,
            expected=pair.expected,
            similarity=round4(raw),
            calibrated_similarity=round4(calibrated),
            similarity_level=level,
            similarity_label=label,
            passed=pair.verdict(calibrated),
        ))

    scorable = [p for p in pairs if p.passed is not None]
    pass_count = sum(1 for p in scorable if p.passed)

    def calibrated_of(expected: str) -> list[float]:
        return [p.calibrated_similarity for p in pairs if p.expected == expected]

    avg_high = _average(calibrated_of("high"))
    avg_low = _average(calibrated_of("low"))

    summary = BenchmarkSummary(
        total_pairs=len(pairs),
        scorable_pairs=len(scorable),
        cross_lang_pairs=len(calibrated_of("cross_lang")),
        antonym_pairs=len(calibrated_of("antonym")),
        pass_count=pass_count,
        fail_count=len(scorable) - pass_count,
        pass_rate=round4(pass_count / len(scorable)) if scorable else 0.0,
        threshold=BENCHMARK_THRESHOLD,
        avg_high_calibrated_similarity=avg_high,
        avg_low_calibrated_similarity=avg_low,
        avg_cross_lang_calibrated_similarity=_average(calibrated_of("cross_lang")),
        discrimination=round4(avg_high - avg_low),
        total_latency_ms=_elapsed_ms(started),
        model_name=service.get_model_name(),
        dimension=service.get_dimension(),
    )

    logger.info(
        "embedding_benchmark_complete",
        pass_rate=summary.pass_rate,
        discrimination=summary.discrimination,
        total_latency_ms=summary.total_latency_ms,
    )

    return ApiResponse.ok(BenchmarkResponse(pairs=pairs, summary=summary))


@router.post(
    "/reload",
    response_model=ApiResponse[ReloadResponse],
    summary="Reload embedding model",
    description="Release the current model and load it again, optionally with a new precision.",
)
async def reload_embedding(
    service: EmbeddingServiceDep,
    request: ReloadRequest | None = None,
) -> ApiResponse[ReloadResponse]:
    """
    Hot-reload the embedding model.

    A load failure does not fail the request; the returned state shows
    whether the model came back.
    """
    precision = request.precision if request else None
    logger.info("embedding_reload_requested", precision=precision)

    previous_state = service.get_state()
    await service.reset(precision)
    status = service.get_status()

    return ApiResponse.ok(ReloadResponse(
        message="Embedding model reloaded",
        previous_state=previous_state.value,
        current_state=status.state.value,
        model_name=status.model_name,
        dimension=status.dimension,
        precision=status.precision,
        load_time_ms=status.stats.model_load_time_ms,
    ))
