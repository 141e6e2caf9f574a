"""
Vector similarity helpers for debugging and benchmarking embeddings.

Small embedding models (e.g. bge-micro-v2) have a high cosine
similarity baseline: unrelated texts often score 0.4-0.5. Scores are
therefore calibrated before being mapped to a similarity level.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Sequence

# Baseline raw cosine similarity of unrelated texts for bge-micro-v2
DEFAULT_BASELINE = 0.4

# Calibrated score at which a benchmark pair counts as "similar"
BENCHMARK_THRESHOLD = 0.6


class SimilarityLevel(str, Enum):
    """Coarse similarity buckets for calibrated scores."""

    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


SIMILARITY_LEVEL_LABELS: dict[SimilarityLevel, str] = {
    SimilarityLevel.VERY_HIGH: "极高",
    SimilarityLevel.HIGH: "高",
    SimilarityLevel.MEDIUM: "中等",
    SimilarityLevel.LOW: "低",
    SimilarityLevel.VERY_LOW: "极低",
}

# (minimum calibrated score, level), checked top-down
_LEVEL_THRESHOLDS: tuple[tuple[float, SimilarityLevel], ...] = (
    (0.75, SimilarityLevel.VERY_HIGH),
    (0.5, SimilarityLevel.HIGH),
    (0.25, SimilarityLevel.MEDIUM),
    (0.1, SimilarityLevel.LOW),
)


def round4(value: float) -> float:
    """Round to four decimal places."""
    return round(value, 4)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 for vectors of different length, empty vectors,
    or when either vector has zero norm.
    """
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    return 0.0 if denom == 0 else dot / denom


def calibrate_similarity(raw: float, baseline: float = DEFAULT_BASELINE) -> float:
    """
    Map a raw cosine score onto [0, 1] relative to the model baseline.

        calibrated = clamp((raw - baseline) / (1 - baseline), 0, 1)

    A baseline of 1 or more leaves the raw score unchanged.
    """
    span = 1 - baseline
    if span <= 0:
        return raw
    return max(0.0, min(1.0, (raw - baseline) / span))


def get_similarity_level(calibrated: float) -> tuple[SimilarityLevel, str]:
    """
    Bucket a calibrated score.

    Returns:
        Tuple of (level, display label).
    """
    for minimum, level in _LEVEL_THRESHOLDS:
        if calibrated >= minimum:
            return level, SIMILARITY_LEVEL_LABELS[level]
    return SimilarityLevel.VERY_LOW, SIMILARITY_LEVEL_LABELS[SimilarityLevel.VERY_LOW]


@dataclass
class VectorStats:
    """Summary statistics of a single embedding vector."""

    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    max: float = 0.0
    norm: float = 0.0


def compute_vector_stats(vector: Sequence[float]) -> VectorStats:
    """Mean, population std, min, max and L2 norm, rounded to 4 places."""
    n = len(vector)
    if n == 0:
        return VectorStats()

    total = math.fsum(vector)
    sq_total = math.fsum(v * v for v in vector)
    mean = total / n
    variance = sq_total / n - mean * mean

    return VectorStats(
        mean=round4(mean),
        std=round4(math.sqrt(max(0.0, variance))),
        min=round4(min(vector)),
        max=round4(max(vector)),
        norm=round4(math.sqrt(sq_total)),
    )


BenchmarkExpected = Literal["high", "low", "cross_lang", "antonym"]


@dataclass(frozen=True)
class BenchmarkPair:
    """
    A pair of texts with the expected similarity outcome.

    ``cross_lang`` and ``antonym`` pairs are known weak spots of small
    models and are reported without a pass/fail verdict.
    """

    a: str
    b: str
    expected: BenchmarkExpected
    category: str

    def verdict(self, calibrated: float) -> bool | None:
        if self.expected == "high":
            return calibrated >= BENCHMARK_THRESHOLD
        if self.expected == "low":
            return calibrated < BENCHMARK_THRESHOLD
        return None


BENCHMARK_PAIRS: tuple[BenchmarkPair, ...] = (
    # Paraphrases
    BenchmarkPair("今天天气很好", "今天的天气非常棒", "high", "paraphrase"),
    BenchmarkPair("我喜欢读书", "阅读是我的爱好", "high", "paraphrase"),
    BenchmarkPair("I love programming", "Coding is my passion", "high", "paraphrase"),
    # Cross-language
    BenchmarkPair("How to learn programming", "如何学习编程", "cross_lang", "cross_language"),
    BenchmarkPair("The weather is nice today", "今天天气不错", "cross_lang", "cross_language"),
    # Unrelated topics
    BenchmarkPair("今天天气很好", "量子力学的基本原理", "low", "unrelated"),
    BenchmarkPair("我喜欢吃苹果", "The stock market crashed today", "low", "unrelated"),
    BenchmarkPair("如何做红烧肉", "Machine learning algorithms", "low", "unrelated"),
    # Opposites
    BenchmarkPair("这个产品非常好用", "这个产品太难用了", "antonym", "antonym"),
    BenchmarkPair("I am very happy", "I am extremely sad", "antonym", "antonym"),
)
