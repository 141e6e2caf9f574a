"""
Shared pytest fixtures for Prizm tests.
"""

import asyncio
import hashlib
import math
from pathlib import Path
from typing import Awaitable, Callable, Optional

import pytest

from prizm.core.config import Settings
from prizm.ml.embedding_backend import InferenceResult, LoadOptions
from prizm.services.embedding_service import EmbeddingService
from prizm.services.memory_index import MemoryIndex

FAKE_DIMENSION = 384


def fake_vector(text: str, dimension: int = FAKE_DIMENSION) -> list[float]:
    """Deterministic unit-length vector derived from the text."""
    values: list[float] = []
    counter = 0
    while len(values) < dimension:
        digest = hashlib.sha256(f"{text}:{counter}".encode("utf-8")).digest()
        values.extend((byte - 127.5) / 127.5 for byte in digest)
        counter += 1
    values = values[:dimension]
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


class FakeHandle:
    """Loaded fake model. Counts calls and disposals."""

    def __init__(self, dimension: int = FAKE_DIMENSION, dims_in_result: bool = True) -> None:
        self.dimension = dimension
        self.dims_in_result = dims_in_result
        self.calls: list[tuple[str, str, bool]] = []
        self.dispose_count = 0
        self.fail_with: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.warmup_gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(
        self,
        text: str,
        *,
        pooling: str = "mean",
        normalize: bool = True,
    ) -> InferenceResult:
        self.calls.append((text, pooling, normalize))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if text == "warmup" and self.warmup_gate is not None:
                await self.warmup_gate.wait()
            elif self.gate is not None and text != "warmup":
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_with is not None and text != "warmup":
                raise self.fail_with
            data = fake_vector(text, self.dimension)
            dims = (1, self.dimension) if self.dims_in_result else None
            return InferenceResult(data=data, dims=dims)
        finally:
            self.in_flight -= 1

    def dispose(self) -> None:
        self.dispose_count += 1


class FakeBackend:
    """
    Backend double for EmbeddingService.

    ``gate`` blocks load() until set, ``load_error`` makes load() fail,
    ``load_delay`` makes it slow, ``warmup_gate`` blocks the warm-up
    call of the returned handle and ``on_load`` is awaited right before
    load() returns.
    """

    def __init__(self) -> None:
        self.load_calls: list[tuple[str, LoadOptions]] = []
        self.handles: list[FakeHandle] = []
        self.gate: Optional[asyncio.Event] = None
        self.load_error: Optional[Exception] = None
        self.load_delay: float = 0.0
        self.warmup_gate: Optional[asyncio.Event] = None
        self.on_load: Optional[Callable[[], Awaitable[None]]] = None
        self.dimension = FAKE_DIMENSION
        self.dims_in_result = True

    async def load(self, model_name: str, options: LoadOptions) -> FakeHandle:
        self.load_calls.append((model_name, options))
        if self.gate is not None:
            await self.gate.wait()
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        handle = FakeHandle(self.dimension, self.dims_in_result)
        handle.warmup_gate = self.warmup_gate
        self.handles.append(handle)
        if self.on_load is not None:
            await self.on_load()
        return handle

    @property
    def load_count(self) -> int:
        return len(self.load_calls)

    @property
    def last_handle(self) -> FakeHandle:
        return self.handles[-1]


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "models"


@pytest.fixture
def bundled_dir(tmp_path: Path) -> Path:
    return tmp_path / "bundled"


@pytest.fixture
def make_settings(cache_dir: Path, bundled_dir: Path):
    """Factory for Settings isolated to the test's temporary directory."""

    def _make(**overrides) -> Settings:
        values = {
            "EMBEDDING_ENABLED": True,
            "EMBEDDING_MODEL": "TaylorAI/bge-micro-v2",
            "EMBEDDING_CACHE_DIR": str(cache_dir),
            "EMBEDDING_BUNDLED_DIR": str(bundled_dir),
            "EMBEDDING_PRECISION": "q8",
            "EMBEDDING_MAX_CONCURRENCY": 1,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def test_settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def memory_index() -> MemoryIndex:
    return MemoryIndex()


@pytest.fixture
def service(test_settings, fake_backend, memory_index) -> EmbeddingService:
    """EmbeddingService wired to the fake backend."""
    return EmbeddingService(
        test_settings,
        backend=fake_backend,
        memory_index=memory_index,
    )


def write_model_markers(base_dir: Path, model_name: str) -> Path:
    """Create the marker files that make ``base_dir`` hold ``model_name``."""
    model_dir = base_dir / model_name
    model_dir.mkdir(parents=True, exist_ok=True)
    (model_dir / "config.json").write_text("{}")
    (model_dir / "tokenizer.json").write_text("{}")
    return model_dir


@pytest.fixture
def model_markers():
    """The write_model_markers helper, as a fixture."""
    return write_model_markers


@pytest.fixture
def vector_for():
    """The fake_vector helper, as a fixture."""
    return fake_vector
