"""
Local embedding service.

Owns the lifetime of one sentence-embedding model:

    idle -> loading -> ready -> disposing -> idle
    loading -> error -> loading (reset)
    error -> disposing -> idle

The model is loaded once (concurrent load requests share the same
in-flight task), inference calls are admitted through a bounded FIFO
queue, and every call feeds the latency/error statistics. The service
registers itself with the memory index so memories get vectors as soon
as the model is ready.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Sequence

from prizm.core.config import PRECISION_MODES, Settings
from prizm.core.errors import (
    EmbeddingDisposedError,
    InferenceError,
    ModelDisabledError,
    ModelLoadError,
    ModelLoadTimeoutError,
    ModelNotReadyError,
    PrizmError,
    ValidationError,
)
from prizm.core.logging import get_logger
from prizm.ml.embedding_backend import (
    EmbeddingBackend,
    EmbeddingHandle,
    InferenceResult,
    LoadOptions,
    TransformersEmbeddingBackend,
)
from prizm.ml.memory_utils import (
    bytes_to_mb,
    collect_garbage,
    format_memory_mb,
    get_process_memory_bytes,
)
from prizm.ml.model_source import (
    ModelSourceResolution,
    resolve_bundled_models_dir,
    resolve_model_source,
)
from prizm.services.embedding_stats import EmbeddingStats, StatsSnapshot
from prizm.services.inference_queue import InferenceSlotQueue
from prizm.services.memory_index import MemoryIndex

logger = get_logger(__name__)

# Configuration constants
LOAD_TIMEOUT_SECONDS = 120.0
DEFAULT_DIMENSION = 384
WARMUP_TEXT = "warmup"


class EmbeddingState(str, Enum):
    """Lifecycle state of the embedding model."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    DISPOSING = "disposing"


@dataclass(frozen=True)
class EmbeddingStatus:
    """Full status report for dashboards and health checks."""

    state: EmbeddingState
    model_name: str
    dimension: int
    enabled: bool
    precision: str
    source: str
    stats: StatsSnapshot
    cache_dir: str
    model_memory_mb: float
    process_memory_mb: float
    up_since_ms: Optional[int]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_vector(data: Any) -> list[float]:
    """Convert backend output (list, numpy array, tensor) to a list of floats."""
    if hasattr(data, "tolist"):
        data = data.tolist()
    return [float(x) for x in data]


def _dimension_of(result: InferenceResult) -> int:
    """Read the vector size from the result shape, then the data length."""
    dims: Optional[Sequence[int]] = result.dims
    if dims is not None and len(dims) > 1:
        return int(dims[1])
    if result.data is not None and len(result.data) > 0:
        return len(result.data)
    return DEFAULT_DIMENSION


async def _release_handle(handle: Any) -> None:
    """Call the handle's dispose(), sync or async, if it has one."""
    dispose = getattr(handle, "dispose", None)
    if dispose is None:
        return
    result = dispose()
    if inspect.isawaitable(result):
        await result


class EmbeddingService:
    """
    Lifecycle and concurrency controller for the local embedding model.

    Only the application wiring creates an instance; tests create their
    own with a fake backend.

    Attributes:
        settings: Configuration read on every init()
        backend: Loads the model and returns an inference handle
        memory_index: Downstream registry the service registers with
        stats: Latency and error statistics
    """

    def __init__(
        self,
        settings: Settings,
        backend: Optional[EmbeddingBackend] = None,
        memory_index: Optional[MemoryIndex] = None,
        load_timeout: float = LOAD_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            settings: Application settings
            backend: Model backend. Defaults to TransformersEmbeddingBackend.
            memory_index: Provider registry. Defaults to a private MemoryIndex.
            load_timeout: Seconds to wait for the model to load
        """
        self.settings = settings
        self.backend: EmbeddingBackend = backend or TransformersEmbeddingBackend(
            max_workers=settings.MAX_LOAD_WORKERS,
            hf_token=settings.HF_TOKEN,
        )
        self.memory_index = memory_index or MemoryIndex()
        self.load_timeout = load_timeout
        self.stats = EmbeddingStats()

        self._state = EmbeddingState.IDLE
        self._handle: Optional[EmbeddingHandle] = None
        self._model_name = ""
        self._cache_dir = ""
        self._precision = ""
        self._precision_override: Optional[str] = None
        self._resolution: Optional[ModelSourceResolution] = None
        self._dimension = 0
        self._ready_at_ms: Optional[int] = None
        self._model_memory_bytes = 0

        # Single in-flight load shared by concurrent callers
        self._load_task: Optional[asyncio.Task[None]] = None
        # Bumped by dispose(); a load started under an older value is stale
        self._load_generation = 0

        self._queue = InferenceSlotQueue(settings.EMBEDDING_MAX_CONCURRENCY)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """
        Load the configured model and register with the memory index.

        Load failures are logged, the provider is cleared and the state is
        left as ``error``; they are never raised from here.
        """
        config = self.settings

        if not config.EMBEDDING_ENABLED:
            logger.info("embedding_disabled", setting="PRIZM_EMBEDDING_ENABLED")
            return

        self._model_name = config.EMBEDDING_MODEL
        self._cache_dir = str(Path(config.EMBEDDING_CACHE_DIR).expanduser())
        self._precision = self._precision_override or config.EMBEDDING_PRECISION
        self._queue.max_concurrent = config.EMBEDDING_MAX_CONCURRENCY

        cache_path = Path(self._cache_dir)
        if not cache_path.exists():
            cache_path.mkdir(parents=True, exist_ok=True)
            logger.info("embedding_cache_dir_created", path=self._cache_dir)

        # A load already in flight keeps the resolution it started with
        if self._load_task is None:
            self._resolution = resolve_model_source(
                self._cache_dir,
                self._model_name,
                self._find_bundled_dir(),
            )

        # Registered before the model is ready; embed() waits for the load
        self.memory_index.register_provider(self.embed)

        try:
            await self._load_model()
        except EmbeddingDisposedError:
            # dispose() won the race; a later init() owns the provider now
            logger.info("embedding_model_load_interrupted", model=self._model_name)
        except PrizmError as e:
            logger.error(
                "embedding_model_load_failed",
                model=self._model_name,
                error=str(e),
            )
            logger.warning(
                "embedding_unavailable",
                message="Memories will be saved without vectors until embedding is available",
            )
            self.memory_index.clear_provider()

    def _find_bundled_dir(self) -> Optional[Path]:
        if self.settings.EMBEDDING_BUNDLED_DIR:
            return resolve_bundled_models_dir([self.settings.EMBEDDING_BUNDLED_DIR])
        return resolve_bundled_models_dir()

    async def _load_model(self) -> None:
        """
        Load the model, or join the load already in progress.

        Raises:
            ModelLoadError: If loading fails (ModelLoadTimeoutError on timeout)
            EmbeddingDisposedError: If dispose() interrupted the load
        """
        if self._state is EmbeddingState.READY:
            return

        task = self._load_task
        if task is None:
            task = asyncio.ensure_future(self._do_load_model())
            self._load_task = task
            task.add_done_callback(self._on_load_done)

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise EmbeddingDisposedError("Embedding model disposed while loading") from None
            raise

    def _on_load_done(self, task: "asyncio.Task[None]") -> None:
        if self._load_task is task:
            self._load_task = None
        if not task.cancelled():
            # Waiters receive the error through shield(); mark it retrieved here
            task.exception()

    def _check_load_current(self, generation: int) -> None:
        if generation != self._load_generation:
            logger.info("embedding_model_load_superseded", model=self._model_name)
            raise EmbeddingDisposedError("Embedding model disposed while loading")

    async def _do_load_model(self) -> None:
        self._state = EmbeddingState.LOADING
        started = time.perf_counter()

        resolution = self._resolution or ModelSourceResolution(
            effective_dir=self._cache_dir,
            local_files_only=False,
            source="download",
        )
        options = LoadOptions(
            precision=self._precision,
            cache_dir=resolution.effective_dir,
            local_files_only=resolution.local_files_only,
        )

        logger.info(
            "embedding_model_loading",
            model=self._model_name,
            precision=self._precision,
            source=resolution.source,
            dir=resolution.effective_dir,
        )

        collect_garbage()
        memory_before = get_process_memory_bytes()

        generation = self._load_generation
        handle: Optional[EmbeddingHandle] = None
        try:
            try:
                handle = await asyncio.wait_for(
                    self.backend.load(self._model_name, options),
                    timeout=self.load_timeout,
                )
            except asyncio.TimeoutError:
                raise ModelLoadTimeoutError(
                    f"Model load timeout after {int(self.load_timeout * 1000)}ms",
                    details={"model": self._model_name, "timeout_s": self.load_timeout},
                ) from None

            # wait_for can return a finished result even though the task was cancelled
            self._check_load_current(generation)
            warmup = await handle(WARMUP_TEXT, pooling="mean", normalize=True)
            self._check_load_current(generation)
            dimension = _dimension_of(warmup)

        except (asyncio.CancelledError, EmbeddingDisposedError):
            if handle is not None:
                await _release_handle(handle)
            raise
        except Exception as e:
            if handle is not None:
                await _release_handle(handle)
            if generation != self._load_generation:
                raise EmbeddingDisposedError(
                    "Embedding model disposed while loading"
                ) from e
            error = e if isinstance(e, ModelLoadError) else ModelLoadError(
                str(e),
                details={"model": self._model_name, "error_type": type(e).__name__},
            )
            self._state = EmbeddingState.ERROR
            self.stats.set_last_error(error.message)
            if error is e:
                raise
            raise error from e

        self._handle = handle
        self._dimension = dimension
        self._model_memory_bytes = max(0, get_process_memory_bytes() - memory_before)
        self.stats.set_load_time((time.perf_counter() - started) * 1000)
        self._state = EmbeddingState.READY
        self._ready_at_ms = _now_ms()

        logger.info(
            "embedding_model_ready",
            model=self._model_name,
            dimension=self._dimension,
            precision=self._precision,
            memory=format_memory_mb(bytes_to_mb(self._model_memory_bytes)),
            load_time_ms=round(self.stats.model_load_time_ms, 2),
        )

    async def dispose(self) -> None:
        """
        Release the model and return to ``idle``.

        Safe to call repeatedly. Callers waiting for an inference slot are
        rejected with EmbeddingDisposedError; calls already running finish.
        """
        if self._state in (EmbeddingState.IDLE, EmbeddingState.DISPOSING):
            return

        self._state = EmbeddingState.DISPOSING
        logger.info("embedding_model_disposing", model=self._model_name)

        self._load_generation += 1
        load_task = self._load_task
        if load_task is not None:
            if not load_task.done():
                load_task.cancel()
            self._load_task = None

        try:
            self.memory_index.clear_provider()
            if self._handle is not None:
                await _release_handle(self._handle)
        except Exception as e:
            logger.warning("embedding_dispose_error", error=str(e))
        finally:
            self._handle = None
            self._dimension = 0
            self._ready_at_ms = None
            self._model_memory_bytes = 0
            rejected = self._queue.reject_all(
                lambda: EmbeddingDisposedError("Embedding model disposed")
            )
            self._state = EmbeddingState.IDLE
            logger.info("embedding_model_disposed", rejected_waiters=rejected)

    async def reset(self, precision: Optional[str] = None) -> None:
        """
        Dispose, clear statistics and load again.

        Args:
            precision: New precision mode (q4, q8, fp16, fp32). Kept for
                later loads until changed again.

        Raises:
            ValidationError: If precision is not a known mode
        """
        if precision is not None and precision not in PRECISION_MODES:
            raise ValidationError(
                f"Invalid precision: {precision}. Valid: {', '.join(PRECISION_MODES)}",
                details={"precision": precision, "valid": list(PRECISION_MODES)},
            )

        logger.info("embedding_model_resetting", precision=precision)
        await self.dispose()
        self.stats.reset()
        if precision is not None:
            self._precision_override = precision
        await self.init()

    # =========================================================================
    # Inference
    # =========================================================================

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Waits for an in-flight load first, then for a free inference slot.

        Returns:
            Normalized, mean-pooled embedding vector.

        Raises:
            ModelNotReadyError: If the model is not ready (ModelDisabledError
                when embedding is turned off)
            InferenceError: If the backend fails
            EmbeddingDisposedError: If dispose() ran while waiting for a slot
        """
        if self._load_task is not None:
            try:
                await self._load_model()
            except PrizmError as e:
                raise ModelNotReadyError(self._state.value) from e

        handle = self._handle
        if self._state is not EmbeddingState.READY or handle is None:
            if not self.settings.EMBEDDING_ENABLED:
                raise ModelDisabledError(self._state.value)
            raise ModelNotReadyError(self._state.value)

        async with self._queue.slot():
            started = time.perf_counter()
            try:
                result = await handle(text, pooling="mean", normalize=True)
                vector = _to_vector(result.data)
            except Exception as e:
                self.stats.record_error(str(e))
                logger.warning(
                    "embedding_inference_failed",
                    model=self._model_name,
                    error=str(e),
                )
                raise InferenceError(
                    str(e),
                    details={"model": self._model_name, "error_type": type(e).__name__},
                ) from e

            self.stats.record_latency((time.perf_counter() - started) * 1000)
            self.stats.record_call(len(text))
            return vector

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed several texts one after another, preserving order.

        Each text goes through the shared admission queue on its own, so
        a large batch cannot starve single-text callers.
        """
        results: list[list[float]] = []
        for text in texts:
            results.append(await self.embed(text))
        return results

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def state(self) -> EmbeddingState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is EmbeddingState.READY

    @property
    def queue(self) -> InferenceSlotQueue:
        return self._queue

    def get_state(self) -> EmbeddingState:
        """Current lifecycle state."""
        return self._state

    def get_dimension(self) -> int:
        """Vector size of the loaded model, 0 when not loaded."""
        return self._dimension

    def get_model_name(self) -> str:
        return self._model_name or self.settings.EMBEDDING_MODEL

    def _status_source(self) -> str:
        if self._resolution is None:
            return "unknown"
        if self._resolution.local_files_only:
            return "bundled"
        if self._resolution.effective_dir == self._cache_dir:
            return "cache"
        return "unknown"

    def get_status(self) -> EmbeddingStatus:
        """Full status and statistics. Safe to call in any state."""
        config = self.settings
        cache_dir = (
            (self._resolution.effective_dir if self._resolution else "")
            or self._cache_dir
            or str(Path(config.EMBEDDING_CACHE_DIR).expanduser())
        )

        return EmbeddingStatus(
            state=self._state,
            model_name=self.get_model_name(),
            dimension=self._dimension,
            enabled=config.EMBEDDING_ENABLED,
            precision=self._precision_override or self._precision or config.EMBEDDING_PRECISION,
            source=self._status_source(),
            stats=self.stats.to_snapshot(),
            cache_dir=cache_dir,
            model_memory_mb=bytes_to_mb(self._model_memory_bytes),
            process_memory_mb=bytes_to_mb(get_process_memory_bytes()),
            up_since_ms=self._ready_at_ms,
        )
