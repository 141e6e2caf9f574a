"""
Embedding model backends.

The lifecycle controller only depends on the narrow capability defined
here: ``load(model_name, options)`` returns a callable handle that turns
text into an ``InferenceResult``. The default implementation runs a
HuggingFace sentence-embedding model with torch/transformers on a
worker thread.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

import structlog
from huggingface_hub import snapshot_download
from huggingface_hub.utils import GatedRepoError, RepositoryNotFoundError

from prizm.core.errors import ModelLoadError
from prizm.ml.memory_utils import collect_garbage, get_used_memory_mb, is_cuda_available
from prizm.ml.model_source import model_exists_in

logger = structlog.get_logger()


@dataclass(frozen=True)
class LoadOptions:
    """Options passed to a backend when loading a model."""

    precision: str
    cache_dir: str
    local_files_only: bool


@dataclass
class InferenceResult:
    """Raw output of one inference call: flat vector data plus its shape."""

    data: Sequence[float]
    dims: Optional[Sequence[int]] = None


class EmbeddingHandle(Protocol):
    """A loaded model. May also expose ``dispose()`` (sync or async)."""

    async def __call__(
        self,
        text: str,
        *,
        pooling: str = "mean",
        normalize: bool = True,
    ) -> InferenceResult: ...


class EmbeddingBackend(Protocol):
    """Capability that loads embedding models."""

    async def load(self, model_name: str, options: LoadOptions) -> EmbeddingHandle: ...


class TransformersEmbeddingHandle:
    """
    Sentence-embedding model loaded with transformers.

    Inference runs on the backend's executor so the event loop is never
    blocked by the forward pass.
    """

    def __init__(
        self,
        model: Any,
        tokenizer: Any,
        device: str,
        executor: ThreadPoolExecutor,
    ) -> None:
        self.model = model
        self.tokenizer = tokenizer
        self.device = device
        self._executor = executor

    async def __call__(
        self,
        text: str,
        *,
        pooling: str = "mean",
        normalize: bool = True,
    ) -> InferenceResult:
        # References taken here outlive dispose()
        model, tokenizer = self.model, self.tokenizer
        if model is None or tokenizer is None:
            raise RuntimeError("Embedding model has been disposed")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(self._infer_sync, model, tokenizer, text, pooling, normalize),
        )

    def _infer_sync(
        self,
        model: Any,
        tokenizer: Any,
        text: str,
        pooling: str,
        normalize: bool,
    ) -> InferenceResult:
        import torch
        import torch.nn.functional as F

        encoded = tokenizer(
            text,
            return_tensors="pt",
            padding=True,
            truncation=True,
        ).to(self.device)

        with torch.no_grad():
            outputs = model(**encoded)

        hidden = outputs.last_hidden_state
        if pooling == "cls":
            pooled = hidden[:, 0]
        else:
            # Mean over real tokens only
            mask = encoded["attention_mask"].unsqueeze(-1).to(hidden.dtype)
            pooled = (hidden * mask).sum(dim=1) / mask.sum(dim=1).clamp(min=1e-9)

        if normalize:
            pooled = F.normalize(pooled, p=2, dim=1)

        pooled = pooled.float().cpu()
        return InferenceResult(
            data=pooled[0].tolist(),
            dims=tuple(pooled.shape),
        )

    def dispose(self) -> None:
        """Drop model references and free memory."""
        self.model = None
        self.tokenizer = None
        collect_garbage()


class TransformersEmbeddingBackend:
    """
    Loads sentence-embedding models from a local directory or HuggingFace.

    Models live at ``<cache_dir>/<model_name>/`` so that a downloaded model
    is found by the cache check on the next start.

    Precision modes:
    - fp32 / fp16: plain torch dtypes
    - q8: bitsandbytes 8-bit on CUDA, dynamic int8 quantization on CPU
    - q4: bitsandbytes 4-bit NF4 on CUDA, falls back to q8 on CPU
    """

    def __init__(
        self,
        max_workers: int = 1,
        hf_token: Optional[str] = None,
    ) -> None:
        self.hf_token = hf_token
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="prizm-embed-",
        )

    async def load(self, model_name: str, options: LoadOptions) -> TransformersEmbeddingHandle:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(self._load_sync, model_name, options),
        )

    def _ensure_model_files(self, model_name: str, options: LoadOptions) -> Path:
        """Return the local model directory, downloading it if allowed."""
        model_dir = Path(options.cache_dir) / model_name
        if model_exists_in(options.cache_dir, model_name):
            return model_dir

        if options.local_files_only:
            raise ModelLoadError(
                f"Model files for {model_name} not found in {options.cache_dir}",
                details={"model": model_name, "dir": options.cache_dir},
            )

        logger.info("embedding_model_download_started", model=model_name, dir=str(model_dir))
        try:
            snapshot_download(
                repo_id=model_name,
                local_dir=str(model_dir),
                token=self.hf_token,
            )
        except (RepositoryNotFoundError, GatedRepoError) as e:
            raise ModelLoadError(
                f"Cannot download model {model_name}: {e}",
                details={"model": model_name},
            ) from e
        logger.info("embedding_model_download_complete", model=model_name)
        return model_dir

    def _load_sync(self, model_name: str, options: LoadOptions) -> TransformersEmbeddingHandle:
        try:
            import torch
            from transformers import AutoModel, AutoTokenizer, BitsAndBytesConfig
        except ImportError as e:
            raise ModelLoadError(
                "Required packages not installed. Install torch and transformers.",
                details={"missing_package": str(e)},
            )

        model_dir = self._ensure_model_files(model_name, options)
        device = "cuda" if is_cuda_available() else "cpu"
        precision = options.precision

        logger.info(
            "embedding_model_weights_loading",
            model=model_name,
            path=str(model_dir),
            precision=precision,
            device=device,
        )

        tokenizer = AutoTokenizer.from_pretrained(str(model_dir), local_files_only=True)

        model_kwargs: dict[str, Any] = {"local_files_only": True}
        dynamic_int8 = False

        if device == "cuda" and precision == "q4":
            model_kwargs["quantization_config"] = BitsAndBytesConfig(
                load_in_4bit=True,
                bnb_4bit_compute_dtype=torch.float16,
                bnb_4bit_quant_type="nf4",
            )
            model_kwargs["device_map"] = "auto"
        elif device == "cuda" and precision == "q8":
            model_kwargs["quantization_config"] = BitsAndBytesConfig(load_in_8bit=True)
            model_kwargs["device_map"] = "auto"
        elif precision == "fp16":
            model_kwargs["torch_dtype"] = torch.float16
        elif precision in ("q4", "q8"):
            if precision == "q4":
                logger.warning("embedding_q4_unsupported_on_cpu", fallback="q8")
            model_kwargs["torch_dtype"] = torch.float32
            dynamic_int8 = True
        else:
            model_kwargs["torch_dtype"] = torch.float32

        model = AutoModel.from_pretrained(str(model_dir), **model_kwargs)

        if dynamic_int8:
            model = torch.ao.quantization.quantize_dynamic(
                model, {torch.nn.Linear}, dtype=torch.qint8
            )
        if "device_map" not in model_kwargs:
            model = model.to(device)
        model.eval()

        if device == "cuda":
            logger.info("embedding_model_gpu_memory", model=model_name, used_mb=get_used_memory_mb())

        return TransformersEmbeddingHandle(
            model=model,
            tokenizer=tokenizer,
            device=device,
            executor=self._executor,
        )

    def shutdown(self) -> None:
        """Stop the worker threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
