"""Unit tests for the transformers embedding backend."""

import asyncio
import math
import threading
from unittest.mock import MagicMock, patch

import pytest
import torch
from transformers import BatchEncoding, BertConfig, BertModel

from prizm.core.errors import ModelLoadError
from prizm.ml.embedding_backend import (
    LoadOptions,
    TransformersEmbeddingBackend,
    TransformersEmbeddingHandle,
)

MODEL = "TaylorAI/bge-micro-v2"


@pytest.fixture
def backend():
    backend = TransformersEmbeddingBackend(max_workers=1)
    yield backend
    backend.shutdown()


class TestEnsureModelFiles:
    """Tests for locating or downloading model files."""

    def test_existing_model_is_not_downloaded(self, backend, tmp_path, model_markers):
        """Test that a local copy skips the download."""
        model_markers(tmp_path, MODEL)
        options = LoadOptions(precision="q8", cache_dir=str(tmp_path), local_files_only=False)

        with patch("prizm.ml.embedding_backend.snapshot_download") as mock_download:
            path = backend._ensure_model_files(MODEL, options)

        mock_download.assert_not_called()
        assert path == tmp_path / MODEL

    def test_downloads_into_model_directory(self, backend, tmp_path):
        """Test that downloads land in <cache_dir>/<model_name>."""
        options = LoadOptions(precision="q8", cache_dir=str(tmp_path), local_files_only=False)

        with patch("prizm.ml.embedding_backend.snapshot_download") as mock_download:
            backend._ensure_model_files(MODEL, options)

        mock_download.assert_called_once_with(
            repo_id=MODEL,
            local_dir=str(tmp_path / MODEL),
            token=None,
        )

    def test_offline_without_files_fails(self, backend, tmp_path):
        """Test that an offline load never reaches the network."""
        options = LoadOptions(precision="q8", cache_dir=str(tmp_path), local_files_only=True)

        with patch("prizm.ml.embedding_backend.snapshot_download") as mock_download:
            with pytest.raises(ModelLoadError):
                backend._ensure_model_files(MODEL, options)

        mock_download.assert_not_called()


class TestHandleDispose:
    """Tests for releasing a loaded handle."""

    def test_dispose_drops_references(self, backend):
        handle = TransformersEmbeddingHandle(
            model=MagicMock(),
            tokenizer=MagicMock(),
            device="cpu",
            executor=backend._executor,
        )

        handle.dispose()

        assert handle.model is None
        assert handle.tokenizer is None

    @pytest.mark.asyncio
    async def test_inference_after_dispose_fails(self, backend):
        handle = TransformersEmbeddingHandle(
            model=MagicMock(),
            tokenizer=MagicMock(),
            device="cpu",
            executor=backend._executor,
        )
        handle.dispose()

        with pytest.raises(RuntimeError, match="disposed"):
            await handle("hello")


class _GatedTokenizer:
    """Tokenizer that blocks worker threads until released."""

    def __init__(self, admitted: int) -> None:
        self.release = threading.Event()
        self.entered = threading.Semaphore(0)
        self._admitted = admitted

    def __call__(self, text, **kwargs):
        self.entered.release()
        self.release.wait(timeout=5)
        return BatchEncoding({
            "input_ids": torch.tensor([[2, 5, 7, 3]]),
            "attention_mask": torch.ones(1, 4, dtype=torch.long),
        })

    def wait_until_entered(self) -> None:
        for _ in range(self._admitted):
            assert self.entered.acquire(timeout=5)


@pytest.fixture
def tiny_bert():
    torch.manual_seed(0)
    config = BertConfig(
        vocab_size=16,
        hidden_size=32,
        num_hidden_layers=1,
        num_attention_heads=2,
        intermediate_size=37,
        max_position_embeddings=16,
    )
    return BertModel(config).eval()


class TestHandleInference:
    """Tests for inference on a real transformers model."""

    @pytest.mark.asyncio
    async def test_returns_normalized_mean_pooled_vector(self, tiny_bert):
        backend = TransformersEmbeddingBackend(max_workers=1)
        tokenizer = _GatedTokenizer(admitted=1)
        tokenizer.release.set()
        handle = TransformersEmbeddingHandle(
            model=tiny_bert,
            tokenizer=tokenizer,
            device="cpu",
            executor=backend._executor,
        )

        try:
            result = await handle("hello")
        finally:
            backend.shutdown()

        assert len(result.data) == 32
        assert tuple(result.dims) == (1, 32)
        assert math.sqrt(sum(v * v for v in result.data)) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_admitted_calls_survive_dispose(self, tiny_bert):
        """Test that calls already on the executor finish after dispose()."""
        backend = TransformersEmbeddingBackend(max_workers=2)
        tokenizer = _GatedTokenizer(admitted=2)
        handle = TransformersEmbeddingHandle(
            model=tiny_bert,
            tokenizer=tokenizer,
            device="cpu",
            executor=backend._executor,
        )

        try:
            calls = [
                asyncio.create_task(handle("first")),
                asyncio.create_task(handle("second")),
            ]
            await asyncio.get_running_loop().run_in_executor(
                None, tokenizer.wait_until_entered
            )

            handle.dispose()
            tokenizer.release.set()
            results = await asyncio.wait_for(asyncio.gather(*calls), timeout=10)
        finally:
            backend.shutdown()

        assert [len(result.data) for result in results] == [32, 32]
        assert handle.model is None

        with pytest.raises(RuntimeError, match="disposed"):
            await handle("third")
