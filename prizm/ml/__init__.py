"""
Machine Learning module for Prizm.

Contains the embedding model backend, model source resolution,
similarity helpers and memory utilities.
"""

from prizm.ml.embedding_backend import (
    EmbeddingBackend,
    EmbeddingHandle,
    InferenceResult,
    LoadOptions,
    TransformersEmbeddingBackend,
)
from prizm.ml.model_source import (
    ModelSourceResolution,
    model_exists_in,
    resolve_bundled_models_dir,
    resolve_model_source,
)

__all__ = [
    # Backend
    "EmbeddingBackend",
    "EmbeddingHandle",
    "InferenceResult",
    "LoadOptions",
    "TransformersEmbeddingBackend",
    # Source resolution
    "ModelSourceResolution",
    "model_exists_in",
    "resolve_bundled_models_dir",
    "resolve_model_source",
]
