"""
Model source resolution for the local embedding model.

Decides which directory the model is loaded from and whether the
loader may reach the network, in priority order:

1. The user cache directory already holds the model -> use it.
2. The bundled (offline) assets directory holds it -> use it, offline only.
3. Neither -> use the cache directory and allow a download.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal, Optional

import structlog

logger = structlog.get_logger()

# Files that must exist under <dir>/<model_name>/ for a directory to "have" the model
MODEL_MARKER_FILES: tuple[str, ...] = ("config.json", "tokenizer.json")

ModelSource = Literal["cache", "bundled", "download"]


@dataclass(frozen=True)
class ModelSourceResolution:
    """Where to load the model from, decided once per load attempt."""

    effective_dir: str
    local_files_only: bool
    source: ModelSource

    def model_path(self, model_name: str) -> Path:
        """Directory holding (or receiving) the model files."""
        return Path(self.effective_dir) / model_name


def model_exists_in(base_dir: str | Path, model_name: str) -> bool:
    """
    Check whether a directory contains the model's key files.

    Args:
        base_dir: Directory to look in
        model_name: Model identifier, e.g. "TaylorAI/bge-micro-v2"

    Returns:
        True if both marker files exist under <base_dir>/<model_name>/.
    """
    model_dir = Path(base_dir) / model_name
    return all((model_dir / marker).is_file() for marker in MODEL_MARKER_FILES)


def default_bundled_candidates() -> list[Path]:
    """
    Candidate locations of the bundled models directory.

    The package-relative ``assets/models`` directory comes first, then
    ``assets/models`` under the current working directory.
    """
    package_root = Path(__file__).resolve().parent.parent
    return [
        package_root.parent / "assets" / "models",
        Path.cwd() / "assets" / "models",
    ]


def resolve_bundled_models_dir(
    candidates: Optional[Iterable[str | Path]] = None,
) -> Optional[Path]:
    """
    Find the first existing bundled models directory.

    Args:
        candidates: Directories to try in order. Defaults to
            default_bundled_candidates().

    Returns:
        The first candidate that exists, or None.
    """
    if candidates is None:
        candidates = default_bundled_candidates()
    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_dir():
            return path
    return None


def resolve_model_source(
    cache_dir: str | Path,
    model_name: str,
    bundled_dir: Optional[str | Path] = None,
) -> ModelSourceResolution:
    """
    Resolve where the model should be loaded from.

    Args:
        cache_dir: User cache directory (writable, may trigger downloads)
        model_name: Model identifier
        bundled_dir: Offline assets directory, if any

    Returns:
        The resolution for this load attempt.
    """
    cache_dir = str(cache_dir)

    if model_exists_in(cache_dir, model_name):
        logger.info(
            "embedding_model_found_in_cache",
            path=str(Path(cache_dir) / model_name),
        )
        return ModelSourceResolution(
            effective_dir=cache_dir,
            local_files_only=False,
            source="cache",
        )

    if bundled_dir is not None and model_exists_in(bundled_dir, model_name):
        logger.info(
            "embedding_model_using_bundled",
            path=str(Path(bundled_dir) / model_name),
        )
        return ModelSourceResolution(
            effective_dir=str(bundled_dir),
            local_files_only=True,
            source="bundled",
        )

    logger.info(
        "embedding_model_not_found_locally",
        model=model_name,
        download_dir=cache_dir,
    )
    return ModelSourceResolution(
        effective_dir=cache_dir,
        local_files_only=False,
        source="download",
    )
