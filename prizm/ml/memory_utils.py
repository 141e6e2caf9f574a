"""
Memory utilities for Prizm.

Process and GPU memory readings used for observability of the
embedding model. None of these values gate any behavior.
"""

import gc

import psutil
import structlog

logger = structlog.get_logger()

BYTES_PER_MB = 1024 * 1024


def collect_garbage() -> None:
    """Best-effort garbage collection hint before a memory measurement."""
    gc.collect()
    try:
        import torch

        if torch.cuda.is_available():
            torch.cuda.empty_cache()
    except ImportError:
        pass


def get_process_memory_bytes() -> int:
    """
    Get the resident set size of the current process.

    Returns:
        RSS in bytes, or 0 if it cannot be read.
    """
    try:
        return int(psutil.Process().memory_info().rss)
    except psutil.Error as e:
        logger.warning("failed_to_get_process_memory", error=str(e))
        return 0


def get_used_memory_mb(device: int = 0) -> int:
    """
    Get currently used GPU memory in megabytes.

    Args:
        device: CUDA device index (default: 0)

    Returns:
        Used GPU memory in MB, or 0 if CUDA is not available.
    """
    try:
        import torch

        if not torch.cuda.is_available():
            return 0

        return int(torch.cuda.memory_allocated(device) / BYTES_PER_MB)

    except Exception as e:
        logger.warning("failed_to_get_gpu_memory", error=str(e))
        return 0


def bytes_to_mb(num_bytes: int) -> float:
    """Convert bytes to megabytes rounded to two decimals."""
    return round(num_bytes / BYTES_PER_MB, 2)


def is_cuda_available() -> bool:
    """
    Check if CUDA is available.

    Returns:
        True if CUDA is available, False otherwise.
    """
    try:
        import torch

        return torch.cuda.is_available()
    except Exception:
        return False


def format_memory_mb(memory_mb: float) -> str:
    """
    Format memory in MB to a human-readable string.

    Args:
        memory_mb: Memory in megabytes

    Returns:
        Human-readable memory string (e.g., "8.0 GB", "512 MB")
    """
    if memory_mb >= 1024:
        return f"{memory_mb / 1024:.1f} GB"
    return f"{memory_mb:g} MB"
