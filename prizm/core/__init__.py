"""
Core module for Prizm.

Contains configuration, error handling, and logging setup.
"""

from prizm.core.config import settings
from prizm.core.errors import PrizmError

__all__ = ["settings", "PrizmError"]
