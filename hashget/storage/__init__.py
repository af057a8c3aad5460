"""
Storage Layer.

This package handles all data persistence: the configuration file and the
content-addressed hash cache.
"""

from .cache import HashCache
from .config_manager import ConfigManager

__all__ = ["ConfigManager", "HashCache"]
