"""Caching for workspace reference data."""

from .config_cache import ConfigCache
from .config_cache import ReferenceConfigProvider

__all__ = ["ConfigCache", "ReferenceConfigProvider"]
