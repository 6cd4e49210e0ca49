"""Intent-routed question answering over a résumé knowledge base."""

from .config import CacheConfig, RouterConfig
from .router import Router

__all__ = ["CacheConfig", "Router", "RouterConfig"]
