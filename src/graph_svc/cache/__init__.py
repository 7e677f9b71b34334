"""Caching layer for graph service."""

from .memory import InMemoryCache, CacheEntry
from .policies import CachePolicy, CachePolicyPublisher, CachePolicySet

__all__ = [
    "InMemoryCache",
    "CacheEntry",
    "CachePolicy",
    "CachePolicyPublisher",
    "CachePolicySet",
]
