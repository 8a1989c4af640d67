"""
Async loading cache with expiry policies and request coalescing.
"""
from .core import CacheEntry, EntryState, ExpiryMode, ExpiryPolicy
from .ttl_policies import (
    POLICY_CONFIG,
    CacheCategory,
    get_policy_for_category,
)
from .coalescer import RequestCoalescer
from .loading_cache import AsyncLoadingCache

__all__ = [
    # Core types
    "CacheEntry",
    "EntryState",
    "ExpiryMode",
    "ExpiryPolicy",
    # Expiry policies
    "POLICY_CONFIG",
    "CacheCategory",
    "get_policy_for_category",
    # Coalescing
    "RequestCoalescer",
    # Cache
    "AsyncLoadingCache",
]
