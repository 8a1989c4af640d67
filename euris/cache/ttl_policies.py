"""
Expiry configuration per cached data category.
"""
from typing import Dict, Any, Optional
from enum import Enum

from .core import ExpiryMode, ExpiryPolicy


class CacheCategory(Enum):
    """Categories of cached EuRIS data with different expiry behaviors."""
    DETAILS = "details"                  # object details, stable for hours
    OPERATING_TIMES = "operating_times"  # today's schedule, reset daily
    NOTICES = "notices"                  # notices to skippers, change often


# Expiry configuration by category. "minutes" of None means the
# configured cache duration is used.
POLICY_CONFIG: Dict[CacheCategory, Dict[str, Any]] = {
    CacheCategory.DETAILS: {
        "mode": ExpiryMode.EXPIRE_AFTER_ACCESS,
        "minutes": None,
    },
    CacheCategory.OPERATING_TIMES: {
        "mode": ExpiryMode.EXPIRE_AFTER_WRITE,
        "minutes": None,
    },
    CacheCategory.NOTICES: {
        "mode": ExpiryMode.EXPIRE_AFTER_WRITE,
        "minutes": 15,
    },
}


def get_policy_for_category(
    category: CacheCategory,
    cache_duration_minutes: int,
    override_minutes: Optional[int] = None,
) -> ExpiryPolicy:
    """
    Build the expiry policy for a data category.

    Args:
        category: The data category
        cache_duration_minutes: Configured default cache duration
        override_minutes: Explicit duration, wins over the table

    Returns:
        ExpiryPolicy for a cache holding that category
    """
    config = POLICY_CONFIG.get(category, POLICY_CONFIG[CacheCategory.DETAILS])

    minutes = override_minutes
    if minutes is None:
        minutes = config["minutes"]
    if minutes is None:
        minutes = cache_duration_minutes

    return ExpiryPolicy(mode=config["mode"], duration_seconds=minutes * 60)
