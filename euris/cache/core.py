"""
Core cache data structures.
"""
from dataclasses import dataclass
from typing import Generic, Hashable, Optional, TypeVar
from enum import Enum

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiryMode(Enum):
    """How an entry's age is measured."""
    EXPIRE_AFTER_WRITE = "expire_after_write"    # since the value was loaded
    EXPIRE_AFTER_ACCESS = "expire_after_access"  # since the last read


class EntryState(Enum):
    """Lifecycle of a single cache entry."""
    EMPTY = "empty"
    LOADING = "loading"
    PRESENT = "present"
    FAILED = "failed"


@dataclass(frozen=True)
class ExpiryPolicy:
    """
    Expiry policy of one cache instance, fixed at construction.
    """
    mode: ExpiryMode
    duration_seconds: float

    def __post_init__(self):
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

    @classmethod
    def after_write(cls, seconds: float) -> "ExpiryPolicy":
        return cls(ExpiryMode.EXPIRE_AFTER_WRITE, seconds)

    @classmethod
    def after_access(cls, seconds: float) -> "ExpiryPolicy":
        return cls(ExpiryMode.EXPIRE_AFTER_ACCESS, seconds)

    @property
    def refreshes_on_access(self) -> bool:
        return self.mode is ExpiryMode.EXPIRE_AFTER_ACCESS


@dataclass
class CacheEntry(Generic[K, V]):
    """
    Represents a cached item with the timestamps its expiry is measured from.

    Timestamps are wall-clock seconds (time.time()).
    """
    key: K
    state: EntryState = EntryState.EMPTY
    value: Optional[V] = None
    loaded_at: float = 0.0
    last_accessed_at: float = 0.0

    @property
    def is_present(self) -> bool:
        return self.state is EntryState.PRESENT

    @property
    def is_loading(self) -> bool:
        return self.state is EntryState.LOADING

    def age_seconds(self, policy: ExpiryPolicy, now: float) -> float:
        """Seconds elapsed since the timestamp the policy measures from."""
        if policy.refreshes_on_access:
            return now - self.last_accessed_at
        return now - self.loaded_at

    def is_expired(self, policy: ExpiryPolicy, now: float) -> bool:
        """Check if a present value has outlived its policy."""
        if not self.is_present:
            return False
        return self.age_seconds(policy, now) >= policy.duration_seconds

    def touch(self, now: float) -> None:
        """Record a read. Timestamps never move backwards."""
        if now > self.last_accessed_at:
            self.last_accessed_at = now

    def mark_present(self, value: V, now: float) -> None:
        self.value = value
        self.state = EntryState.PRESENT
        self.loaded_at = max(now, self.loaded_at)
        self.last_accessed_at = max(now, self.last_accessed_at)
