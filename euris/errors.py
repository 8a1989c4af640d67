"""
Exception hierarchy for the EuRIS resource provider.
"""
from typing import Optional


class EurisError(Exception):
    """Base class for all EuRIS resource errors."""
    pass


class UpstreamUnavailable(EurisError):
    """Raised when the EuRIS portal cannot be reached or returns an error."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class NotFound(EurisError):
    """Raised for an unknown composite key or an unregistered source kind."""
    pass


class MalformedKey(NotFound):
    """Raised when a composite key cannot be split into kind and id."""
    pass


class Exhausted(EurisError):
    """
    Raised when a source listed an entity but its details could not be loaded.

    Region queries drop the entity and keep going.
    """

    def __init__(self, kind: str, entity_id: str, cause: BaseException):
        super().__init__(f"Details unavailable for {kind} {entity_id}: {cause}")
        self.kind = kind
        self.entity_id = entity_id
        self.cause = cause


class CacheClosedError(EurisError):
    """Raised when a cache is used after end()."""
    pass
