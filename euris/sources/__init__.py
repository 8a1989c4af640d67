"""
EuRIS sources: entity models, formatting and the source registry.
"""
from .models import (
    KEY_SEPARATOR,
    SourceKind,
    Entity,
    Dimensions,
    LockDetails,
    BridgeDetails,
    BerthDetails,
    GenericRisDetails,
    Details,
    OperatingTime,
    Schedule,
    NoticeToSkippers,
    Notices,
    composite_key,
    parse_details,
)
from .formatting import FORMAT_SPECS, FormatSpec, Formatter
from .registry import (
    RESOURCE_SETS,
    CatalogClient,
    SourceDescriptor,
    SourceRegistry,
    build_registry,
    enabled_kinds,
    make_descriptor,
)

__all__ = [
    # Models
    "KEY_SEPARATOR",
    "SourceKind",
    "Entity",
    "Dimensions",
    "LockDetails",
    "BridgeDetails",
    "BerthDetails",
    "GenericRisDetails",
    "Details",
    "OperatingTime",
    "Schedule",
    "NoticeToSkippers",
    "Notices",
    "composite_key",
    "parse_details",
    # Formatting
    "FORMAT_SPECS",
    "FormatSpec",
    "Formatter",
    # Registry
    "RESOURCE_SETS",
    "CatalogClient",
    "SourceDescriptor",
    "SourceRegistry",
    "build_registry",
    "enabled_kinds",
    "make_descriptor",
]
