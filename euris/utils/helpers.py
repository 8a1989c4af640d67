"""
Utility helper functions for safe data handling.
"""
from typing import Any, Optional


def safe_str(value: Any, default: str = "") -> str:
    """
    Safely convert value to string, handling None.

    Args:
        value: Any value to convert
        default: Default string if value is None or empty

    Returns:
        String representation or default
    """
    if value is None or value == "":
        return default
    return str(value)


def safe_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """
    Safely convert value to float, handling None and invalid values.

    Args:
        value: Any value to convert
        default: Returned if conversion fails

    Returns:
        Float or default
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def format_metres(value: Optional[float]) -> str:
    """Format a length in metres as '5.25m', or '-' when unknown."""
    if value is None:
        return "-"
    return f"{value:g}m"
