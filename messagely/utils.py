"""
Utility functions for the Messagely API.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current server time (timezone-aware UTC)."""
    return datetime.now(timezone.utc)


def clean(value: Optional[str]) -> str:
    """
    Trim a user-supplied string.

    Args:
        value: Raw value from the request (may be None)

    Returns:
        The stripped string, or "" when value is None or not a string
    """
    if not isinstance(value, str):
        return ""
    return value.strip()


def missing_fields(fields: dict, required: tuple) -> list:
    """
    List the required keys whose values are empty after trimming.

    Args:
        fields: Mapping of field name to raw value
        required: Names that must be present and non-empty

    Returns:
        Field names that are missing, in the order given by required
    """
    missing = [name for name in required if not clean(fields.get(name))]
    if missing:
        logger.debug(f"Missing required fields: {missing}")
    return missing
