"""Shared utilities used across the booking engine."""

import re
import uuid
from datetime import datetime, timezone


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("070 123 45 67")
        '0701234567'
        >>> normalize_phone("+46 (70) 123-4567")
        '+46701234567'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def normalize_email(value: str) -> str:
    """Lowercase and trim an email address for uniqueness comparisons."""
    return value.strip().lower()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate an entity id such as ``booking-1a2b3c4d5e6f``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
