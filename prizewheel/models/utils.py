"""Utility helpers for the models package."""

from __future__ import annotations

import re
import secrets
import string
from datetime import datetime, timezone
from typing import Optional

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
_AREA_CODE = re.compile(r"\(\d{2}\)\s*")


def generate_session_key(prefix: str = "session", length: int = 16) -> str:
    """Return a random base62 identifier for a participant without e-mail."""

    suffix = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
    return f"{prefix}-{suffix}"


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Trim and lower-case an e-mail address; blank values become ``None``."""

    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def normalize_optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def mask_email(value: Optional[str]) -> str:
    """Return a log-safe rendition of an e-mail address."""

    if not value:
        return "<none>"
    local, _, domain = value.partition("@")
    if not domain:
        return local[:1] + "***"
    return f"{local[:1]}***@{domain}"


def mask_phone(value: Optional[str]) -> Optional[str]:
    """Hide the middle digits of a ``(11) 98765-4321`` style phone number.

    Numbers in any other shape are returned unchanged.
    """

    if not value or value.count("-") != 1:
        return value
    head, _, tail = value.partition("-")
    match = _AREA_CODE.match(head)
    area = match.group(0) if match else ""
    number = head[len(area):].strip()
    if len(number) == 5:
        return f"{area}{number[0]}****-{tail}"
    if len(number) == 4:
        return f"{area}****-{tail}"
    return value


def dt_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO 8601 string in UTC, or return None."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        # SQLite drops tzinfo; stored values are always UTC.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
