"""Runtime configuration read from environment variables and ``.env``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .db.utils import resolve_sqlite_url

# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DB_URL = "sqlite:///./dev.db"


class UniquenessMode(str, Enum):
    """How the one-spin-per-email rule is enforced against the data service.

    ``RELAXED`` performs a read-then-write check and accepts that two devices
    registering the same e-mail at the same instant may both get through.
    ``STRICT`` additionally asks the data service to reject the insert when a
    participant with the same e-mail already exists for the company.
    """

    RELAXED = "relaxed"
    STRICT = "strict"


@dataclass(frozen=True)
class Settings:
    db_url: str
    data_service_url: Optional[str]
    data_service_key: Optional[str]
    data_service_timeout: float
    spin_duration_ms: int
    render_commit_delay_ms: int
    draw_countdown_ms: int
    uniqueness: UniquenessMode
    flag_store_path: Optional[Path]


def _get_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name!r} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"Environment variable {name!r} must be >= {minimum}")
    return value


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_settings() -> Settings:
    """Build :class:`Settings` from the process environment.

    ``.env`` in the working directory is loaded first; variables already
    present in the environment win.

    Raises
    ------
    ValueError
        If a numeric variable is malformed or the uniqueness mode is unknown.
    """
    load_dotenv()

    mode_raw = (os.getenv("PARTICIPATION_UNIQUENESS") or UniquenessMode.RELAXED.value)
    try:
        uniqueness = UniquenessMode(mode_raw.strip().lower())
    except ValueError as exc:
        raise ValueError(
            "PARTICIPATION_UNIQUENESS must be 'relaxed' or 'strict', "
            f"got {mode_raw!r}"
        ) from exc

    timeout_raw = _get_optional("DATA_SERVICE_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw is not None else 15.0
    except ValueError as exc:
        raise ValueError("DATA_SERVICE_TIMEOUT must be a number") from exc

    flag_path = _get_optional("FLAG_STORE_PATH")

    return Settings(
        db_url=resolve_sqlite_url(os.getenv("DB_URL", DEFAULT_DB_URL), ROOT_DIR),
        data_service_url=_get_optional("DATA_SERVICE_URL"),
        data_service_key=_get_optional("DATA_SERVICE_KEY"),
        data_service_timeout=timeout,
        spin_duration_ms=_get_int("SPIN_DURATION_MS", 5000),
        render_commit_delay_ms=_get_int("RENDER_COMMIT_DELAY_MS", 50),
        draw_countdown_ms=_get_int("DRAW_COUNTDOWN_MS", 5000),
        uniqueness=uniqueness,
        flag_store_path=Path(flag_path) if flag_path else None,
    )


__all__ = ["ROOT_DIR", "Settings", "UniquenessMode", "load_settings"]
