"""Device-local "already participated" flags."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)


def spun_flag_key(company_id: int) -> str:
    return f"spun_roleta_{company_id}"


class FlagStore(Protocol):
    def get(self, key: str) -> bool: ...

    def set(self, key: str, value: bool) -> None: ...


class MemoryFlagStore:
    """Flags kept for the lifetime of the process."""

    def __init__(self) -> None:
        self._flags: dict[str, bool] = {}

    def get(self, key: str) -> bool:
        return self._flags.get(key, False)

    def set(self, key: str, value: bool) -> None:
        self._flags[key] = bool(value)


class JsonFileFlagStore:
    """Flags persisted as a single JSON object on disk.

    The file is read on first access and rewritten through a temporary file
    on every ``set``. A missing file means no flags are set.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._flags: dict[str, bool] | None = None

    def _load(self) -> dict[str, bool]:
        if self._flags is None:
            if self.path.exists():
                with self.path.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if not isinstance(raw, dict):
                    raise ValueError(f"Flag store {self.path} does not contain an object")
                self._flags = {str(k): bool(v) for k, v in raw.items()}
            else:
                self._flags = {}
        return self._flags

    def get(self, key: str) -> bool:
        return self._load().get(key, False)

    def set(self, key: str, value: bool) -> None:
        flags = self._load()
        flags[key] = bool(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(flags, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)
        logger.debug(f"Flag {key} set to {bool(value)} in {self.path}")


__all__ = ["FlagStore", "JsonFileFlagStore", "MemoryFlagStore", "spun_flag_key"]
