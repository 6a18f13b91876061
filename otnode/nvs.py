"""Small persistent key/value store for strings.

Strings are stored under 8-bit key ids, shifted into a 16-bit record key.
An empty string is stored as a single NUL byte, so a cleared key still
exists. The store may be kept in memory only or mirrored to a JSON file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional, Union

DEFAULT_CAPACITY = 4096
DEFAULT_READ_SIZE = 128


class NvsError(Exception):
    """The store could not complete the operation."""


class NvsKeyNotFound(NvsError):
    """No value is stored under the key."""


class NvsNoSpace(NvsError):
    """The store has no room left for the value."""


def key_id_shift(key_id: int) -> int:
    """Map an 8-bit key id to its 16-bit record key."""
    return ((key_id + 1) << 8) & 0xFFFF


def _check_key(key_id: int) -> None:
    if not isinstance(key_id, int) or not 0 <= key_id <= 0xFF:
        raise NvsError(f"key id {key_id!r} must be in 0..255")


class StringStore:
    """Strings kept under numeric keys, optionally persisted to a file."""

    def __init__(
        self,
        path: Optional[Union[str, os.PathLike]] = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity <= 0:
            raise NvsError("capacity must be positive")
        self.path = Path(path) if path is not None else None
        self.capacity = capacity
        self._records: dict[int, bytes] = {}
        if self.path is not None and self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._records = {int(key): bytes.fromhex(value) for key, value in raw.items()}
        except (OSError, ValueError, AttributeError) as exc:
            raise NvsError(f"cannot read store {self.path}") from exc

    def _flush(self) -> None:
        if self.path is None:
            return
        data = {str(key): value.hex() for key, value in sorted(self._records.items())}
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise NvsError(f"cannot write store {self.path}") from exc

    def _used(self, excluding: int) -> int:
        return sum(len(v) for k, v in self._records.items() if k != excluding)

    def save_string(self, data: str, key_id: int) -> None:
        """Store data under key_id; an empty string clears the value."""
        if data is None:
            raise NvsError("data is missing")
        _check_key(key_id)
        key = key_id_shift(key_id)
        encoded = data.encode("utf-8") or b"\0"
        if self._used(key) + len(encoded) > self.capacity:
            raise NvsNoSpace("not enough space for the value")
        self._records[key] = encoded
        self._flush()

    def read_string(self, key_id: int, max_size: int = DEFAULT_READ_SIZE) -> str:
        """Return the string under key_id; it must be shorter than max_size."""
        _check_key(key_id)
        value = self._records.get(key_id_shift(key_id))
        if value is None:
            raise NvsKeyNotFound(f"no value under key {key_id}")
        if len(value) >= max_size:
            raise NvsError("value does not fit in the read size")
        return value.rstrip(b"\0").decode("utf-8")

    def delete_string(self, key_id: int) -> None:
        """Remove the value under key_id."""
        _check_key(key_id)
        try:
            del self._records[key_id_shift(key_id)]
        except KeyError:
            raise NvsKeyNotFound(f"no value under key {key_id}") from None
        self._flush()