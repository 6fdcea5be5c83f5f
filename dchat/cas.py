"""File-backed content-addressed store for message bodies.

A pointer is the hex SHA-256 of the stored bytes. Objects are sharded by the
first two hex characters of their pointer.
"""
from __future__ import annotations

import re
from pathlib import Path

from .canonical import sha256_hex
from .exceptions import StorageError
from .fs import atomic_write_bytes, ensure_dir

_POINTER_RE = re.compile(r"^[0-9a-f]{64}$")


def is_pointer(s: str) -> bool:
    return bool(_POINTER_RE.match(s or ""))


class CAS:
    def __init__(self, root: Path):
        self.root = ensure_dir(Path(root))

    def _path(self, pointer: str) -> Path:
        if not is_pointer(pointer):
            raise StorageError(f"not a content pointer: {pointer!r}")
        return self.root / pointer[:2] / pointer

    def put(self, data: bytes) -> str:
        h = sha256_hex(data)
        p = self._path(h)
        if not p.exists():
            atomic_write_bytes(p, data)
        return h

    def has(self, pointer: str) -> bool:
        return is_pointer(pointer) and self._path(pointer).exists()

    def get(self, pointer: str) -> bytes:
        p = self._path(pointer)
        try:
            data = p.read_bytes()
        except FileNotFoundError:
            raise StorageError(f"content {pointer[:16]}... not found")
        if sha256_hex(data) != pointer:
            raise StorageError(f"content {pointer[:16]}... failed integrity check")
        return data
