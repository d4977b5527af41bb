"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from typing import Collection


def extension_of(name: str) -> str:
    """Lowercased extension after the last dot, or '' when there is none."""
    _, dot, ext = name.rpartition(".")
    if not dot:
        return ""
    return ext.lower()


def is_allowed(name: str, allowed_extensions: Collection[str]) -> bool:
    ext = extension_of(name)
    return bool(ext) and ext in allowed_extensions


def sha256_hex(data: bytes) -> str:
    """Compute the lowercase hex SHA256 of raw file content."""
    return hashlib.sha256(data).hexdigest()
