"""
Utilities for normalising repository paths and naming local storage files.
"""

import hashlib
import re

from pathvalidate import sanitize_filename

_LEADING_DOT_SLASH = re.compile(r"^(\./)+")
_REPEATED_SLASH = re.compile(r"/+")


def normalize_path(path: str | None) -> str:
    """
    Normalises a file or directory path: trims whitespace, converts backslashes,
    strips a leading './' and collapses repeated separators.
    """
    if not isinstance(path, str):
        return ""
    normalized = path.strip().replace("\\", "/")
    normalized = _LEADING_DOT_SLASH.sub("", normalized)
    return _REPEATED_SLASH.sub("/", normalized)


def join_url(base: str, *parts: str) -> str:
    """Joins URL segments with exactly one slash between them."""
    segments = [base.rstrip("/")]
    for part in parts:
        part = normalize_path(part).strip("/")
        if part:
            segments.append(part)
    return "/".join(segments)


def storage_filename(key: str) -> str:
    """
    Builds a filesystem-safe, collision-free file name for a storage key.

    The readable part is sanitised; the md5 suffix keeps keys that sanitise to
    the same text apart.
    """
    readable = sanitize_filename(key, replacement_text="_")[:80] or "key"
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:12]  # noqa: S324
    return f"{readable}.{digest}.json"
