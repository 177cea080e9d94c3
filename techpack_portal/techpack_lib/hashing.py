"""Content hashing for stored upload names."""
from __future__ import annotations

import hashlib
import re
from pathlib import PurePath

STORED_NAME_DIGEST_CHARS = 16
_SUFFIX_RE = re.compile(r"^\.[A-Za-z0-9]{1,8}$")
_OWNER_RE = re.compile(r"[^A-Za-z0-9_-]+")


def sha256_for_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def stored_filename(original_name: str, content: bytes, owner_id: str = "") -> str:
    """Name an uploaded file by its owner and content hash, keeping a sane extension.

    Two assets with the same bytes get distinct names as long as their owner ids differ.
    """
    suffix = PurePath(original_name or "").suffix.lower()
    if not _SUFFIX_RE.match(suffix):
        suffix = ".bin"
    digest = sha256_for_bytes(content)[:STORED_NAME_DIGEST_CHARS]
    owner = _OWNER_RE.sub("", owner_id or "")
    return f"{owner}-{digest}{suffix}" if owner else f"{digest}{suffix}"
