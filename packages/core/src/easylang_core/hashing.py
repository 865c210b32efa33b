from __future__ import annotations

from hashlib import sha256


def content_hash(text: str) -> str:
    """Lookup key of a fragment or simplification text (hex sha256 of the UTF-8 bytes)."""
    return sha256(text.encode("utf-8")).hexdigest()
