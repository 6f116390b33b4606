"""Content digests over encoded image bytes."""

from __future__ import annotations

import hashlib

SUPPORTED_ALGORITHMS = ("md5", "sha256")


def digest(data: bytes, algorithm: str = "md5") -> str:
    """Return the lowercase hex digest of ``data``.

    md5 matches what the server has always been sent, so previously uploaded
    images keep deduplicating. sha256 is available for servers that accept it.
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")
    return hashlib.new(algorithm, data).hexdigest()
