"""Digest helpers for checksum verification."""

from __future__ import annotations

import hashlib
from typing import BinaryIO

from ._types import ChecksumAlgo

_HASH_CHUNK_SIZE = 65536


def new_hasher(algo: ChecksumAlgo | str) -> hashlib._Hash | None:
    """Return a fresh hasher for *algo*, or ``None`` for ``none``."""
    algo = ChecksumAlgo(algo)
    if algo == ChecksumAlgo.NONE:
        return None
    return hashlib.new(algo.value)


def hash_stream(reader: BinaryIO, algo: ChecksumAlgo | str) -> bytes:
    """Digest everything readable from *reader*, streaming in chunks."""
    h = new_hasher(algo)
    if h is None:
        raise ValueError(f"Unknown checksum algorithm: {algo}")
    while True:
        chunk = reader.read(_HASH_CHUNK_SIZE)
        if not chunk:
            break
        h.update(chunk)
    return h.digest()
