"""Artifact compression for transport."""

from __future__ import annotations

import gzip


def gzip_artifact(binary: bytes, level: int = 9) -> bytes:
    """Gzip a compiled binary.  ``mtime=0`` keeps the output reproducible."""
    return gzip.compress(binary, compresslevel=level, mtime=0)
