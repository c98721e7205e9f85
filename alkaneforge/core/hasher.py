"""Canonical source hashing for content addressing.

Two sources that differ only in trivial whitespace (line endings, trailing
whitespace, repeated blank lines, leading/trailing blank lines) produce the
same ContentKey.
"""

from __future__ import annotations

import hashlib
import re

DEFAULT_KEY_LENGTH = 12

_LINE_TERMINATORS = re.compile(r"\r\n?")
_TRAILING_WHITESPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_LINE_RUNS = re.compile(r"\n{3,}")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def normalize_source(source: str) -> str:
    """Produce the canonical form of a source document.

    - CRLF and lone CR become LF
    - trailing spaces/tabs are stripped from every line
    - runs of two or more blank lines collapse to one blank line
    - leading and trailing blank lines are removed
    """
    text = _LINE_TERMINATORS.sub("\n", source)
    text = _TRAILING_WHITESPACE.sub("", text)
    text = _BLANK_LINE_RUNS.sub("\n\n", text)
    return text.strip("\n")


def source_digest(source: str) -> str:
    """Full SHA-256 of the normalized source."""
    return sha256_hex(normalize_source(source).encode("utf-8"))


def content_key(source: str, length: int = DEFAULT_KEY_LENGTH) -> str:
    """Directory- and URL-safe ContentKey: a prefix of ``source_digest``."""
    return source_digest(source)[:length]
