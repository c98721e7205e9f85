"""Static ABI extraction from annotated contract source.

A left-to-right scanner with three independent recognizer rules:

* **method** — ``#[opcode(N)]``, an optional ``#[returns(T)]``, a variant
  name and an optional ``{ field: Type, ... }`` block.
* **type declaration** — ``pub struct Name``; the first one names the ABI.
* **storage** — ``StoragePointer::from_keyword("key")``.

This is a textual scan, not a parse.  Unusually formatted source may be
missed; the extractor never raises on malformed input and returns an empty
description when nothing is recognized.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import NamedTuple

from alkaneforge.models.abi import (
    DEFAULT_ABI_VERSION,
    DEFAULT_CONTRACT_NAME,
    DEFAULT_STORAGE_TYPE,
    AbiDescription,
    AbiInput,
    AbiMethod,
    StorageSlot,
)

_IDENT = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)")
_OPCODE_TAIL = re.compile(r"\s*(\d+)\s*\)\s*\]")
_RETURNS_HEAD = re.compile(r"\s*#\[\s*returns\s*\(")
_BLOCK_HEAD = re.compile(r"\s*\{")
_STORAGE_TAIL = re.compile(r'\s*"([^"]+)"\s*\)')
_FIELD = re.compile(
    r"^(?:pub(?:\([^)]*\))?\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.+)$", re.DOTALL
)
_LINE_COMMENT = re.compile(r"//[^\n]*")

_OPENERS = {"(": ")", "{": "}", "[": "]", "<": ">"}


class _Match(NamedTuple):
    kind: str
    value: object
    end: int


class _Rule(NamedTuple):
    kind: str
    head: re.Pattern[str]
    parse: Callable[[str, int, int], _Match | None]


# ---------------------------------------------------------------------------
# Scanning helpers
# ---------------------------------------------------------------------------


def _balanced(text: str, start: int, opener: str) -> tuple[str, int] | None:
    """Return the text between *opener* at ``start - 1`` and its closer.

    ``start`` is the index just past the opening character.  Returns the
    inner text and the index just past the closing character, or ``None``
    if the input ends first.
    """
    closer = _OPENERS[opener]
    depth = 1
    pos = start
    while pos < len(text):
        ch = text[pos]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:pos], pos + 1
        pos += 1
    return None


def _squash(text: str) -> str:
    return " ".join(text.split())


def _split_fields(block: str) -> list[str]:
    """Split a field block on top-level commas and newlines."""
    block = _LINE_COMMENT.sub("", block)
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in block:
        if ch in "(<[{":
            depth += 1
        elif ch in ")>]}" and depth > 0:
            depth -= 1
        if ch in ",\n" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def parse_fields(block: str) -> list[AbiInput]:
    """Parse ``name: Type`` entries; entries without a colon are skipped."""
    inputs = []
    for part in _split_fields(block):
        match = _FIELD.match(part)
        if match:
            inputs.append(AbiInput(name=match.group(1), type=_squash(match.group(2))))
    return inputs


def _leading_doc(text: str, start: int) -> str | None:
    """Collect ``///`` comment lines directly above the marker at ``start``."""
    line_start = text.rfind("\n", 0, start) + 1
    if text[line_start:start].strip():
        return None
    lines = text[:line_start].split("\n")[:-1]
    doc: list[str] = []
    for line in reversed(lines):
        stripped = line.strip()
        if not stripped.startswith("///"):
            break
        doc.append(stripped[3:].strip())
    if not doc:
        return None
    return " ".join(reversed(doc)).strip() or None


# ---------------------------------------------------------------------------
# Recognizer rules
# ---------------------------------------------------------------------------


def _parse_method(text: str, start: int, pos: int) -> _Match | None:
    opcode = _OPCODE_TAIL.match(text, pos)
    if not opcode:
        return None
    pos = opcode.end()

    outputs: list[str] = []
    returns = _RETURNS_HEAD.match(text, pos)
    if returns:
        inner = _balanced(text, returns.end(), "(")
        if inner is None:
            return None
        ret_type, pos = inner
        close = re.compile(r"\s*\]").match(text, pos)
        if not close:
            return None
        pos = close.end()
        if ret_type.strip():
            outputs.append(_squash(ret_type))

    name = _IDENT.match(text, pos)
    if not name:
        return None
    pos = name.end()

    inputs: list[AbiInput] = []
    block = _BLOCK_HEAD.match(text, pos)
    if block:
        inner = _balanced(text, block.end(), "{")
        if inner is not None:
            body, pos = inner
            inputs = parse_fields(body)

    method = AbiMethod(
        opcode=int(opcode.group(1)),
        name=name.group(1),
        inputs=inputs,
        outputs=outputs,
        doc=_leading_doc(text, start),
    )
    return _Match("method", method, pos)


def _parse_type_declaration(text: str, start: int, pos: int) -> _Match | None:
    name = _IDENT.match(text, pos)
    if not name:
        return None
    return _Match("type", name.group(1), name.end())


def _parse_storage(text: str, start: int, pos: int) -> _Match | None:
    literal = _STORAGE_TAIL.match(text, pos)
    if not literal:
        return None
    return _Match("storage", StorageSlot(key=literal.group(1), type=DEFAULT_STORAGE_TYPE), literal.end())


RULES: tuple[_Rule, ...] = (
    _Rule("method", re.compile(r"#\[\s*opcode\s*\("), _parse_method),
    _Rule("type", re.compile(r"\bpub\s+struct\s+"), _parse_type_declaration),
    _Rule("storage", re.compile(r"StoragePointer::from_keyword\("), _parse_storage),
)

_HEADS = re.compile("|".join(f"(?P<{r.kind}>{r.head.pattern})" for r in RULES))
_RULES_BY_KIND = {r.kind: r for r in RULES}


def scan(source: str) -> list[_Match]:
    """Apply every recognizer left to right; return matches in source order."""
    matches: list[_Match] = []
    pos = 0
    while True:
        head = _HEADS.search(source, pos)
        if head is None:
            return matches
        rule = _RULES_BY_KIND[head.lastgroup]
        found = rule.parse(source, head.start(), head.end())
        if found is None:
            pos = head.end()
            continue
        matches.append(found)
        pos = found.end


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def extract_abi(source: str) -> AbiDescription:
    """Derive an ``AbiDescription`` from contract source.

    Pure and deterministic.  Methods and storage slots keep source order;
    every storage reference is listed, repeats included.
    """
    methods: list[AbiMethod] = []
    opcodes: dict[str, int] = {}
    storage: list[StorageSlot] = []
    name: str | None = None

    for match in scan(source):
        if match.kind == "method":
            methods.append(match.value)
            opcodes[match.value.name] = match.value.opcode
        elif match.kind == "type":
            if name is None:
                name = match.value
        elif match.kind == "storage":
            storage.append(match.value)

    return AbiDescription(
        name=name or DEFAULT_CONTRACT_NAME,
        version=DEFAULT_ABI_VERSION,
        methods=methods,
        storage=storage,
        opcodes=opcodes,
    )
