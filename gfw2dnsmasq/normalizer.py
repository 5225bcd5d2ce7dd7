#!/usr/bin/env python3
"""
normalizer.py - Input Decoding and Rule Splitting

First stage of the pipeline. Feeds come in two shapes:

    1. Plain text, one rule per line (or many rules glued together with '|')
    2. Base64 of the above (the classic gfwlist.txt distribution)

The normalizer detects base64 heuristically and splits the working text into
rules. Detection is best effort: anything that does not decode cleanly, or
decodes to bytes without a single letter or dot, is used as-is.

Two views of the text are produced:

    lines  - split on newlines only; the whitelist pass reads this, since
             splitting "@@||example.com" on '|' would separate the @@ marker
             from its domain
    rules  - additionally split on '|'; the generation pass reads this
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Final, NamedTuple


# =============================================================================
# PATTERNS
# =============================================================================

#: Whitespace removed before decoding (GNU base64 -d ignores line breaks)
WHITESPACE_PATTERN: Final[re.Pattern[bytes]] = re.compile(rb"\s+")

#: Decoded payload must contain at least one of these to be considered text
TEXTUAL_PATTERN: Final[re.Pattern[bytes]] = re.compile(rb"[A-Za-z.]")

#: Upstream feeds sometimes concatenate rules with this delimiter
RULE_DELIMITER: Final[str] = "|"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class NormalizedInput(NamedTuple):
    """
    Normalized view of one input feed.

    Attributes:
        lines: Working text split on newlines
        rules: Working text split on newlines and pipes
        was_base64: True if the input was decoded from base64
    """
    lines: list[str]
    rules: list[str]
    was_base64: bool


# =============================================================================
# NORMALIZATION
# =============================================================================

def try_decode_base64(data: bytes) -> bytes | None:
    """
    Attempt a strict base64 decode of ``data``.

    Args:
        data: Raw file contents

    Returns:
        Decoded bytes if decoding succeeded and the result looks textual,
        otherwise None

    Example:
        >>> try_decode_base64(b"ZXhhbXBsZS5jb20K")
        b'example.com\\n'
        >>> try_decode_base64(b"example.com") is None
        True
    """
    payload = WHITESPACE_PATTERN.sub(b"", data)
    if not payload:
        return None

    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None

    if not TEXTUAL_PATTERN.search(decoded):
        return None
    return decoded


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8, tolerating a BOM and invalid sequences."""
    return data.decode("utf-8-sig", errors="replace")


def split_lines(text: str) -> list[str]:
    """
    Split text on newlines only, dropping a trailing CR from each line.

    Other Unicode line boundaries (\\x1c, \\u2028, ...) stay inside the line.

    Example:
        >>> split_lines("a.com\\r\\nb.com\\x1cc.com\\n")
        ['a.com', 'b.com\\x1cc.com']
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def split_rules(text: str) -> list[str]:
    """
    Split working text into one raw rule per line.

    Example:
        >>> split_rules("||a.com^|b.com\\nc.com")
        ['', '', 'a.com^', 'b.com', 'c.com']
    """
    return split_lines(text.replace(RULE_DELIMITER, "\n"))


def normalize_input(data: bytes) -> NormalizedInput:
    """
    Decode (if base64) and split a raw feed.

    Args:
        data: Raw file contents

    Returns:
        NormalizedInput with both line and rule views, order preserved
    """
    decoded = try_decode_base64(data)
    was_base64 = decoded is not None
    text = decode_text(decoded if was_base64 else data)

    return NormalizedInput(
        lines=split_lines(text),
        rules=split_rules(text),
        was_base64=was_base64,
    )


def normalize_file(input_path: str) -> NormalizedInput:
    """Read and normalize a feed file."""
    with open(input_path, "rb") as f:
        data = f.read()
    return normalize_input(data)
