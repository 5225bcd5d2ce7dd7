#!/usr/bin/env python3
"""
extractor.py - Domain Extraction from Blocklist Rules

Turns a single raw rule into a canonical domain name, or rejects it.
Both compiler passes (whitelist collection and output generation) share this
function, so a domain is always spelled the same way on both sides.

Supported input shapes (mixed freely in real-world feeds):

    ||ads.example.com^          →  ads.example.com
    |https://www.example.com/x  →  example.com    (after pipe splitting)
    .example.com                →  example.com
    *.example.com               →  example.com
    http://Example.COM:8080/    →  example.com
    example.com/some/path?a=1   →  example.com

Rejected (empty string returned):

    192.168.1.1                 IPv4 literal
    localhost                   no dot, not routable as FQDN
    /^regex$/                   nothing left after path stripping
    !comment, [AutoProxy 0.2.1] no hostname characters survive

The pipeline is a fixed chain of small string transforms. Each step is total
and side-effect free, so extract_domain() never raises for any string input.
"""

import re
from typing import Final


# =============================================================================
# REGEX PATTERNS
# =============================================================================
# Case-insensitive patterns are ASCII-only; the result is lowercased in step 7.

#: Leading URI scheme: http://, https://, ftp://, svn+ssh://, ...
SCHEME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9._%+-]+://", re.IGNORECASE | re.ASCII)

#: Leading www. label
WWW_PATTERN: Final[re.Pattern[str]] = re.compile(r"^www\.", re.IGNORECASE | re.ASCII)

#: Path component: everything from the first slash
PATH_PATTERN: Final[re.Pattern[str]] = re.compile(r"/.*$", re.DOTALL)

#: Leading rule-syntax markers: . | ^ * in any combination
RULE_MARKER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[.|^*]+")

#: Trailing garbage after the hostname (^, $modifiers, %2F, ...)
TRAILING_GARBAGE_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9.\-].*$", re.IGNORECASE | re.ASCII | re.DOTALL)

#: Port suffix
PORT_PATTERN: Final[re.Pattern[str]] = re.compile(r":.*$", re.DOTALL)

#: Characters that must never appear inside a hostname
FORBIDDEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"[@/:=,?\[\]()]")

#: Four dot-separated decimal groups (no octet range check)
IPV4_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$")

#: Anything outside the canonical hostname alphabet
NON_HOSTNAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9.\-]")


# =============================================================================
# TRANSFORM STEPS
# =============================================================================

def strip_scheme(line: str) -> str:
    """
    Remove a leading ``scheme://``.

    Example:
        >>> strip_scheme("https://example.com/path")
        'example.com/path'
    """
    return SCHEME_PATTERN.sub("", line, count=1)


def strip_www(line: str) -> str:
    """
    Remove a leading ``www.``.

    Example:
        >>> strip_www("WWW.example.com")
        'example.com'
    """
    return WWW_PATTERN.sub("", line, count=1)


def strip_path(line: str) -> str:
    """
    Remove everything from the first ``/`` onward.

    Example:
        >>> strip_path("example.com/ads/banner.js")
        'example.com'
    """
    return PATH_PATTERN.sub("", line, count=1)


def strip_rule_markers(line: str) -> str:
    """
    Remove the leading run of ``.``, ``|``, ``^`` and ``*`` characters.

    Example:
        >>> strip_rule_markers("||*.example.com^")
        'example.com^'
    """
    return RULE_MARKER_PATTERN.sub("", line, count=1)


def strip_trailing_garbage(line: str) -> str:
    """
    Cut the line at the first character that cannot be part of a hostname.

    Example:
        >>> strip_trailing_garbage("example.com^$third-party")
        'example.com'
    """
    return TRAILING_GARBAGE_PATTERN.sub("", line, count=1)


def strip_port(host: str) -> str:
    """Lowercase ``host`` and drop a ``:port`` suffix."""
    return PORT_PATTERN.sub("", host.lower(), count=1)


def is_valid_candidate(host: str) -> bool:
    """
    Check a lowercased candidate before the final cleanup.

    Args:
        host: Candidate produced by the strip steps

    Returns:
        False for empty strings, strings with forbidden characters,
        IPv4 literals and names without a dot

    Example:
        >>> is_valid_candidate("ads.example.com")
        True
        >>> is_valid_candidate("1.2.3.4")
        False
        >>> is_valid_candidate("localhost")
        False
    """
    if not host:
        return False
    if FORBIDDEN_PATTERN.search(host):
        return False
    if IPV4_PATTERN.match(host):
        return False
    return "." in host


def clean_hostname(host: str) -> str:
    """Remove any character outside ``[a-z0-9.-]``."""
    return NON_HOSTNAME_PATTERN.sub("", host)


# =============================================================================
# EXTRACTION
# =============================================================================

def extract_domain(line: str) -> str:
    """
    Extract the canonical domain from a raw rule.

    Args:
        line: One raw rule (already split on pipes by the normalizer)

    Returns:
        Lowercase domain, or an empty string if the rule carries no
        routable domain

    Example:
        >>> extract_domain("||ads.example.com^")
        'ads.example.com'
        >>> extract_domain("https://www.example.com/path?x=1")
        'example.com'
        >>> extract_domain("192.168.1.1")
        ''
    """
    line = line.strip()
    if not line:
        return ""

    line = strip_scheme(line)
    line = strip_www(line)
    line = strip_path(line)
    line = strip_rule_markers(line)
    line = strip_trailing_garbage(line)
    host = strip_port(line)

    if not is_valid_candidate(host):
        return ""

    return clean_hostname(host)


# =============================================================================
# CLI INTERFACE
# =============================================================================

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m gfw2dnsmasq.extractor <rule> [rule ...]")
        sys.exit(1)

    for rule in sys.argv[1:]:
        print(f"{rule!r} -> {extract_domain(rule)!r}")
