#!/usr/bin/env python3
"""
compiler.py - dnsmasq Config Compiler with Global Whitelist Precedence

This module is the core of the conversion pipeline. It takes normalized rules
and produces the body of a dnsmasq configuration file.

OUTPUT FORMAT:
    server=/<domain>/<dns_server>[#<port>]   route queries to another resolver
    ipset=/<domain>/<ipset_name>             tag resolved addresses into an ipset

    Mode "both" emits the pair, "server" and "ipset" emit one side only.

TWO-PASS DESIGN:
    Phase 1 collects every @@ exception into an immutable whitelist.
    Phase 2 extracts, deduplicates and emits blocking rules, skipping any
    whitelisted domain.

    Exceptions apply globally. In this feed:

        block.example.com
        @@||block.example.com

    the blocking rule comes FIRST, yet block.example.com produces no lines.
    Phase 1 must therefore finish before Phase 2 makes a single decision.

POST-PROCESSING:
    Lines are stably sorted by domain, so each server/ipset pair stays adjacent
    in emission order. The header reports the number of complete pairs.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Final, Iterable, NamedTuple

from gfw2dnsmasq.extractor import extract_domain
from gfw2dnsmasq.normalizer import NormalizedInput, normalize_file

# ============================================================================
# CONFIGURATION
# ============================================================================

TOOL_NAME: Final[str] = "gfw2dnsmasq"

MODE_BOTH: Final[str] = "both"
MODE_SERVER: Final[str] = "server"
MODE_IPSET: Final[str] = "ipset"
MODES: Final[tuple[str, ...]] = (MODE_BOTH, MODE_SERVER, MODE_IPSET)

#: Port values for which the #port suffix is omitted
STANDARD_DNS_PORTS: Final[frozenset[str]] = frozenset({"", "53"})

WHITELIST_MARKER: Final[str] = "@@"
COMMENT_MARKER: Final[str] = "!"
METADATA_MARKER: Final[str] = "["

#: One leading anchor is stripped from whitelist rules: @@||d, @@|d, @@^d, @@/d
WHITELIST_ANCHOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[|^/]")

#: Output lines are keyed on the third field when split on '=' or '/'
FIELD_SPLIT_PATTERN: Final[re.Pattern[str]] = re.compile(r"[=/]")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class CompileOptions(NamedTuple):
    """
    Output settings.

    Attributes:
        mode: One of "both", "server", "ipset"
        dns_server: Upstream resolver address for server= lines
        dns_port: Upstream resolver port; "" or "53" means no suffix
        ipset_name: Target set for ipset= lines
    """
    mode: str = MODE_BOTH
    dns_server: str = "127.0.0.1"
    dns_port: str = "53"
    ipset_name: str = "gfwlist"


@dataclass
class CompileStats:
    """Statistics from compilation."""
    total_rules: int = 0
    skipped: int = 0  # blank, comment, metadata and @@ lines
    rejected: int = 0  # no domain could be extracted
    duplicates: int = 0
    whitelisted_domains: int = 0
    whitelist_pruned: int = 0
    domains_emitted: int = 0
    lines_emitted: int = 0
    entry_count: int = 0  # domains with both a server and an ipset line


# ============================================================================
# PHASE 1: WHITELIST
# ============================================================================

def collect_whitelist(lines: Iterable[str]) -> frozenset[str]:
    """
    Collect every domain named by an @@ exception rule.

    Args:
        lines: Normalized lines (not pipe-split)

    Returns:
        Frozen set of whitelisted domains
    """
    whitelist: set[str] = set()

    for line in lines:
        line = line.strip()
        if not line or not line.startswith(WHITELIST_MARKER):
            continue

        line = line[len(WHITELIST_MARKER):]
        if line.startswith(COMMENT_MARKER) or line.startswith(METADATA_MARKER):
            continue

        line = WHITELIST_ANCHOR_PATTERN.sub("", line, count=1)
        domain = extract_domain(line)
        if domain:
            whitelist.add(domain)

    return frozenset(whitelist)


# ============================================================================
# PHASE 2: GENERATION
# ============================================================================

def is_skipped_rule(line: str) -> bool:
    """Check if a trimmed rule carries no blocking semantics."""
    return (
        not line
        or line.startswith(COMMENT_MARKER)
        or line.startswith(METADATA_MARKER)
        or line.startswith(WHITELIST_MARKER)
    )


def format_server_line(domain: str, dns_server: str, dns_port: str) -> str:
    """
    Format a dnsmasq server directive.

    Example:
        >>> format_server_line("example.com", "127.0.0.1", "53")
        'server=/example.com/127.0.0.1'
        >>> format_server_line("example.com", "127.0.0.1", "5353")
        'server=/example.com/127.0.0.1#5353'
    """
    if dns_port in STANDARD_DNS_PORTS:
        return f"server=/{domain}/{dns_server}"
    return f"server=/{domain}/{dns_server}#{dns_port}"


def format_ipset_line(domain: str, ipset_name: str) -> str:
    """Format a dnsmasq ipset directive."""
    return f"ipset=/{domain}/{ipset_name}"


def generate_lines(
    rules: Iterable[str],
    whitelist: frozenset[str],
    options: CompileOptions,
    stats: CompileStats | None = None,
) -> list[str]:
    """
    Emit config lines for every non-whitelisted domain, first occurrence only.

    Args:
        rules: Normalized, pipe-split rules
        whitelist: Complete whitelist from collect_whitelist()
        options: Output settings
        stats: Optional stats object updated in place

    Returns:
        Unsorted config lines in emission order
    """
    if stats is None:
        stats = CompileStats()

    emit_server = options.mode in (MODE_BOTH, MODE_SERVER)
    emit_ipset = options.mode in (MODE_BOTH, MODE_IPSET)

    seen: set[str] = set()
    output: list[str] = []

    for rule in rules:
        stats.total_rules += 1
        rule = rule.strip()
        if is_skipped_rule(rule):
            stats.skipped += 1
            continue

        domain = extract_domain(rule)
        if not domain:
            stats.rejected += 1
            continue

        if domain in seen:
            stats.duplicates += 1
            continue
        seen.add(domain)

        if domain in whitelist:
            stats.whitelist_pruned += 1
            continue

        if emit_server:
            output.append(format_server_line(domain, options.dns_server, options.dns_port))
        if emit_ipset:
            output.append(format_ipset_line(domain, options.ipset_name))
        stats.domains_emitted += 1

    stats.lines_emitted = len(output)
    return output


# ============================================================================
# POST-PROCESSING
# ============================================================================

def line_domain(line: str) -> str:
    """
    Return the domain field of a config line.

    Example:
        >>> line_domain("ipset=/example.com/gfwlist")
        'example.com'
    """
    fields = FIELD_SPLIT_PATTERN.split(line)
    return fields[2] if len(fields) > 2 else ""


def sort_lines(lines: list[str]) -> list[str]:
    """Sort by domain; sorted() is stable so pairs keep emission order."""
    return sorted(lines, key=line_domain)


def count_pairs(lines: Iterable[str]) -> int:
    """Count domains that have both a server and an ipset line."""
    server_domains: set[str] = set()
    ipset_domains: set[str] = set()

    for line in lines:
        if line.startswith("server="):
            server_domains.add(line_domain(line))
        elif line.startswith("ipset="):
            ipset_domains.add(line_domain(line))

    return len(server_domains & ipset_domains)


def render_header(author: str, entry_count: int, now: datetime | None = None) -> str:
    """
    Build the comment block placed at the top of the output file.

    Args:
        author: Creator label
        entry_count: Number of server+ipset pairs
        now: Generation time (defaults to current UTC time)

    Returns:
        Header text ending with a blank line
    """
    if now is None:
        now = datetime.now(timezone.utc)
    timestamp = format_datetime(now.astimezone(timezone.utc))

    return (
        f"# Generated by {TOOL_NAME}\n"
        f"# Created: {timestamp}\n"
        f"# Author: {author}\n"
        f"# Entries (server+ipset pairs): {entry_count}\n"
        "\n"
    )


# ============================================================================
# MAIN COMPILATION
# ============================================================================

def compile_rules(
    normalized: NormalizedInput,
    options: CompileOptions,
    author: str,
    now: datetime | None = None,
) -> tuple[str, CompileStats]:
    """
    Compile normalized input into the full text of a dnsmasq config file.

    Phase 1: Build the whitelist from the unsplit lines
    Phase 2: Generate lines from the pipe-split rules
    Phase 3: Sort, count pairs and prepend the header
    """
    stats = CompileStats()

    whitelist = collect_whitelist(normalized.lines)
    stats.whitelisted_domains = len(whitelist)

    lines = generate_lines(normalized.rules, whitelist, options, stats)

    lines = sort_lines(lines)
    stats.entry_count = count_pairs(lines)

    body = "".join(line + "\n" for line in lines)
    return render_header(author, stats.entry_count, now) + body, stats


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m gfw2dnsmasq.compiler <input_file> [mode]")
        sys.exit(1)

    mode = sys.argv[2] if len(sys.argv) > 2 else MODE_BOTH
    if mode not in MODES:
        print(f"Unknown mode: {mode}", file=sys.stderr)
        sys.exit(1)

    text, stats = compile_rules(normalize_file(sys.argv[1]), CompileOptions(mode=mode), author=TOOL_NAME)
    sys.stdout.write(text)

    print("\nCompilation complete:", file=sys.stderr)
    print(f"  Rules:      {stats.total_rules:,}", file=sys.stderr)
    print(f"  Domains:    {stats.domains_emitted:,}", file=sys.stderr)
    print(f"  Whitelisted:{stats.whitelist_pruned:,}", file=sys.stderr)
