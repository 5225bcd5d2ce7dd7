#!/usr/bin/env python3
"""
pipeline.py

Main entry point: convert a gfwlist-style feed into a dnsmasq config.

Usage:
    python -m gfw2dnsmasq.pipeline [-i input] [-o output] [-s dns_server]
                                   [-p dns_port] [-n ipset_name] [-w author]
                                   [-m both|server|ipset]

Pipeline stages:
1. Fetch the default feed (only when -i is left at its default; best effort)
2. Normalize input (base64 detection, pipe splitting)
3. Compile (whitelist pass, generation pass, sort, header)
4. Write output atomically

Exit codes:
    0  success (or -h)
    1  usage error or unexpected failure
    2  input file not found
"""
from __future__ import annotations

import argparse
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import Final, NoReturn

from gfw2dnsmasq.compiler import MODES, MODE_BOTH, CompileOptions, CompileStats, compile_rules
from gfw2dnsmasq.downloader import DEFAULT_DOWNLOAD_URL, DEFAULT_INPUT, download_feed
from gfw2dnsmasq.normalizer import normalize_file


# Default configuration
DEFAULT_OUTPUT: Final[str] = "dnsmasq_gfwlist.conf"
DEFAULT_DNS_SERVER: Final[str] = "127.0.0.1"
DEFAULT_DNS_PORT: Final[str] = "53"
DEFAULT_IPSET_NAME: Final[str] = "gfwlist"
DEFAULT_AUTHOR: Final[str] = "kgiflwl"

EXIT_OK: Final[int] = 0
EXIT_ERROR: Final[int] = 1
EXIT_INPUT_MISSING: Final[int] = 2


class UsageParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_ERROR, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(
        prog="gfw2dnsmasq",
        description="Convert gfwlist rules to dnsmasq server/ipset config",
    )
    parser.add_argument(
        "-i", dest="input", default=DEFAULT_INPUT,
        help=f"input file (default: {DEFAULT_INPUT}; auto-downloaded from {DEFAULT_DOWNLOAD_URL} when omitted)",
    )
    parser.add_argument("-o", dest="output", default=DEFAULT_OUTPUT, help=f"output file (default: {DEFAULT_OUTPUT})")
    parser.add_argument("-s", dest="dns_server", default=DEFAULT_DNS_SERVER, help=f"dns server (default: {DEFAULT_DNS_SERVER})")
    parser.add_argument("-p", dest="dns_port", default=DEFAULT_DNS_PORT, help=f"dns port (default: {DEFAULT_DNS_PORT})")
    parser.add_argument("-n", dest="ipset_name", default=DEFAULT_IPSET_NAME, help=f"ipset name (default: {DEFAULT_IPSET_NAME})")
    parser.add_argument("-w", dest="author", default=DEFAULT_AUTHOR, help=f"author (default: {DEFAULT_AUTHOR})")
    parser.add_argument(
        "-m", dest="mode", default=MODE_BOTH, choices=MODES,
        help=f"mode: {'|'.join(MODES)} (default: {MODE_BOTH})",
    )
    return parser


def write_output(text: str, output_file: str) -> None:
    """Write ``text`` to a temp file beside ``output_file``, then replace it."""
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        temp_path.replace(output_path)
    finally:
        temp_path.unlink(missing_ok=True)


def run(args: argparse.Namespace) -> tuple[int, CompileStats | None, int]:
    """
    Run the full pipeline for parsed arguments.

    Returns:
        (exit_code, stats, line_count); stats is None when the input is missing
    """
    # =========================================================================
    # Fetch (optional)
    # =========================================================================
    if args.input == DEFAULT_INPUT:
        download_feed(args.input)

    if not Path(args.input).is_file():
        print(f"Input file not found: {args.input}", file=sys.stderr)
        return EXIT_INPUT_MISSING, None, 0

    # =========================================================================
    # Stage 1: Normalize
    # =========================================================================
    print("📖 Stage 1: Reading and normalizing input...")
    normalized = normalize_file(args.input)
    encoding = "base64" if normalized.was_base64 else "plain text"
    print(f"   Read {len(normalized.lines):,} lines ({encoding}), {len(normalized.rules):,} rules")

    # =========================================================================
    # Stage 2: Compile
    # =========================================================================
    print("\n⚙️  Stage 2: Compiling...")
    stage_start = time.time()

    options = CompileOptions(
        mode=args.mode,
        dns_server=args.dns_server,
        dns_port=args.dns_port,
        ipset_name=args.ipset_name,
    )
    text, stats = compile_rules(normalized, options, author=args.author)

    print(f"   {stats.domains_emitted:,} domains, {stats.lines_emitted:,} lines ({time.time() - stage_start:.1f}s)")

    # =========================================================================
    # Stage 3: Write
    # =========================================================================
    write_output(text, args.output)
    return EXIT_OK, stats, text.count("\n")


def print_summary(stats: CompileStats) -> None:
    """Print formatted summary."""
    print("\n" + "=" * 60)
    print("📊 PIPELINE SUMMARY")
    print("=" * 60)
    print(f"   Rules scanned:       {stats.total_rules:>10,}")
    print(f"   Skipped (comments):  {stats.skipped:>10,}")
    print(f"   Rejected:            {stats.rejected:>10,}")
    print(f"   Duplicates:          {stats.duplicates:>10,}")
    print(f"   Whitelist entries:   {stats.whitelisted_domains:>10,}")
    print(f"   Whitelist pruned:    {stats.whitelist_pruned:>10,}")
    print(f"   Domains emitted:     {stats.domains_emitted:>10,}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        code, stats, line_count = run(args)
        if stats is None:
            return code

        print_summary(stats)
        print(f"Wrote {line_count} lines to {args.output} (entries: {stats.entry_count}, author: {args.author})")
        return code

    except Exception as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
