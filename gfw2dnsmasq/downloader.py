#!/usr/bin/env python3
"""
downloader.py - Best-Effort Feed Downloader

Fetches the default gfwlist feed before conversion. A single attempt is made;
any failure (DNS, timeout, non-2xx) is reported and otherwise ignored so the
caller can fall back to whatever local copy already exists.

The response is written to a temporary file beside the destination and moved
into place only after a successful download, so a failed fetch never
truncates an existing list.

Usage:
    python -m gfw2dnsmasq.downloader [--url URL] [--output list.txt]
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Final, NamedTuple

import aiofiles
import aiohttp


# Default configuration
DEFAULT_DOWNLOAD_URL: Final[str] = "https://raw.githubusercontent.com/gfwlist/gfwlist/master/list.txt"
DEFAULT_INPUT: Final[str] = "list.txt"
DEFAULT_TIMEOUT: Final[int] = 30


class FetchResult(NamedTuple):
    """Result of a single fetch operation."""
    url: str
    success: bool
    error: str | None = None


async def fetch_url(
    session: aiohttp.ClientSession,
    url: str,
    output_path: Path,
    timeout: int,
) -> FetchResult:
    """
    Fetch ``url`` into ``output_path`` with a single attempt.

    Returns:
        FetchResult; never raises for network or HTTP errors
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
    os.close(fd)
    temp_path = Path(temp_name)

    try:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
        ) as response:
            if response.status >= 300:
                return FetchResult(url, success=False, error=f"HTTP {response.status}")

            content = await response.read()

        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(content)
        temp_path.replace(output_path)
        return FetchResult(url, success=True)

    except asyncio.TimeoutError:
        return FetchResult(url, success=False, error="Timeout")
    except (aiohttp.ClientError, OSError) as e:
        return FetchResult(url, success=False, error=str(e) or type(e).__name__)
    finally:
        temp_path.unlink(missing_ok=True)


async def fetch_feed(url: str, output_path: Path, timeout: int = DEFAULT_TIMEOUT) -> FetchResult:
    """Open a client session and fetch a single feed."""
    async with aiohttp.ClientSession() as session:
        return await fetch_url(session, url, output_path, timeout)


def download_feed(
    output_file: str,
    url: str = DEFAULT_DOWNLOAD_URL,
    timeout: int = DEFAULT_TIMEOUT,
) -> FetchResult:
    """
    Synchronous wrapper used by the pipeline.

    Failures are printed to stderr and returned, never raised.
    """
    print(f"Fetching upstream gfwlist -> {output_file}", file=sys.stderr)

    try:
        result = asyncio.run(fetch_feed(url, Path(output_file), timeout))
    except (aiohttp.ClientError, OSError) as e:
        result = FetchResult(url, success=False, error=str(e) or type(e).__name__)

    if not result.success:
        print(f"Warning: could not fetch {url}: {result.error}", file=sys.stderr)
    return result


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fetch the upstream gfwlist feed")
    parser.add_argument("--url", default=DEFAULT_DOWNLOAD_URL, help="Feed URL")
    parser.add_argument("--output", default=DEFAULT_INPUT, help="Destination file")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")

    args = parser.parse_args()

    result = download_feed(args.output, args.url, args.timeout)
    if result.success:
        print(f"✅ Fetched {result.url}")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
