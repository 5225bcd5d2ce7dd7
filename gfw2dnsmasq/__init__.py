"""
gfw2dnsmasq package - gfwlist to dnsmasq converter

Modules:
    downloader: Best-effort fetch of the upstream gfwlist feed
    normalizer: Base64 detection and rule splitting
    extractor: Canonical domain extraction from a single rule
    compiler: Whitelist-aware generation of server/ipset lines
    pipeline: Command-line entry point
"""

__version__ = "1.0.0"
