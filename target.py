"""
Derive the upstream URL from the path a client sent to the proxy.

``GET /https://example.com/foo`` targets ``https://example.com/foo`` and a bare
authority such as ``GET /example.com/foo`` defaults to HTTPS.
"""

import ipaddress
import re

import httpx

from config import DEFAULT_SCHEME
from errors import BadTarget

SCHEMES = ("http", "https")
SCHEME_PREFIXES = ("http://", "https://")

HOSTNAME = re.compile(r"^[a-z0-9_-]+(\.[a-z0-9_-]+)*\.?$")


def _valid_host(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return bool(HOSTNAME.match(host))


def parse_url(text: str) -> httpx.URL:
    """Parse an absolute http(s) URL, raising BadTarget when it is unusable."""
    try:
        url = httpx.URL(text)
    except httpx.InvalidURL as exc:
        raise BadTarget(str(exc)) from exc
    if url.scheme not in SCHEMES:
        raise BadTarget(f"Unsupported scheme: {url.scheme!r}")
    host = url.raw_host.decode("ascii")
    if not host or not _valid_host(host):
        raise BadTarget(f"Invalid host: {host!r}")
    return url


def extract_target_url(raw_path: bytes, query: bytes = b"") -> httpx.URL:
    try:
        target = raw_path.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BadTarget("Request path is not valid UTF-8") from exc

    if target.startswith("/"):
        target = target[1:]
    if not target.startswith(SCHEME_PREFIXES):
        target = f"{DEFAULT_SCHEME}://{target}"
    if query:
        target = f"{target}?{query.decode('latin-1')}"
    return parse_url(target)


def authority(url: httpx.URL) -> str:
    host = url.raw_host.decode("ascii")
    if ":" in host:
        host = f"[{host}]"
    if url.port is not None:
        return f"{host}:{url.port}"
    return host


def origin(url: httpx.URL) -> str:
    return f"{url.scheme}://{authority(url)}"
