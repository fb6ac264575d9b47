"""
Rewrite upstream ``Location`` headers so redirect chains stay on the proxy.

Absolute redirects become ``<proxy origin>/<absolute url>``. Root-relative
redirects become ``<proxy origin><target origin><path>``, with no ``/``
between the two origins. Anything else is forwarded untouched.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import httpx

from config import FALLBACK_AUTHORITY
from errors import BadTarget
from target import SCHEME_PREFIXES, origin, parse_url

logger = logging.getLogger(__name__)

RawHeaders = List[Tuple[bytes, bytes]]


def _first_header(headers: Sequence[Tuple[bytes, bytes]], name: bytes) -> Optional[bytes]:
    for key, value in headers:
        if key.lower() == name:
            return value
    return None


def _decode(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return None


def request_origin(headers: Sequence[Tuple[bytes, bytes]], scheme: Optional[str]) -> str:
    """Scheme and authority the client used to reach this proxy."""
    origin_header = _decode(_first_header(headers, b"origin"))
    if origin_header is not None:
        return origin_header

    host = _decode(_first_header(headers, b"host"))
    return f"{scheme or 'http'}://{host if host is not None else FALLBACK_AUTHORITY}"


def rewrite_location(location: str, proxy_origin: str, target_url: httpx.URL) -> Optional[str]:
    if location.startswith(SCHEME_PREFIXES):
        try:
            parse_url(location)
        except BadTarget:
            return None
        return f"{proxy_origin}/{location}"
    if location.startswith("/") and not location.startswith("//"):
        return f"{proxy_origin}{origin(target_url)}{location}"
    return None


def apply_location_rewrite(
    response_headers: RawHeaders,
    request_headers: Sequence[Tuple[bytes, bytes]],
    scheme: Optional[str],
    target_url: httpx.URL,
) -> RawHeaders:
    """
    Return ``response_headers`` with the ``location`` entry rewritten.

    Only the first ``location`` value is considered. When it is rewritten every
    ``location`` entry collapses into one, kept at the first entry's position.
    """
    location = _decode(_first_header(response_headers, b"location"))
    if location is None:
        return response_headers

    new_location = rewrite_location(
        location, request_origin(request_headers, scheme), target_url
    )
    if new_location is None:
        return response_headers

    logger.debug("Rewriting location %s -> %s", location, new_location)
    rewritten: RawHeaders = []
    replaced = False
    for key, value in response_headers:
        if key.lower() == b"location":
            if not replaced:
                rewritten.append((key, new_location.encode("utf-8")))
                replaced = True
            continue
        rewritten.append((key, value))
    return rewritten
