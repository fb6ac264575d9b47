import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from typing import Dict, List, Optional, Tuple

import httpx
from starlette.applications import Starlette
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response
from starlette.routing import Route

from config import PROXY_TIMEOUT, PROXY_VERIFY_TLS, STRIP_HOP_BY_HOP_HEADERS
from errors import BadTarget, InternalError, ProxyError, UpstreamReadFail, UpstreamUnreachable
from location import apply_location_rewrite
from target import authority, extract_target_url

logger = logging.getLogger(__name__)

RawHeaders = List[Tuple[bytes, bytes]]

# Hop-by-hop headers (RFC 7230 section 6.1)
HOP_BY_HOP_HEADERS = {
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"te",
    b"trailer",
    b"trailers",
    b"transfer-encoding",
    b"upgrade",
}


def strip_hop_by_hop(headers: RawHeaders) -> RawHeaders:
    """Drop hop-by-hop headers, including any named by ``Connection``."""
    drop = set(HOP_BY_HOP_HEADERS)
    for key, value in headers:
        if key.lower() == b"connection":
            drop.update(token.strip().lower() for token in value.split(b",") if token.strip())
    return [(key, value) for key, value in headers if key.lower() not in drop]


def _has_header(headers: RawHeaders, name: bytes) -> bool:
    return any(key.lower() == name for key, _ in headers)


def _raw_path(request: Request) -> bytes:
    raw_path = request.scope.get("raw_path") or request.scope["path"].encode("utf-8")
    # Some servers leave the query on raw_path
    return raw_path.split(b"?", 1)[0]


def _request_uri(request: Request) -> str:
    uri = _raw_path(request).decode("latin-1")
    query = request.scope.get("query_string", b"")
    if query:
        uri = f"{uri}?{query.decode('latin-1')}"
    return uri


@dataclass
class UpstreamResponse:
    status_code: int
    http_version: str
    headers: RawHeaders
    content: bytes


async def build_upstream_request(request: Request, target_url: httpx.URL) -> httpx.Request:
    """
    Build the request sent upstream: same method and body, the incoming
    headers minus every ``Host`` entry, and a single ``Host`` naming the
    upstream authority.
    """
    try:
        body = await request.body()
    except (ClientDisconnect, RuntimeError) as exc:
        raise UpstreamReadFail(f"Failed to read request body: {exc}") from exc

    headers = [(key, value) for key, value in request.headers.raw if key.lower() != b"host"]
    if STRIP_HOP_BY_HOP_HEADERS:
        headers = strip_hop_by_hop(headers)
    headers.append((b"host", authority(target_url).encode("ascii")))

    try:
        return httpx.Request(request.method, target_url, headers=headers, content=body)
    except httpx.InvalidURL as exc:
        raise BadTarget(str(exc)) from exc


class UpstreamDispatcher:
    """
    Plaintext and TLS clients keyed by scheme.

    The clients are shared by every handler; nothing request specific is
    stored on them.
    """

    def __init__(
        self,
        timeout: float = PROXY_TIMEOUT,
        verify: bool = PROXY_VERIFY_TLS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.clients: Dict[str, httpx.AsyncClient] = {
            "http": httpx.AsyncClient(timeout=timeout, transport=transport),
            "https": httpx.AsyncClient(timeout=timeout, verify=verify, transport=transport),
        }
        for client in self.clients.values():
            # upstream cookies belong to the proxied client, not to the proxy
            client.cookies.jar.set_policy(DefaultCookiePolicy(allowed_domains=[]))

    def client_for(self, url: httpx.URL) -> httpx.AsyncClient:
        try:
            return self.clients[url.scheme]
        except KeyError:
            raise BadTarget(f"Unsupported scheme: {url.scheme!r}") from None

    async def send(self, request: httpx.Request) -> UpstreamResponse:
        client = self.client_for(request.url)
        try:
            response = await client.send(request, stream=True)
            try:
                # raw bytes, so compressed bodies are relayed untouched
                content = b"".join([chunk async for chunk in response.aiter_raw()])
            finally:
                await response.aclose()
        except httpx.TransportError as exc:
            raise UpstreamUnreachable(str(exc) or exc.__class__.__name__) from exc

        return UpstreamResponse(
            status_code=response.status_code,
            http_version=response.http_version,
            headers=list(response.headers.raw),
            content=content,
        )

    async def aclose(self) -> None:
        for client in self.clients.values():
            await client.aclose()

    async def __aenter__(self) -> "UpstreamDispatcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def build_client_response(upstream: UpstreamResponse, method: str = "GET") -> Response:
    headers = upstream.headers
    if STRIP_HOP_BY_HOP_HEADERS:
        headers = strip_hop_by_hop(headers)

    # a HEAD reply has no body to measure
    has_body = method != "HEAD" and not (
        upstream.status_code < 200 or upstream.status_code in (204, 304)
    )
    if (
        has_body
        and not _has_header(headers, b"content-length")
        and not _has_header(headers, b"transfer-encoding")
    ):
        headers = headers + [(b"content-length", str(len(upstream.content)).encode("ascii"))]

    response = Response(content=upstream.content, status_code=upstream.status_code)
    response.raw_headers = headers
    return response


async def forward(request: Request, dispatcher: UpstreamDispatcher) -> Response:
    target_url = extract_target_url(_raw_path(request), request.scope.get("query_string", b""))
    upstream_request = await build_upstream_request(request, target_url)
    upstream = await dispatcher.send(upstream_request)
    logger.debug(
        "Upstream %s answered %s %s",
        target_url,
        upstream.http_version,
        upstream.status_code,
    )

    upstream.headers = apply_location_rewrite(
        upstream.headers, request.headers.raw, request.scope.get("scheme"), target_url
    )
    return build_client_response(upstream, request.method)


async def proxy(request: Request) -> Response:
    """
    Forward the request to the URL embedded in its path.

    Every failure is turned into a plaintext response here: 400 for an
    unusable target, 502 when the upstream cannot be reached and 500 for
    anything else.
    """
    method = request.method
    uri = _request_uri(request)
    dispatcher: UpstreamDispatcher = request.app.state.dispatcher

    try:
        response = await forward(request, dispatcher)
    except ProxyError as exc:
        logger.error("Proxy error for %s %s: %s", method, uri, exc)
        return exc.to_response()
    except Exception as exc:
        logger.exception("Proxy error for %s %s: %s", method, uri, exc)
        return InternalError(str(exc)).to_response()

    logger.debug("%s %s -> %s", method, uri, response.status_code)
    return response


class ProxyEndpoint:
    async def __call__(self, scope, receive, send) -> None:
        response = await proxy(Request(scope, receive))
        await response(scope, receive, send)


def create_app(transport: Optional[httpx.AsyncBaseTransport] = None) -> Starlette:
    """
    Creates the Starlette application forwarding every path to its embedded URL.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with UpstreamDispatcher(transport=transport) as dispatcher:
            app.state.dispatcher = dispatcher
            yield

    # an ASGI endpoint with no method list matches every request method
    routes = [Route("/{path:path}", endpoint=ProxyEndpoint())]

    return Starlette(routes=routes, lifespan=lifespan)
