from starlette.responses import PlainTextResponse


class ProxyError(Exception):
    """Base class for failures inside the forwarding pipeline."""

    status_code = 500

    def response_body(self) -> str:
        return f"Proxy error: {self}"

    def to_response(self) -> PlainTextResponse:
        return PlainTextResponse(self.response_body(), status_code=self.status_code)


class BadTarget(ProxyError):
    """The request path does not carry a usable upstream URL."""

    status_code = 400

    def response_body(self) -> str:
        return "Invalid target URL"


class UpstreamReadFail(ProxyError):
    """Reading the inbound request body failed."""


class UpstreamUnreachable(ProxyError):
    """DNS, connect, TLS or framing failure while talking to the upstream."""

    status_code = 502

    def response_body(self) -> str:
        return f"Request failed: {self}"


class InternalError(ProxyError):
    pass
