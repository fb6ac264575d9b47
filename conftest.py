import httpx
import pytest
from starlette.testclient import TestClient

from proxy import create_app


class Upstream:
    """Mocked upstream: records every request and replies with a canned response."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.headers = []
        self.body = b"upstream body"
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        # a streamed body, like a real transport hands back
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            stream=httpx.ByteStream(self.body),
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def app(upstream):
    return create_app(transport=httpx.MockTransport(upstream))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
