import json

import pytest

from smart_proxy.aad_proxy.aad_proxy_service import AadProxyService
from smart_proxy.aad_proxy.idp_metadata import IdpMetadata
from smart_proxy.main.config import DEFAULT_LAUNCH_CONTEXT_FIELDS

AUTHORIZE_ENDPOINT = "https://login.example.com/tenant-id/oauth2/v2.0/authorize"
TOKEN_ENDPOINT = "https://login.example.com/tenant-id/oauth2/v2.0/token"
PROXY_BASE_URL = "https://proxy.example.com/AadProxy"


class FakeResponse:
    def __init__(self, payload=None, status: int = 200, body: bytes | None = None):
        self.status = status
        self.headers = {"content-type": "application/json"}
        if body is None:
            body = json.dumps(payload).encode("utf-8")
        self._body_bytes = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: ARG002
        return False

    async def json(self, content_type="application/json"):  # noqa: ARG002
        return json.loads(self._body_bytes)

    async def text(self):
        return self._body_bytes.decode("utf-8")

    async def read(self):
        return self._body_bytes


class FakeSession:
    """Fake aiohttp session that records requests and returns a canned response."""

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self._response = response or FakeResponse({})
        self._error = error
        self.requests: list[dict] = []

    def _request(self, method: str, url: str, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if self._error is not None:
            raise self._error
        return self._response

    def get(self, url: str, **kwargs):
        return self._request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self._request("POST", url, **kwargs)


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def v1_metadata() -> IdpMetadata:
    return IdpMetadata(
        authorize_endpoint="https://login.example.com/tenant-id/oauth2/authorize",
        token_endpoint="https://login.example.com/tenant-id/oauth2/token",
        is_v2=False,
    )


@pytest.fixture
def v2_metadata() -> IdpMetadata:
    return IdpMetadata(
        authorize_endpoint=AUTHORIZE_ENDPOINT,
        token_endpoint=TOKEN_ENDPOINT,
        is_v2=True,
    )


@pytest.fixture
def make_service(v2_metadata):
    def _make_service(
        session: FakeSession | None = None,
        metadata: IdpMetadata | None = None,
        proxy_client_id: str | None = None,
    ) -> AadProxyService:
        return AadProxyService(
            idp_metadata=metadata or v2_metadata,
            session=session or FakeSession(),
            launch_context_fields=DEFAULT_LAUNCH_CONTEXT_FIELDS,
            proxy_client_id=proxy_client_id,
        )

    return _make_service
