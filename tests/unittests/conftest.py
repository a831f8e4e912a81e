import pytest

from smart_proxy.main.config import Settings


@pytest.fixture
def test_settings() -> Settings:
    """Explicit settings that do not depend on .env or the environment."""
    return Settings(
        aad_proxy_enabled=True,
        authority="https://login.example.com/tenant-id/v2.0",
        proxy_client_id=None,
        public_origin=None,
        api_prefix="",
        testing=True,
        dev=True,
    )
