"""
Root-level conftest for all tests.

Settings are created lazily from the environment, so every test starts from a
clean singleton and a developer's AAD_PROXY_* variables cannot leak in.
"""
import os

os.environ.setdefault("JSON_LOGS", "true")
os.environ["AAD_PROXY_ENABLED"] = "false"

import pytest  # noqa: E402

from smart_proxy.aad_proxy.idp_metadata import idp_metadata  # noqa: E402
from smart_proxy.main.config import reset_settings  # noqa: E402
from smart_proxy.main.request_context import clear_request_context  # noqa: E402


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset settings, IdP metadata and request context after each test."""
    yield
    reset_settings()
    idp_metadata.clear()
    clear_request_context()
