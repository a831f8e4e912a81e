"""Resolution of the upstream IdP endpoints from its OpenID discovery document."""

import asyncio
from typing import Optional
from urllib.parse import urlparse

import aiohttp
from pydantic import BaseModel, ConfigDict

from smart_proxy.main.exceptions import OpenIdConfigurationError
from smart_proxy.main.logging import get_logger

logger = get_logger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"
V2_PATH_SEGMENT = "v2.0"


class IdpMetadata(BaseModel):
    """Endpoints of the IdP, resolved once at startup."""

    model_config = ConfigDict(frozen=True)

    authorize_endpoint: str
    token_endpoint: str
    is_v2: bool


def is_v2_authority(authority: str) -> bool:
    """Whether the issuer is a v2.0 endpoint (e.g. ``.../{tenant}/v2.0``)."""
    segments = [segment for segment in urlparse(authority).path.split("/") if segment]
    return V2_PATH_SEGMENT in segments


def openid_configuration_url(authority: str) -> str:
    return f"{authority.rstrip('/')}{WELL_KNOWN_PATH}"


def _require_endpoint(document: dict, key: str, discovery_url: str) -> str:
    value = document.get(key)
    if not isinstance(value, str) or not value.strip():
        logger.warning(
            f"OpenID configuration is missing '{key}'",
            extra={"discovery_url": discovery_url, "field": key},
        )
        raise OpenIdConfigurationError(
            f"OpenID configuration at {discovery_url} has no usable '{key}'"
        )
    return value


async def fetch_openid_configuration(
    discovery_url: str, session: aiohttp.ClientSession
) -> dict:
    """
    Fetch the OpenID discovery document.

    Args:
        discovery_url: URL of ``.well-known/openid-configuration``
        session: Shared aiohttp session

    Returns:
        dict: Discovery document JSON

    Raises:
        OpenIdConfigurationError: Network failure, non-success status or a
            body that is not a JSON object
    """
    try:
        async with session.get(discovery_url, headers={"Accept": "application/json"}) as resp:
            if not 200 <= resp.status < 300:
                logger.warning(
                    f"Failed to fetch OpenID configuration: HTTP {resp.status}",
                    extra={"discovery_url": discovery_url, "http_status": resp.status},
                )
                raise OpenIdConfigurationError(
                    f"Failed to fetch OpenID configuration: HTTP {resp.status}"
                )
            document = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.warning(
            f"Failed to read OpenID configuration from {discovery_url}",
            extra={
                "discovery_url": discovery_url,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise OpenIdConfigurationError(
            f"Unable to read OpenID configuration from {discovery_url}"
        ) from e

    if not isinstance(document, dict):
        logger.warning(
            "OpenID configuration is not a JSON object",
            extra={"discovery_url": discovery_url},
        )
        raise OpenIdConfigurationError(
            f"OpenID configuration at {discovery_url} is not a JSON object"
        )

    return document


async def resolve_idp_metadata(
    authority: str, session: aiohttp.ClientSession
) -> IdpMetadata:
    """Fetch the discovery document of ``authority`` and extract its endpoints.

    Any failure raises ``OpenIdConfigurationError``; callers run this once at
    startup and let the error stop the process.
    """
    discovery_url = openid_configuration_url(authority)
    document = await fetch_openid_configuration(discovery_url, session)

    metadata = IdpMetadata(
        authorize_endpoint=_require_endpoint(document, "authorization_endpoint", discovery_url),
        token_endpoint=_require_endpoint(document, "token_endpoint", discovery_url),
        is_v2=is_v2_authority(authority),
    )

    logger.info(
        "Resolved IdP endpoints",
        extra={
            "authority": authority,
            "authorize_endpoint": metadata.authorize_endpoint,
            "token_endpoint": metadata.token_endpoint,
            "is_v2": metadata.is_v2,
        },
    )
    return metadata


class IdpMetadataHolder:
    """Process-wide, read-only-after-startup holder for the resolved metadata."""

    metadata: Optional[IdpMetadata] = None

    def set(self, metadata: IdpMetadata) -> None:
        self.metadata = metadata

    def clear(self) -> None:
        self.metadata = None

    @property
    def is_initialized(self) -> bool:
        return self.metadata is not None

    def __call__(self) -> IdpMetadata:
        if self.metadata is None:
            raise OpenIdConfigurationError("IdP metadata has not been resolved")
        return self.metadata


idp_metadata = IdpMetadataHolder()
