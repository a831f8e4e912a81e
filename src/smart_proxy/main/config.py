import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DISTRIBUTION_NAME = "aad-smart-proxy"

# Launch context fields carried from the compound code into the token response
DEFAULT_LAUNCH_CONTEXT_FIELDS = [
    "patient",
    "encounter",
    "practitioner",
    "need_patient_banner",
    "smart_style_url",
]


def validate_public_origin(origin: str | None) -> str | None:
    """
    Validate and normalize public origin.

    Rules:
    - Must be HTTPS (http is accepted for localhost)
    - Must have hostname
    - No path, query, or fragment allowed
    - Normalize: lowercase hostname, strip trailing slash

    Args:
        origin: Raw origin string (e.g., "https://Fhir.Example.com/")

    Returns:
        str | None: Normalized origin or None if input was None

    Raises:
        ValueError: Invalid origin format

    Examples:
        >>> validate_public_origin("https://Fhir.Example.com/")
        "https://fhir.example.com"

        >>> validate_public_origin("http://insecure.com")
        ValueError: public_origin must use https://
    """
    if origin is None:
        return None

    origin = origin.strip()
    if not origin:
        raise ValueError("public_origin cannot be an empty string")
    parsed = urlparse(origin)

    is_localhost = parsed.hostname in ("localhost", "127.0.0.1")
    if parsed.scheme != "https" and not (parsed.scheme == "http" and is_localhost):
        raise ValueError(
            f"public_origin must use https:// (or http://localhost for development), got: {origin}"
        )

    if not parsed.hostname:
        raise ValueError(f"public_origin missing hostname: {origin}")

    if parsed.path not in ("", "/"):
        raise ValueError(f"public_origin must not include path: {origin}")

    if parsed.query or parsed.fragment:
        raise ValueError(
            f"public_origin must not include query or fragment: {origin}"
        )

    host = parsed.hostname.lower()
    scheme = parsed.scheme if is_localhost else "https"

    # Preserve non-default port (443 for https, 80 for http)
    default_port = 443 if scheme == "https" else 80
    port = f":{parsed.port}" if parsed.port and parsed.port != default_port else ""

    return f"{scheme}://{host}{port}"


def _set_app_version():
    try:
        app_version = version(DISTRIBUTION_NAME)
        if os.environ.get("DEV", False):
            return f"{app_version}-dev"

        return app_version
    except PackageNotFoundError:
        return "DEV"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    app_version: str = _set_app_version()

    # Feature gate for the /AadProxy routes
    aad_proxy_enabled: bool = False

    # Issuer of the upstream identity provider, e.g.
    # https://login.microsoftonline.com/{tenant}/v2.0
    authority: Optional[str] = None

    # client_id written into token responses (falls back to the request's client_id)
    proxy_client_id: Optional[str] = None

    # Externally reachable origin of this proxy, used for the IdP redirect_uri.
    # Falls back to the scheme and host of the inbound request.
    public_origin: Optional[str] = None

    launch_context_fields: list[str] = DEFAULT_LAUNCH_CONTEXT_FIELDS

    api_prefix: str = ""

    # Dev
    testing: bool = False
    dev: bool = False

    @model_validator(mode="after")
    def validate_authority_requirements(self):
        """The proxy cannot serve traffic without an IdP to resolve endpoints from."""
        if self.aad_proxy_enabled:
            if not self.authority or not self.authority.strip():
                logging.error(
                    "AUTHORITY is required when AAD_PROXY_ENABLED=true.\n"
                    "Example: AUTHORITY=https://login.microsoftonline.com/<tenant>/v2.0"
                )
                sys.exit(1)

            parsed = urlparse(self.authority)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                logging.error(
                    f"Invalid AUTHORITY configuration: {self.authority}\n"
                    "The authority must be an absolute http(s) URL."
                )
                sys.exit(1)

        return self

    @model_validator(mode="after")
    def validate_public_origin_format(self):
        if self.public_origin is not None:
            try:
                self.public_origin = validate_public_origin(self.public_origin)
            except ValueError as e:
                logging.error(
                    f"Invalid PUBLIC_ORIGIN configuration: {e}\n"
                    f"Example: PUBLIC_ORIGIN=https://fhir.example.com"
                )
                sys.exit(1)
        return self


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Override settings (primarily for testing).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel():
    loglevel = os.getenv("LOGLEVEL", "INFO")

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG":
            return logging.DEBUG
        case _:
            return logging.INFO
