from typing import Optional

from pydantic import BaseModel


class OAuthError(BaseModel):
    """Error body in the RFC 6749 section 5.2 shape."""

    error: str
    error_description: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "invalid_request",
                "error_description": "Missing required parameter 'redirect_uri'",
            }
        }
    }


class HealthResponse(BaseModel):
    status: str
    version: str
    aad_proxy_enabled: bool
    idp_metadata_initialized: bool
