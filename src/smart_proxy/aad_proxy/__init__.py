"""SMART on FHIR launch context proxy for Azure AD style identity providers.

Modules:
    compound: base64url JSON compound state and code
    scopes: short <-> audience-qualified scope translation
    idp_metadata: IdP endpoint resolution at startup
    aad_proxy_service: authorize, callback and token rewriting
    aad_proxy_router: FastAPI routes under /AadProxy
"""

from smart_proxy.aad_proxy.compound import CompoundCode, CompoundState, LaunchContext
from smart_proxy.aad_proxy.idp_metadata import IdpMetadata, resolve_idp_metadata

__all__ = [
    "CompoundCode",
    "CompoundState",
    "IdpMetadata",
    "LaunchContext",
    "resolve_idp_metadata",
]
