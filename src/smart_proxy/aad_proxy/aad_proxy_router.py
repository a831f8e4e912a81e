"""SMART on FHIR proxy endpoints in front of an Azure AD style identity provider."""

from typing import Optional

import aiohttp
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse, Response

from smart_proxy.aad_proxy.aad_proxy_service import AadProxyService
from smart_proxy.aad_proxy.idp_metadata import IdpMetadata, idp_metadata
from smart_proxy.main.aiohttp_client import aiohttp_client
from smart_proxy.main.config import get_settings
from smart_proxy.main.logging import get_logger
from smart_proxy.main.models import OAuthError
from smart_proxy.main.request_context import set_request_context

logger = get_logger(__name__)

ROUTE_PREFIX = "/AadProxy"


def require_aad_proxy_enabled() -> None:
    """Hide every proxy route unless the feature is switched on."""
    if not get_settings().aad_proxy_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


def get_idp_metadata() -> IdpMetadata:
    return idp_metadata()


def get_http_session() -> aiohttp.ClientSession:
    return aiohttp_client()


def get_aad_proxy_service(
    metadata: IdpMetadata = Depends(get_idp_metadata),
    session: aiohttp.ClientSession = Depends(get_http_session),
) -> AadProxyService:
    settings = get_settings()
    return AadProxyService(
        idp_metadata=metadata,
        session=session,
        launch_context_fields=settings.launch_context_fields,
        proxy_client_id=settings.proxy_client_id,
    )


def get_proxy_base_url(request: Request) -> str:
    """Public base URL of the proxy routes, e.g. ``https://fhir.example.com/AadProxy``.

    PUBLIC_ORIGIN wins over the request's own scheme and host, which differ
    behind a TLS-terminating load balancer.
    """
    settings = get_settings()
    origin = settings.public_origin or f"{request.url.scheme}://{request.url.netloc}"
    return f"{origin}{settings.api_prefix}{ROUTE_PREFIX}"


router = APIRouter(
    prefix=ROUTE_PREFIX,
    tags=["aad-proxy"],
    dependencies=[Depends(require_aad_proxy_enabled)],
    responses={
        400: {"model": OAuthError, "description": "Missing or invalid parameter"},
        404: {"description": "Proxy disabled"},
        500: {"model": OAuthError, "description": "Malformed state or code"},
    },
)


@router.get(
    "/authorize",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
    summary="Proxy an authorize request",
    description=(
        "Redirects to the IdP authorize endpoint. The client's state and launch "
        "context are folded into the state sent to the IdP, and the IdP is asked "
        "to call back into this proxy."
    ),
)
async def authorize(
    request: Request,
    response_type: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    launch: Optional[str] = Query(None, description="base64url encoded JSON launch context"),
    scope: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    aud: Optional[str] = Query(None, description="Audience, the FHIR server URL"),
    service: AadProxyService = Depends(get_aad_proxy_service),
):
    set_request_context(client_id=client_id)
    redirect = service.build_authorize_redirect(
        proxy_base_url=get_proxy_base_url(request),
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        launch=launch,
        scope=scope,
        state=state,
        aud=aud,
    )
    return RedirectResponse(redirect.url, status_code=redirect.status_code)


@router.get(
    "/callback/{encoded_redirect}",
    response_class=RedirectResponse,
    status_code=status.HTTP_301_MOVED_PERMANENTLY,
    summary="Receive the IdP callback",
    description=(
        "Redirects back to the client's redirect_uri (base64url encoded in the "
        "path) with a code that carries the launch context. IdP errors are "
        "passed through with a 302."
    ),
)
async def callback(
    encoded_redirect: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    session_state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    service: AadProxyService = Depends(get_aad_proxy_service),
):
    redirect = service.build_callback_redirect(
        encoded_redirect=encoded_redirect,
        code=code,
        state=state,
        session_state=session_state,
        error=error,
        error_description=error_description,
    )
    return RedirectResponse(redirect.url, status_code=redirect.status_code)


@router.post(
    "/token",
    summary="Proxy a token request",
    description=(
        "authorization_code grants are exchanged with the IdP and the response "
        "gets the launch context, client_id and short scopes. Other grant types "
        "are forwarded unchanged."
    ),
    responses={200: {"content": {"application/json": {}}}},
)
async def token(
    request: Request,
    service: AadProxyService = Depends(get_aad_proxy_service),
) -> Response:
    form = await request.form()
    fields = [(key, value) for key, value in form.multi_items() if isinstance(value, str)]
    set_request_context(grant_type=form.get("grant_type"), client_id=form.get("client_id"))

    upstream = await service.token(
        proxy_base_url=get_proxy_base_url(request),
        fields=fields,
        authorization=request.headers.get("authorization"),
    )
    return Response(
        content=upstream.body,
        status_code=upstream.status,
        media_type=upstream.content_type,
    )
