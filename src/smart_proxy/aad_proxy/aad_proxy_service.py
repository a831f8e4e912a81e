"""The three legs of the proxied authorization-code flow.

Nothing is kept between requests: the launch context and the client's state
travel inside the IdP ``state`` (authorize -> callback) and inside the
authorization ``code`` handed to the client (callback -> token).
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Iterable, Optional

import aiohttp

from smart_proxy.aad_proxy.compound import (
    EMPTY_LAUNCH_CONTEXT,
    CompoundCode,
    CompoundState,
    base64url_decode,
    decode_launch_context,
)
from smart_proxy.aad_proxy.idp_metadata import IdpMetadata
from smart_proxy.aad_proxy.scopes import qualify_scopes, unqualify_scopes
from smart_proxy.aad_proxy.urls import append_query, build_callback_url, is_absolute_url
from smart_proxy.main.exceptions import (
    CodeDecodeError,
    IdpUnavailableError,
    InvalidParameterError,
    LaunchContextDecodeError,
    MissingParameterError,
    StateDecodeError,
    TokenResponseError,
)
from smart_proxy.main.logging import get_logger
from smart_proxy.observability.redaction import sanitize_form

logger = get_logger(__name__)

AUTHORIZATION_CODE_GRANT = "authorization_code"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class Redirect:
    url: str
    permanent: bool = False

    @property
    def status_code(self) -> int:
        return 301 if self.permanent else 302


@dataclass(frozen=True)
class UpstreamResponse:
    """A token endpoint answer, returned to the caller as-is."""

    status: int
    body: bytes
    content_type: str = JSON_CONTENT_TYPE

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


def _require(value: Optional[str], name: str) -> str:
    if value is None or value == "":
        raise MissingParameterError(name)
    return value


def _require_absolute_url(value: Optional[str], name: str) -> str:
    value = _require(value, name)
    if not is_absolute_url(value):
        raise InvalidParameterError(name, "must be an absolute URL")
    return value


class AadProxyService:
    def __init__(
        self,
        idp_metadata: IdpMetadata,
        session: aiohttp.ClientSession,
        launch_context_fields: Iterable[str],
        proxy_client_id: Optional[str] = None,
    ):
        self.idp_metadata = idp_metadata
        self.session = session
        self.launch_context_fields = list(launch_context_fields)
        self.proxy_client_id = proxy_client_id

    def build_authorize_redirect(
        self,
        *,
        proxy_base_url: str,
        response_type: Optional[str],
        client_id: Optional[str],
        redirect_uri: Optional[str],
        launch: Optional[str],
        scope: Optional[str],
        state: Optional[str],
        aud: Optional[str],
    ) -> Redirect:
        """
        Rewrite a client authorize request into a redirect to the IdP.

        The client's state and launch context are folded into a compound
        state, and the IdP is told to call back into this proxy with the
        client's redirect_uri encoded in the callback path.

        Raises:
            MissingParameterError: A required parameter is absent
            InvalidParameterError: redirect_uri is not absolute or launch is
                not base64url JSON
        """
        response_type = _require(response_type, "response_type")
        client_id = _require(client_id, "client_id")
        redirect_uri = _require_absolute_url(redirect_uri, "redirect_uri")
        aud = _require(aud, "aud")

        if not launch:
            launch = EMPTY_LAUNCH_CONTEXT
        else:
            # Fail here rather than at the callback, after the user signed in
            try:
                decode_launch_context(launch)
            except LaunchContextDecodeError as e:
                raise InvalidParameterError("launch", str(e)) from e

        new_state = CompoundState(s=state, l=launch).encode()
        callback_url = build_callback_url(proxy_base_url, redirect_uri)

        params = {
            "response_type": response_type,
            "redirect_uri": callback_url,
            "client_id": client_id,
        }
        if not self.idp_metadata.is_v2:
            params["resource"] = aud
        else:
            scope = _require(scope, "scope")
            params["scope"] = qualify_scopes(aud, scope)
        params["state"] = new_state

        logger.info(
            "Redirecting authorize request to IdP",
            extra={
                "client_id": client_id,
                "aud": aud,
                "is_v2": self.idp_metadata.is_v2,
                "has_launch": launch != EMPTY_LAUNCH_CONTEXT,
            },
        )
        return Redirect(url=append_query(self.idp_metadata.authorize_endpoint, params))

    def build_callback_redirect(
        self,
        *,
        encoded_redirect: str,
        code: Optional[str],
        state: Optional[str],
        session_state: Optional[str],
        error: Optional[str],
        error_description: Optional[str],
    ) -> Redirect:
        """
        Rewrite the IdP callback into a redirect to the client.

        Errors go straight back to the client. Otherwise the real code and the
        launch context from the compound state become the compound code.

        Raises:
            InvalidParameterError: The encoded redirect is not a base64url URL
            MissingParameterError: code or state is absent on success
            StateDecodeError: The compound state or its launch context is malformed
        """
        try:
            redirect_url = base64url_decode(encoded_redirect)
        except ValueError as e:
            raise InvalidParameterError("encodedRedirect", str(e)) from e
        if not is_absolute_url(redirect_url):
            raise InvalidParameterError("encodedRedirect", "must encode an absolute URL")

        if error:
            logger.info(
                "IdP returned an authorization error",
                extra={"error": error, "error_description": error_description},
            )
            return Redirect(
                url=append_query(
                    redirect_url,
                    {"error": error, "error_description": error_description},
                )
            )

        code = _require(code, "code")
        state = _require(state, "state")

        try:
            compound_state = CompoundState.decode(state)
            launch_context = compound_state.launch_context
        except StateDecodeError as e:
            logger.error(
                "Failed to decode compound state",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise

        compound_code = CompoundCode(code=code, launch_context=launch_context)

        return Redirect(
            url=append_query(
                redirect_url,
                {
                    "code": compound_code.encode(),
                    "state": compound_state.s,
                    "session_state": session_state,
                },
            ),
            permanent=True,
        )

    async def token(
        self,
        *,
        proxy_base_url: str,
        fields: list[tuple[str, str]],
        authorization: Optional[str] = None,
    ) -> UpstreamResponse:
        """Handle a token request given as form fields.

        ``authorization_code`` grants are exchanged with the real code and
        rewritten; every other grant type is passed through untouched.
        """
        form = dict(fields)
        grant_type = _require(form.get("grant_type"), "grant_type")

        # TODO: decide whether 'aud' should become 'resource' for pass-through grants
        if grant_type != AUTHORIZATION_CODE_GRANT:
            # Client authentication may be in the Authorization header instead of the body
            if not form.get("client_id") and not authorization:
                raise MissingParameterError("client_id")
            return await self.pass_through_token_request(fields, authorization=authorization)

        return await self.exchange_authorization_code(
            proxy_base_url=proxy_base_url,
            compound_code=form.get("code"),
            redirect_uri=form.get("redirect_uri"),
            client_id=_require(form.get("client_id"), "client_id"),
            client_secret=form.get("client_secret"),
            authorization=authorization,
        )

    async def pass_through_token_request(
        self,
        fields: list[tuple[str, str]],
        authorization: Optional[str] = None,
    ) -> UpstreamResponse:
        logger.info(
            "Passing token request through to IdP",
            extra={"form": sanitize_form(fields)},
        )
        return await self._post_token_endpoint(fields, authorization=authorization)

    async def exchange_authorization_code(
        self,
        *,
        proxy_base_url: str,
        compound_code: Optional[str],
        redirect_uri: Optional[str],
        client_id: str,
        client_secret: Optional[str],
        authorization: Optional[str] = None,
    ) -> UpstreamResponse:
        """
        Exchange the real code behind a compound code and rewrite the result.

        Raises:
            MissingParameterError: code or redirect_uri is absent
            InvalidParameterError: redirect_uri is not absolute
            CodeDecodeError: The compound code is malformed
            TokenResponseError: The IdP answered 2xx without a JSON object
        """
        compound_code = _require(compound_code, "code")
        redirect_uri = _require_absolute_url(redirect_uri, "redirect_uri")

        try:
            decoded = CompoundCode.decode(compound_code)
        except CodeDecodeError as e:
            logger.error("Failed to decode compound code", extra={"error": str(e)})
            raise

        fields = [
            ("grant_type", AUTHORIZATION_CODE_GRANT),
            ("code", decoded.code),
            ("redirect_uri", build_callback_url(proxy_base_url, redirect_uri)),
            ("client_id", client_id),
            ("client_secret", client_secret),
        ]
        response = await self._post_token_endpoint(
            [(key, value) for key, value in fields if value is not None],
            authorization=authorization,
        )

        if not response.is_success:
            logger.warning(
                f"IdP token endpoint returned HTTP {response.status}",
                extra={"status_code": response.status, "grant_type": AUTHORIZATION_CODE_GRANT},
            )
            return response

        try:
            token_response = json.loads(response.body)
        except ValueError as e:
            raise TokenResponseError(f"Token response is not JSON: {e}") from e
        if not isinstance(token_response, dict):
            raise TokenResponseError("Token response is not a JSON object")

        token_response = self.rewrite_token_response(
            token_response, decoded, client_id=client_id
        )
        return UpstreamResponse(
            status=response.status,
            body=json.dumps(token_response, separators=(",", ":"), ensure_ascii=False).encode(
                "utf-8"
            ),
        )

    def rewrite_token_response(
        self, token_response: dict, compound_code: CompoundCode, client_id: str
    ) -> dict:
        """Inject launch context, set client_id and shorten scopes."""
        rewritten = dict(token_response)

        for launch_field in self.launch_context_fields:
            if launch_field in compound_code.launch_context and launch_field not in rewritten:
                rewritten[launch_field] = compound_code.launch_context[launch_field]

        rewritten["client_id"] = self.proxy_client_id or client_id

        scope = rewritten.get("scope")
        if isinstance(scope, str):
            rewritten["scope"] = unqualify_scopes(scope)

        return rewritten

    async def _post_token_endpoint(
        self,
        fields: list[tuple[str, str]],
        authorization: Optional[str] = None,
    ) -> UpstreamResponse:
        headers = {"Accept": JSON_CONTENT_TYPE}
        if authorization:
            headers["Authorization"] = authorization

        try:
            async with self.session.post(
                self.idp_metadata.token_endpoint, data=fields, headers=headers
            ) as resp:
                body = await resp.read()
                return UpstreamResponse(status=resp.status, body=body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "Failed to reach IdP token endpoint",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise IdpUnavailableError(f"Token endpoint unreachable: {e}") from e
