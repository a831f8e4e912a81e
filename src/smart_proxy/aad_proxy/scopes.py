"""Translation between short SMART scopes and audience-qualified IdP scopes.

Azure AD v2.0 only accepts fully qualified scopes and does not allow ``/``
inside the scope name, so ``patient/*.read`` is sent as
``{aud}/patient$*.read`` and translated back on the token response.
"""

from urllib.parse import urlparse

from smart_proxy.aad_proxy.urls import is_absolute_url

WELL_KNOWN_SCOPES = frozenset({"profile", "openid", "email", "offline_access"})


def qualify_scope(audience: str, scope: str) -> str:
    if scope in WELL_KNOWN_SCOPES:
        return scope
    return f"{audience}/{scope.replace('/', '$')}"


def qualify_scopes(audience: str, scopes: str) -> str:
    return " ".join(qualify_scope(audience, scope) for scope in scopes.split())


def unqualify_scope(scope: str) -> str:
    if is_absolute_url(scope):
        last_segment = urlparse(scope).path.rstrip("/").rsplit("/", 1)[-1]
        return last_segment.replace("$", "/")
    return scope.replace("$", "/")


def unqualify_scopes(scopes: str) -> str:
    return " ".join(unqualify_scope(scope) for scope in scopes.split())
