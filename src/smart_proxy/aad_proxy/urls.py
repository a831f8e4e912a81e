from typing import Mapping, Optional
from urllib.parse import quote, urlencode, urlparse

from smart_proxy.aad_proxy.compound import base64url_encode


def is_absolute_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def append_query(url: str, params: Mapping[str, Optional[str]]) -> str:
    """Append percent-encoded ``params`` to ``url``, skipping ``None`` values.

    Spaces are encoded as ``%20`` and reserved characters (``/``, ``:``, ``$``)
    are escaped, so values survive any IdP or client query parser unchanged.
    """
    query = urlencode(
        [(key, value) for key, value in params.items() if value is not None],
        quote_via=quote,
    )
    if not query:
        return url
    if "?" not in url:
        return f"{url}?{query}"
    if url.endswith(("?", "&")):
        return f"{url}{query}"
    return f"{url}&{query}"


def build_callback_url(proxy_base_url: str, redirect_uri: str) -> str:
    """Callback URL on this proxy that carries the client's redirect_uri.

    Authorize and token exchange must produce the identical value, since the
    IdP checks that the redirect_uri of both legs matches.
    """
    return f"{proxy_base_url.rstrip('/')}/callback/{base64url_encode(redirect_uri)}"
