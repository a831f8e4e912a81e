from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from smart_proxy.main.request_context import (
    CORRELATION_ID_HEADER,
    clear_request_context,
    new_correlation_id,
    set_request_context,
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to every request and echo it in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or new_correlation_id()

        clear_request_context()
        set_request_context(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
