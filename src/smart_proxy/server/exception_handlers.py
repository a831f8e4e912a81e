from fastapi import FastAPI
from fastapi.responses import JSONResponse

from smart_proxy.main.exceptions import EXCEPTION_MAP
from smart_proxy.main.logging import get_logger
from smart_proxy.main.models import OAuthError

logger = get_logger(__name__)


def add_exception_handlers(app: FastAPI):
    for exception, (status_code, error, error_description) in EXCEPTION_MAP.items():

        def handler(
            request,
            exc,
            status_code=status_code,
            error=error,
            error_description=error_description,
        ):
            description = error_description or str(exc)

            if status_code >= 500:
                logger.warning(
                    f"[AadProxy] {request.method} {request.url.path} failed: {exc}",
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "error_code": error,
                        "status_code": status_code,
                        "error_type": type(exc).__name__,
                    },
                )

            return JSONResponse(
                status_code=status_code,
                content=OAuthError(
                    error=error, error_description=description
                ).model_dump(exclude_none=True),
            )

        app.add_exception_handler(exception, handler)
