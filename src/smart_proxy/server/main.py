import uvicorn
from fastapi import FastAPI

from smart_proxy.aad_proxy.aad_proxy_router import router as aad_proxy_router
from smart_proxy.aad_proxy.idp_metadata import idp_metadata
from smart_proxy.main.config import get_settings
from smart_proxy.main.models import HealthResponse
from smart_proxy.server import api_documentation
from smart_proxy.server.dependencies.lifespan import lifespan
from smart_proxy.server.exception_handlers import add_exception_handlers
from smart_proxy.server.middleware.request_context import RequestContextMiddleware


def get_application():
    settings = get_settings()

    app = FastAPI(
        title=api_documentation.TITLE,
        summary=api_documentation.SUMMARY,
        version=settings.app_version,
        openapi_tags=api_documentation.TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(aad_proxy_router, prefix=settings.api_prefix)

    add_exception_handlers(app)

    @app.get("/healthz", response_model=HealthResponse, tags=["health"])
    async def get_healthz():
        current = get_settings()
        return HealthResponse(
            status="HEALTHY",
            version=current.app_version,
            aad_proxy_enabled=current.aad_proxy_enabled,
            idp_metadata_initialized=idp_metadata.is_initialized,
        )

    return app


app = get_application()


def start():
    uvicorn.run(
        "smart_proxy.server.main:app",
        host="0.0.0.0",
        port=8123,
    )
