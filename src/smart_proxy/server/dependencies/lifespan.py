from contextlib import asynccontextmanager

from fastapi import FastAPI

from smart_proxy.aad_proxy.idp_metadata import idp_metadata, resolve_idp_metadata
from smart_proxy.main.aiohttp_client import aiohttp_client
from smart_proxy.main.config import get_settings
from smart_proxy.main.exceptions import OpenIdConfigurationError
from smart_proxy.main.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup()
    yield
    await shutdown()


async def startup():
    settings = get_settings()
    aiohttp_client.start()

    if not settings.aad_proxy_enabled:
        logger.info("AAD SMART proxy disabled, skipping IdP metadata resolution")
        return

    # No proxy without a usable IdP: let the error stop the server
    try:
        metadata = await resolve_idp_metadata(settings.authority, aiohttp_client())
    except OpenIdConfigurationError:
        logger.error(
            "Unable to resolve IdP metadata, refusing to start",
            extra={"authority": settings.authority},
        )
        await aiohttp_client.stop()
        raise

    idp_metadata.set(metadata)


async def shutdown():
    idp_metadata.clear()
    await aiohttp_client.stop()
