import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from gateway.api.router import api_router
from gateway.api.payments.services.webhook_service import get_webhook_engine
from gateway.core.config import Config
from gateway.core.exception_handlers import register_exception_handlers
from gateway.core.middlewares import logger, register_middleware
from gateway.db.main import init_db
from gateway.jobs.expiry_runner import expiry_sweeper_loop


version = "v1"

description = """
A REST API for a crypto payment gateway: payment lifecycle, signed merchant
webhooks with retries, and scheduled expiry of unpaid payments.
    """

version_prefix =f"/api/{version}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    sweeper = None
    if Config.EXPIRY_SWEEP_ENABLED:
        sweeper = asyncio.create_task(expiry_sweeper_loop())
    logger.info(f"Gateway started env={Config.APP_ENV}")
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await get_webhook_engine().shutdown()
        logger.info("Gateway stopped")


app = FastAPI(
    title="crypto-payment-gateway",
    description=description,
    version=version,
    license_info={"name": "MIT License", "url": "https://opensource.org/license/mit"},
    openapi_url=f"{version_prefix}/openapi.json",
    docs_url=f"{version_prefix}/docs",
    redoc_url=f"{version_prefix}/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)


register_middleware(app)


app.include_router(api_router, prefix=f"{version_prefix}")
