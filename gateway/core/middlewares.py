import logging
import time
import uuid

from fastapi import FastAPI, Request

from gateway.core.config import Config
from gateway.core.request_context import GatewayAuthContextMiddleware


logger = logging.getLogger("gateway")

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    logger.addHandler(_handler)
logger.setLevel(Config.LOG_LEVEL.upper())


def register_middleware(app: FastAPI):
    app.add_middleware(GatewayAuthContextMiddleware)

    # added last so it wraps the auth middleware and sees its 401s too
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-Id"] = request_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f}ms) request_id={request_id}"
        )
        return response
