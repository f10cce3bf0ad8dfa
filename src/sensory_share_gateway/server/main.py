import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sensory_share_gateway import create_gateway
from sensory_share_gateway.client import ShareGateway
from sensory_share_gateway.exceptions import GatewayError
from sensory_share_gateway.logging import configure
from .routes import router

logger = logging.getLogger(__name__)


def create_app(gateway: Optional[ShareGateway] = None) -> FastAPI:
    """
    Собирает приложение. Без явного gateway он создаётся из окружения при старте,
    и сервис не поднимется без ключа шифрования.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if gateway is None:
            configure()
            app.state.gateway = create_gateway()
        else:
            app.state.gateway = gateway
        yield
        await app.state.gateway.aclose()

    app = FastAPI(title="Sensory Share Gateway", lifespan=lifespan)
    if gateway is not None:
        app.state.gateway = gateway

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.status_code, "message": exc.message, "data": exc.details or None, "success": False},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} failed unexpectedly")
        return JSONResponse(
            status_code=500,
            content={"code": 500, "message": f"Upload failed: {exc}", "data": None, "success": False},
        )

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    app.include_router(router)
    return app
