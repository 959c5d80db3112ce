"""Application factory for the photo editor proxy."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .logging_setup import configure_logging
from .openrouter import OpenRouterClient
from .routers.proxy import router as proxy_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    # Configure logging first thing
    configure_logging()

    settings = get_settings()
    if settings.openrouter_api_key is None:
        logger.warning(
            "OPENROUTER_API_KEY is not set; proxy endpoints will answer 500"
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(OpenRouterClient.aclose_shared(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Closing pooled HTTP clients timed out after 10s")

    app = FastAPI(
        title="AI Photo Editor Proxy",
        version="0.1.0",
        description="Thin proxy forwarding image and chat requests to OpenRouter.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Rejected request body for %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    app.include_router(proxy_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        return {
            "status": "ok",
            "configured": settings.openrouter_api_key is not None,
            "default_chat_model": settings.default_chat_model,
        }

    return app


__all__ = ["create_app"]
