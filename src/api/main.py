"""Tollgate FastAPI application: entry point for the gateway server."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from src.api.errors import register_error_handlers
from src.api.middleware import request_context
from src.core.logging import get_logger, is_configured, setup_logging
from src.gateway.bootstrap import Gateway, build_gateway, open_store

log = get_logger(__name__)


def create_app(gateway: Gateway | None = None) -> FastAPI:
    """Build the FastAPI application.

    With ``gateway`` given (tests), that instance is served as-is and the
    lifespan neither loads nor closes anything.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if gateway is not None:
            app.state.gateway = gateway
            yield
            return

        if not is_configured():
            setup_logging(settings.log_level, settings.log_json)
        log.info("api_starting", env=settings.gateway_env, store=settings.store_backend)
        owned = build_gateway(settings, store=await open_store(settings))
        await owned.start(seed_demo=settings.seed_demo_tenant)
        app.state.gateway = owned
        try:
            yield
        finally:
            await owned.close()
            if settings.store_backend == "postgres":
                from src.data.db import close_engine

                await close_engine()
            log.info("api_shutdown")

    app = FastAPI(
        title="Tollgate API",
        description="Multi-tenant metering gateway in front of an LLM provider",
        version="1.0.0",
        lifespan=lifespan,
    )
    if gateway is not None:
        app.state.gateway = gateway

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context)
    register_error_handlers(app)

    # Register routers
    from src.api.routes.admin import router as admin_router
    from src.api.routes.health import router as health_router
    from src.api.routes.models import router as models_router
    from src.api.routes.tenant import router as tenant_router

    app.include_router(health_router, prefix="/api")
    app.include_router(models_router, prefix="/api")
    app.include_router(tenant_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    return app


app = create_app()
