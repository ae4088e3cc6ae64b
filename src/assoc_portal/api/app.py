"""
assoc_portal.api.app

FastAPI app factory for the association portal.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Start and stop shared infrastructure (backend, per-browser client registry).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from assoc_portal import __version__
from assoc_portal.api.clients import ClientRegistry
from assoc_portal.api.errors import install_error_handlers
from assoc_portal.api.routers.admin import router as admin_router
from assoc_portal.api.routers.auth import router as auth_router
from assoc_portal.api.routers.health import router as health_router
from assoc_portal.api.routers.member import router as member_router
from assoc_portal.backend.local import LocalBackend
from assoc_portal.observability.logging import configure_logging, get_logger
from assoc_portal.observability.middleware import RequestContextMiddleware
from assoc_portal.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings, backend: LocalBackend | None = None) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
        json_logs=settings.log_format == "json",
    )

    backend = backend or LocalBackend(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        await backend.start()
        registry = ClientRegistry(client_factory=backend.client, settings=settings)
        app.state.registry = registry
        try:
            yield
        finally:
            await registry.close()
            await backend.close()
            log.info("shutdown")

    app = FastAPI(
        title="Association Membership Portal",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend

    app.add_middleware(RequestContextMiddleware, cookie_name=settings.session_cookie_name)
    install_error_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(member_router)
    app.include_router(admin_router)
    return app


# --- Module Notes -----------------------------------------------------------
# A backend passed in by the caller (tests, seeding scripts) is still started and
# closed by the app lifespan.
