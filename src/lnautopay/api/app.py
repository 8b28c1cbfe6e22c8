"""FastAPI application configuration (control API)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from ..bootstrap import Runtime, build_runtime
from ..env import Settings, get_settings
from .routers import payments


def create_app(
    settings: Optional[Settings] = None, runtime: Optional[Runtime] = None
) -> FastAPI:
    """Create and configure FastAPI application.

    The runtime is built from settings at start-up unless one is supplied.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.runtime = runtime or build_runtime(settings)
        await app.state.runtime.start()
        yield
        await app.state.runtime.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Recurring Lightning payments control API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.include_router(payments.router, prefix="/api/v1")
    app.mount("/metrics", make_asgi_app())

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        job = app.state.runtime.engine.job
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "scheduler": "running" if job is not None and job.running else "stopped",
        }

    return app


app = create_app()
