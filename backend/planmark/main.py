"""
PlanMark FastAPI application.

Run with:
    uvicorn planmark.main:app --reload
"""

import logging

from fastapi import FastAPI

from .api import projects
from .core.config import Settings, get_settings


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Settings = None) -> FastAPI:
    """Build the FastAPI application."""
    if settings is None:
        settings = get_settings()

    configure_logging(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Scale calibration and measured annotation of floor plan images",
    )
    application.include_router(projects.router, prefix=settings.api_prefix)

    @application.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    @application.get("/health")
    async def health():
        return {"status": "ok"}

    return application


app = create_app()
