"""
FastAPI Application Factory
Creates and configures the FastAPI app instance
"""
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.endpoints import catalog, health, landing, manifest, meta
from app.core.config import settings
from app.core.state import AddonState
from app.services.background import build_default_jobs
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info("Starting Anime Catalogue Addon")
    logger.info(f"Base URL: {settings.BASE_URL}")

    state: Optional[AddonState] = getattr(app.state, "addon", None)
    if state is None:
        state = AddonState.build()
        app.state.addon = state

    await state.load_tables()

    if state.tmdb.enabled:
        logger.info("TMDB API key found - meta will use TMDB for episodes and thumbnails")
    else:
        logger.warning("TMDB_API_KEY not set - meta will fall back to AniList + Kitsu episodes")

    if settings.ENABLE_BACKGROUND_TASKS:
        build_default_jobs(state.tasks, state)
        state.tasks.start()
        logger.info("Background pre-warming and refresh enabled")

    logger.info(f"Install URL: {settings.BASE_URL.rstrip('/')}/manifest.json")

    yield

    # Shutdown
    logger.info("Shutting down Anime Catalogue Addon")
    await state.close()


def create_app(state: Optional[AddonState] = None) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        state: Prebuilt service container; built during startup when omitted
    """
    app = FastAPI(
        title="Anime Catalogue Stremio Addon",
        description="Trending, seasonal, and popular anime catalogs from AniList",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    if state is not None:
        app.state.addon = state

    # Stremio clients fetch from any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(landing.router)
    app.include_router(manifest.router)
    app.include_router(catalog.router)
    app.include_router(meta.router)

    return app
