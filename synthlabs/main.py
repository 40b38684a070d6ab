"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.routes import router
from .core.client import ProviderClient
from .core.config import get_settings
from .core.verbose import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings)
    logger.info(f"Starting SynthLabs in {settings.environment} mode")

    if not any(settings.configured_providers().values()):
        logger.warning("No AI provider API keys configured. Please set at least one in .env file.")

    app.state.provider_client = ProviderClient(settings)

    yield

    # Cleanup
    logger.info("Shutting down SynthLabs")
    await app.state.provider_client.aclose()


# Create FastAPI app
app = FastAPI(
    title="SynthLabs - Reasoning Data Engine",
    description="Call any LLM provider through one interface and generate deep-reasoning and multi-turn training records.",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS using settings
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["generation"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SynthLabs",
        "version": __version__,
        "description": "Reasoning Data Engine",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    settings = get_settings()

    return {
        "status": "healthy",
        "providers": settings.configured_providers(),
    }
