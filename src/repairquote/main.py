"""
Repair Quote Service Main Application Entry Point

Serves the rate resolver and the budget calculator over a small JSON API.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from repairquote import __version__
from repairquote.api import router
from repairquote.computation.budget import BudgetCalculator
from repairquote.config import ResolverConfig, get_settings
from repairquote.providers import RateResolver

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    resolver: RateResolver = app.state.resolver

    logger.info(f"🚀 Starting Repair Quote v.{__version__}")
    logger.info(
        f"💱 {resolver.config.pair_label}: estimator={resolver.config.estimator}, "
        f"{len(resolver.registry)} rate sources, "
        f"timeout={resolver.config.request_timeout_ms}ms, "
        f"retries={resolver.config.retry_attempts}"
    )

    yield

    logger.info("🛑 Shutting down Repair Quote")


def create_app(
    config: ResolverConfig | None = None,
    resolver: RateResolver | None = None
) -> FastAPI:
    """Create FastAPI application."""
    if resolver is None:
        resolver = RateResolver(config or ResolverConfig.from_settings(get_settings()))

    app = FastAPI(
        title="Repair Quote",
        description="Device repair quotes with USD → BRL conversion",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json"
    )

    app.state.resolver = resolver
    app.state.calculator = BudgetCalculator(default_rate=resolver.config.default_rate)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Repair Quote",
            "version": __version__,
            "docs": "/docs",
            "api": {
                "rate": "/api/v1/rate",
                "quote": "/api/v1/quote",
                "sources": "/api/v1/sources",
                "health": "/api/v1/health"
            }
        }

    return app


def main():
    """Main entry point for running the server."""
    settings = get_settings()

    logger.info(f"Starting Repair Quote server on {settings.api_host}:{settings.api_port}")

    uvicorn.run(
        "repairquote.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
