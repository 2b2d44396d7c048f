"""
Main FastAPI application for CarBot lead scoring.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import leads
from .services import get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .middleware.rate_limit import RateLimitMiddleware
from .cache import create_cache_store
from config.settings import get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("CarBot lead scoring starting up...")

    # Initialize database (if configured)
    if settings.database_url:
        try:
            from database.session import init_db
            await init_db(settings.database_url)
        except Exception as e:
            logger.warning(f"Database init failed (running without DB): {e}")

    initialize_services()
    logger.info("CarBot lead scoring ready")
    yield
    logger.info("CarBot lead scoring shutting down...")

    from database.session import close_db
    await close_db()
    get_services().reset()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        description="Lead scoring for automotive workshop chat leads.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # Rate limiting middleware
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
        store=create_cache_store(
            settings.redis_url, default_ttl=60, max_keys=settings.cache_max_keys, prefix="carbot:rl:"
        ),
    )

    # --- Lead scoring ---
    app.include_router(leads.router, prefix="/api/v1", tags=["Lead Scoring"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": "CarBot Lead Scoring",
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
