"""
Main FastAPI application for the Yuvna lead intelligence service.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import buyers, chat, deals, escalation
from .services import get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from config.settings import get_settings
from database.session import close_db, init_db

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Yuvna lead intelligence starting up...")

    settings = get_settings()
    session_factory = None
    uses_sql = not settings.is_supabase and bool(settings.database_url)
    if uses_sql:
        session_factory = await init_db(settings.database_url)

    initialize_services(settings=settings, session_factory=session_factory)
    logger.info("Yuvna lead intelligence ready")
    yield
    logger.info("Yuvna lead intelligence shutting down...")

    if uses_sql:
        await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.api_title,
        description="Lead scoring, escalation and pipeline advice for the Yuvna advisory platform.",
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

    app.include_router(buyers.router, prefix="/api/v1", tags=["Buyers"])
    app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])
    app.include_router(escalation.router, prefix="/api/v1", tags=["Escalation"])
    app.include_router(deals.router, prefix="/api/v1", tags=["Deals"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.api_title,
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
            "providers": services.providers(),
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=s.api_port)
