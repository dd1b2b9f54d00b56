"""TaskGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskgate import __version__
from taskgate.api import router
from taskgate.api.deps import audit_recorder, validate_auth_config
from taskgate.api.errors import register_exception_handlers
from taskgate.config import settings
from taskgate.db.base import close_db, init_db
from taskgate.tenancy.middleware import TenantResolutionMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("taskgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TaskGate server...")
    logger.info(f"Environment: {settings.env.value}")

    # Validate token configuration (fail fast if no signing secret)
    validate_auth_config()

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    yield

    # Cleanup
    logger.info("Shutting down TaskGate server...")
    await audit_recorder.drain(timeout=10.0)
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="TaskGate",
        description="Multi-tenant task management with role-based access control",
        version=__version__,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Tenant resolution wraps everything below CORS
    app.add_middleware(TenantResolutionMiddleware, header_name=settings.tenant_header)

    # Add CORS middleware (explicit allowlist, no wildcards with credentials)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )

    # Include API router
    app.include_router(router)
    return app


app = create_app()


def main():
    """Entry point for the application."""
    uvicorn.run(
        "taskgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
