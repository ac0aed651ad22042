import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.background.scheduler import shutdown_scheduler, start_scheduler
from app.core.config import get_settings
from app.core.db import check_database_connection, init_database
from app.middleware.security import setup_security_middleware

logger = logging.getLogger(__name__)
settings = get_settings()

# Database status, reported by /health and /ready
db_initialized = False
db_error: Optional[str] = None


async def initialize_database() -> None:
    """Initialize database in background - non-blocking for health checks."""
    global db_initialized, db_error
    try:
        if not await check_database_connection():
            db_error = "Database connection failed"
            logger.error("database_unavailable", extra={"error": db_error})
            return

        await asyncio.wait_for(init_database(), timeout=30.0)
        db_initialized = True
    except asyncio.TimeoutError:
        db_error = "Database initialization timed out after 30s"
        logger.error("database_init_timeout", extra={"error": db_error})
    except Exception as exc:
        db_error = str(exc)
        logger.exception("database_init_failed", extra={"error": db_error})


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Starting application initialization", extra={"environment": settings.environment})
    init_task = asyncio.create_task(initialize_database())

    try:
        start_scheduler()
    except Exception as exc:
        logger.exception("scheduler_start_failed", extra={"error": str(exc)})

    logger.info("Application startup complete")
    yield

    logger.info("Shutting down")
    shutdown_scheduler()
    if not init_task.done():
        init_task.cancel()


app = FastAPI(
    title=settings.project_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)
setup_security_middleware(app)

app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    return {"status": "ok", "environment": settings.environment}


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint - responds immediately, reports database status."""
    return {
        "status": "ok",
        "service": settings.project_name,
        "database_ready": db_initialized,
        "database_error": db_error,
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict:
    """Readiness check - only returns ok when database is ready."""
    if not db_initialized:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "database_ready": False, "error": db_error},
        )
    return {"status": "ready", "database_ready": True}
