"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vitals_monitor.api.routes import GENERIC_ERROR_MESSAGE, router
from vitals_monitor.core.repositories import Storage
from vitals_monitor.settings import Settings, load_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Vitals Monitor API"
VERSION = "1.0.0"


async def build_storage(settings: Settings) -> Storage:
    """Create the configured backing store, ready for use."""
    if settings.storage_backend == "memory":
        from vitals_monitor.db.memory import InMemoryStorage

        logger.warning("Using in-memory storage; data is lost on restart")
        return InMemoryStorage()

    from vitals_monitor.db.pool import DatabasePool, apply_schema
    from vitals_monitor.db.postgres import PostgresStorage

    db_pool = DatabasePool(settings=settings)
    await db_pool.initialize()
    logger.info("Database pool initialized")
    await apply_schema(db_pool)
    return PostgresStorage(db_pool)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.

    Startup:
    - Build the configured storage unless one was injected

    Shutdown:
    - Close storage we created
    """
    # Startup
    logger.info("Starting vitals monitor service...")
    owns_storage = getattr(app.state, "storage", None) is None

    try:
        if owns_storage:
            app.state.storage = await build_storage(app.state.settings)
        logger.info("Vitals monitor service started successfully")

    except Exception as e:
        logger.error(f"Failed to start service: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down vitals monitor service...")
    if owns_storage:
        await app.state.storage.close()
        app.state.storage = None
    logger.info("Service shutdown complete")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are reported as 400, not 422."""
    errors = exc.errors()
    loc = tuple(errors[0]["loc"]) if errors else ()
    # ("body",) or ("body", <offset>) points into undecodable JSON, not a field
    if not loc or (loc[0] == "body" and (len(loc) == 1 or isinstance(loc[1], int))):
        message = "Invalid request body"
    else:
        message = "Invalid " + ".".join(str(part) for part in loc)
    return JSONResponse(status_code=400, content={"message": message})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": GENERIC_ERROR_MESSAGE})


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment if not provided)
        storage: Pre-built storage; when given, the lifespan neither creates nor closes one

    Returns:
        Configured application
    """
    settings = settings or load_settings()

    app = FastAPI(
        title=SERVICE_NAME,
        description="Ingestion and dashboard queries for patient vital signs",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-api-key"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include API routes
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/ping")
    async def ping():
        """Liveness probe."""
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vitals_monitor.main:app",
        host="0.0.0.0",
        port=5000,
        reload=True,
        log_level="info"
    )
