import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shortlink_app.config import settings
from shortlink_app.database.connection import engine, Base
from shortlink_app.dependencies import get_click_storage, get_queue
from shortlink_app.exceptions import ShortlinkError, ValidationFailedError
from shortlink_app.hit_processor.click_worker import ClickWorker
from shortlink_app.log_config import configure_logging
from shortlink_app.api.v1 import analytics, links, redirect

# Import models to ensure they're registered with Base
from shortlink_app.models import Counter, Link, LinkKey, User  # noqa: F401

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, run the click worker in-process when configured"""
    Base.metadata.create_all(bind=engine)

    worker = None
    worker_task = None
    if settings.embedded_click_worker:
        worker = ClickWorker(queue=get_queue(), storage=get_click_storage())
        worker_task = asyncio.create_task(worker.start())

    logger.info("app_started", environment=settings.environment, embedded_worker=worker is not None)
    yield

    if worker is not None:
        worker.stop()
        await worker_task


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="A URL shortener with click analytics built with FastAPI",
    debug=settings.debug,
    lifespan=lifespan
)


def _error_body(message: str, **extra) -> dict:
    return {"status": "error", "message": message, **extra}


def _field_errors(exc: RequestValidationError) -> dict:
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "body"
        message = error.get("msg", "Invalid value").removeprefix("Value error, ")
        errors.setdefault(field, []).append(message)
    return errors


@app.exception_handler(ShortlinkError)
async def shortlink_error_handler(request: Request, exc: ShortlinkError):
    extra = {"errors": exc.errors} if isinstance(exc, ValidationFailedError) else {}
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, **extra))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return await shortlink_error_handler(request, ValidationFailedError(errors=_field_errors(exc)))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal Server Error"),
    )


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(links.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
# Catch-all /{short_code} lives here, so it must come last
app.include_router(redirect.router)
