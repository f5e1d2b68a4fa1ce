"""Main FastAPI application."""
from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from manifest_guard.core.config import settings
from manifest_guard.core.database import engine
from manifest_guard.core.exceptions import AppException
from manifest_guard.core.logging import setup_logging, get_logger
from manifest_guard.api.v1 import router as v1_router


# Setup logging
setup_logging(settings.DEBUG)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}")
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Manifest-gated invoice cancellation and collection",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
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


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request with an id, echoed back in ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include API router
app.include_router(v1_router, prefix="/api")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "-"


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Domain errors carry their own status code and operator-facing message."""
    logger.warning(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={"request_id": _request_id(request)},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


def _error_details(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors for debugging 422s."""
    logger.error(f"Validation error: {exc.errors()}", extra={"request_id": _request_id(request)})
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Invalid request", "detail": _error_details(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        extra={"request_id": _request_id(request)},
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.APP_NAME}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/api/docs",
    }
