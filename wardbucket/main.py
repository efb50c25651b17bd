"""
Ward Data Bucket Backend API
Main application entry point
"""
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
import uuid

from wardbucket.api.deps import require_root
from wardbucket.api.v1.router import api_router
from wardbucket.core.config import settings
from wardbucket.core.database import engine, init_db
from wardbucket.core.exceptions import GeoError
from wardbucket.core.logging import request_id_var, setup_logging, get_logger
from wardbucket.core.monitoring import init_sentry, capture_exception, metrics, track_api_request
from wardbucket.core.security import Principal
from wardbucket.schemas import ErrorDetail, ErrorResponse

# Set up structured logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting Ward Data Bucket API...")

    # Initialize Sentry for error tracking
    init_sentry()

    # Initialize database connection
    await init_db()
    logger.info("Database initialized")

    yield

    await engine.dispose()
    logger.info("Shutting down Ward Data Bucket API...")


_is_production = settings.ENVIRONMENT == "production"

# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="API for Ward Data Bucket - PNG sub-national geographic hierarchy",
    docs_url=None if _is_production else "/docs",
    redoc_url=None if _is_production else "/redoc",
    openapi_url=None if _is_production else "/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=600,  # Cache preflight for 10 minutes
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Assign a request id (or reuse the caller's) and log timing."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    start_time = time.perf_counter()

    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)

    duration_ms = (time.perf_counter() - start_time) * 1000

    # Keyed by route template (/history/{node_id}), not the concrete path
    route = request.scope.get("route")
    track_api_request(
        method=request.method,
        path=getattr(route, "path", "unmatched"),
        status_code=response.status_code,
        duration_ms=duration_ms
    )

    response.headers["X-Request-ID"] = request_id

    logger.info(
        f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
    )

    return response


def _error_response(request: Request, status_code: int, code: str, message: str, details=None):
    body = ErrorResponse(error=ErrorDetail(
        code=code,
        message=message,
        request_id=getattr(request.state, 'request_id', 'unknown'),
        details=details or {},
    ))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(GeoError)
async def geo_error_handler(request: Request, exc: GeoError):
    if exc.status_code >= 500:
        logger.error(f"Geo operation failed: {exc.message}", extra={"details": exc.details})
        capture_exception(exc, extra={"path": str(request.url)})
    else:
        logger.info(f"Geo request rejected ({exc.code}): {exc.message}")
    return _error_response(request, exc.status_code, **exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error_response(request, 400, "validation_error", "Invalid request", {"errors": errors})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Global exception: {exc}", exc_info=True, extra={"request_id": request_id})

    capture_exception(exc, extra={"request_id": request_id, "path": str(request.url)})

    return _error_response(request, 500, "internal_error", "An internal error occurred")


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get(f"{settings.API_V1_PREFIX}/metrics", tags=["Monitoring"], include_in_schema=not _is_production)
async def get_metrics(_root: Principal = Depends(require_root)):
    """In-memory request and geo operation counters (ROOT only)"""
    return metrics.get_all()


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "wardbucket.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
