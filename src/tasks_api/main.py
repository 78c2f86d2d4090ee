from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import BackendUnavailable, InvalidToken, TodoServiceError
from .health import BackendMonitor, health_state
from .logging_config import get_logger, setup_logging
from .repositories import get_store
from .routers import accounts as accounts_router
from .routers import todos as todos_router
from .routers import welcome as welcome_router
from .schemas import HealthOut
from .security import check_secret
from .settings import get_settings

logger = get_logger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Signup, authentication and the basic-auth probe."},
    {
        "name": "todos",
        "description": "CRUD operations on the authenticated user's own todos.",
    },
    {"name": "welcome", "description": "Unauthenticated greeting endpoint."},
]

_settings = get_settings()
setup_logging(_settings.log_level)
# Fails fast in production when the signing secret is the insecure default
check_secret(_settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the backend monitor; requests are served whether or not it has connected."""
    logger.info(f"Starting todo service (backend={_settings.persistence_backend}, env={_settings.environment})")
    store = get_store()
    monitor = BackendMonitor(
        store,
        health_state,
        max_attempts=_settings.backend_connect_max_attempts,
        base_delay=_settings.backend_connect_base_delay,
        max_delay=_settings.backend_connect_max_delay,
        check_interval=_settings.backend_check_interval,
    )
    monitor.start()

    yield

    logger.info("Shutting down todo service...")
    await monitor.stop()
    store.close()


app = FastAPI(
    title="Todo Service",
    description="Per-user todo lists with token authentication and pluggable storage backends.",
    version="1.0.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# Configure CORS from settings (CORS_ALLOW_ORIGINS / CORS_ALLOW_ORIGIN_REGEX)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allow_origins,
    allow_origin_regex=_settings.cors_allow_origin_regex or None,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(TodoServiceError)
async def service_error_handler(request: Request, exc: TodoServiceError) -> JSONResponse:
    """
    Render domain errors as ``{"error": <name>, "message": <message>}``.
    Details stay in the logs.
    """
    if isinstance(exc, BackendUnavailable):
        health_state.mark_unreachable(exc.details.get("reason"), count_attempt=False)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__} {exc.details}")
    elif isinstance(exc, InvalidToken):
        logger.info(f"{request.method} {request.url.path} rejected token: {type(exc).__name__}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.name, "message": exc.message},
    )


# Global exception handlers for consistent JSON on validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": [... pydantic/fastapi error details ...]
        }
    """
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and return a generic 500 without internal detail."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "Internal server error"},
    )


# PUBLIC_INTERFACE
@app.get("/health", response_model=HealthOut, summary="Health Check", tags=["health"])
def health_check() -> HealthOut:
    """
    Health check endpoint. Always 200; reports the last known backend state.
    """
    snapshot = health_state.snapshot()
    return HealthOut(
        status=snapshot.status,
        backend=_settings.persistence_backend,
        dependencies={"database": snapshot.database},
    )


# Include routers
app.include_router(accounts_router.router)
app.include_router(todos_router.router)
app.include_router(welcome_router.router)
