import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import TodoSyncError
from .settings import get_settings
from .routers import categories as categories_router
from .routers import sync as sync_router
from .routers import todos as todos_router
from .routers import users as users_router

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "users", "description": "User registration, login and admin verification."},
    {"name": "categories", "description": "Category management; writes require an admin."},
    {"name": "todos", "description": "Single-item todo operations and filtered queries."},
    {
        "name": "sync",
        "description": "Batch reconciliation of offline todo changes with last-writer-wins conflicts.",
    },
]

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level_value, format="%(levelname)s - %(message)s", handlers=[logging.StreamHandler()]
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Todo Sync Backend",
    description="Multi-device todo service with offline batch sync and conflict detection.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers for consistent JSON on validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(TodoSyncError)
async def domain_exception_handler(request: Request, exc: TodoSyncError) -> JSONResponse:
    """
    Map domain errors to their HTTP status.

    Response format:
        {
            "error": "NotFoundError",
            "message": "Todo with id 7 not found or access denied",
            "detail": "Todo with id 7 not found or access denied"
        }
    """
    logger.info("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "message": str(exc), "detail": str(exc)},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(users_router.router)
app.include_router(categories_router.router)
app.include_router(todos_router.router)
app.include_router(sync_router.router)
