import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .clock import get_clock
from .errors import AppError, app_error_handler
from .policy import get_policy
from .repositories import get_store
from .routers import streaks as streaks_router
from .routers import tasks as tasks_router
from .settings import get_settings
from .sync import DayRolloverWatcher, SessionRegistry

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Today's objectives: load, add, toggle and delete, each followed by streak reconciliation.",
    },
    {
        "name": "streaks",
        "description": "Cached streak aggregate, day-rollover checks and calendar statuses.",
    },
]

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


# Global exception handler for consistent JSON on validation errors
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
            "detail": exc.errors(),
        },
    )


# PUBLIC_INTERFACE
def create_app(registry: Optional[SessionRegistry] = None) -> FastAPI:
    """
    Build the application.

    Args:
        registry: Session registry to serve. Defaults to one over the configured
            store and the system clock.
    """
    if registry is None:
        registry = SessionRegistry(
            get_store(),
            get_clock(),
            get_policy(),
            max_walk_days=_settings.max_streak_walk_days,
            notice_limit=_settings.notification_buffer_size,
        )
    watcher = DayRolloverWatcher(registry, _settings.day_check_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        watcher.start()
        try:
            yield
        finally:
            await watcher.stop()

    app = FastAPI(
        title="StreakFlow Backend",
        description="Habit tracking backend deriving daily completion streaks from task history.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.watcher = watcher

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AppError, app_error_handler)

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {
            "message": "Healthy",
            "backend": _settings.persistence_backend,
            "policy": get_policy().version,
        }

    app.include_router(tasks_router.router)
    app.include_router(streaks_router.router)
    return app


app = create_app()
