"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from attempt_limiter.api.routes import health_router, rate_limits_router
from attempt_limiter.core.config import settings
from attempt_limiter.core.exception_handlers import setup_exception_handlers
from attempt_limiter.core.logging import configure_logging
from attempt_limiter.core.middleware import request_id_middleware
from attempt_limiter.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Attempt Limiter",
        description=(
            "Attempt-rate control for sensitive operations (OTP requests, login, "
            "password reset, API calls). Tracks attempts per action type and "
            "identifier in a time window, blocks temporarily once the allowance "
            "is used up, and persists counters across restarts."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
