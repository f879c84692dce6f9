"""Application factory for the operations API.

Builds the FastAPI app and the single AdmissionController it reports on.
Components that issue remote calls in the same process should take the
controller from ``app.state.admission_controller`` rather than building
their own, so every call site shares one quota.
"""

from __future__ import annotations

from fastapi import FastAPI

from quota_guard.api.routes import admission_router, health_router
from quota_guard.core.config import settings
from quota_guard.core.exception_handlers import setup_exception_handlers
from quota_guard.core.logging import configure_logging
from quota_guard.core.middleware import request_id_middleware
from quota_guard.core.openapi import apply_openapi_customizations
from quota_guard.services.admission_controller import (
    AdmissionController,
    build_admission_controller,
)


def create_app(controller: AdmissionController | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        controller: Controller to expose; built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Guard",
        description=(
            "Operations API for the sliding-window admission controller that "
            "gates outbound calls to a quota-limited remote API. Reports usage "
            "and lets operators clear the recorded history. Requires X-API-Key."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.state.admission_controller = controller or build_admission_controller(settings.admission)

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(admission_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
