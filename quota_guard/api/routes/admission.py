from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from quota_guard.core.auth import verify_api_key
from quota_guard.schemas.admission import AdmissionStatusResponse, ResetResponse
from quota_guard.services.admission_controller import AdmissionController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admission"])


def get_admission_controller(request: Request) -> AdmissionController:
    """Return the controller built once by the app factory."""

    return request.app.state.admission_controller


@router.get(
    "/admission/status",
    response_model=AdmissionStatusResponse,
    dependencies=[Depends(verify_api_key)],
)
def admission_status(
    controller: AdmissionController = Depends(get_admission_controller),
) -> AdmissionStatusResponse:
    """Report current quota usage.

    Read-only: polling this endpoint never changes admission outcomes, so
    it is safe to call from dashboards and alerting probes.
    """

    response = AdmissionStatusResponse.from_controller(controller)
    if response.should_warn:
        logger.warning(
            "admission.near_limit",
            extra={"used": response.used, "limit": response.limit, "percent_used": response.percent_used},
        )
    return response


@router.post(
    "/admission/reset",
    response_model=ResetResponse,
    dependencies=[Depends(verify_api_key)],
)
def admission_reset(
    controller: AdmissionController = Depends(get_admission_controller),
) -> ResetResponse:
    """Clear the recorded call history.

    Raises:
        StoreAppError: If the store cannot be reached (mapped to HTTP 503).
    """

    controller.reset()
    return ResetResponse()
