"""Pydantic schemas for the admission operations endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from pydantic import BaseModel, Field

from quota_guard.services.admission_controller import AdmissionController


class AdmissionStatusResponse(BaseModel):
    """Current quota usage as reported to operators."""

    used: int = Field(..., description="Calls recorded inside the current window.")
    limit: int = Field(..., description="Maximum calls allowed per window.")
    remaining: int = Field(..., description="Calls still available in the window.")
    percent_used: float = Field(..., description="Usage percentage (one decimal).")
    window_seconds: float = Field(..., description="Sliding window duration in seconds.")
    reset_at: float | None = Field(
        None,
        description="UNIX epoch seconds when the oldest call leaves the window.",
    )
    reset_in_seconds: float = Field(..., description="Seconds until reset_at.")
    admissible: bool = Field(..., description="Whether a call may be made right now.")
    near_limit: bool = Field(..., description="Usage is above the near-limit threshold.")
    at_limit: bool = Field(..., description="The window is full.")
    should_warn: bool = Field(..., description="near_limit or at_limit.")
    recommended_delay_ms: int = Field(
        ...,
        description="Advisory delay between calls at the current usage level.",
    )
    message: str = Field(..., description="Human-readable usage summary.")

    @classmethod
    def from_controller(cls, controller: AdmissionController) -> "AdmissionStatusResponse":
        # One snapshot so the counts, delay and message agree with each other.
        status = controller.status()
        return cls(
            **asdict(status),
            should_warn=status.should_warn,
            recommended_delay_ms=int(round(controller.recommended_delay(status) * 1000)),
            message=controller.status_message(status),
        )


class ResetResponse(BaseModel):
    status: Literal["reset"] = "reset"
