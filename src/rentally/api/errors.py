"""Translation of domain outcomes into HTTP responses."""

from __future__ import annotations

from fastapi.responses import JSONResponse

from rentally.domain.lead_time import LeadTimeError
from rentally.domain.reservations import Rejected, RejectionKind

CONTACT_SUPPORT_MESSAGE = (
    "We could not prepare your payment. Please contact support and quote "
    "the reference below."
)

LOCK_RETRY_AFTER_SECONDS = 2


def rejection_response(rejected: Rejected) -> JSONResponse:
    """409 for an overlap, 422 with the earliest allowed day for lead time."""
    if rejected.kind == RejectionKind.OVERLAP:
        return JSONResponse(
            status_code=409,
            content={
                "ok": False,
                "error": "overlap",
                "message": "The selected dates are no longer available.",
            },
        )

    error = rejected.error
    if not isinstance(error, LeadTimeError):
        raise TypeError(f"lead-time rejection carries {type(error).__name__}")
    return JSONResponse(
        status_code=422,
        content={
            "ok": False,
            "error": "lead_time",
            "message": (
                "This machine needs more notice. The earliest start date is "
                f"{error.earliest_allowed_day.isoformat()}."
            ),
            "earliest_allowed_day": error.earliest_allowed_day.isoformat(),
            "min_days": error.min_days,
        },
    )


def lock_timeout_response() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"ok": False, "error": "busy", "message": "Please try again."},
        headers={"Retry-After": str(LOCK_RETRY_AFTER_SECONDS)},
    )


def pricing_error_response(correlation_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "pricing",
            "message": CONTACT_SUPPORT_MESSAGE,
            "reference": correlation_id,
        },
    )
