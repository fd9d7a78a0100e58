"""Authentication of worker task requests.

Tasks reach the worker from a scheduler or from the public service's kick.
Production requests carry a Google-signed OIDC token; local development may
use the X-Internal-Task-Secret header instead.
"""

from __future__ import annotations

import hmac
import os

from fastapi import HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from rentally.observability.correlation import get_correlation_id
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Setting TASKS_OIDC_AUDIENCE to this value enables the shared-secret path
LOCAL_DEV_AUDIENCE = "rentally-tasks-local"
INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


def _denied(reason: str, **fields) -> bool:
    logger.warning(
        "task auth rejected",
        extra={"extra_fields": safe_log_context(reason=reason, **fields)},
    )
    return False


def _local_secret_matches(request: Request) -> bool:
    expected = os.environ.get("INTERNAL_TASK_SECRET", "")
    if not expected:
        return False
    presented = request.headers.get(INTERNAL_SECRET_HEADER, "")
    return hmac.compare_digest(presented.encode(), expected.encode())


def _bearer(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    return token.strip() if scheme == "Bearer" else ""


def _oidc_token_valid(token: str, audience: str) -> bool:
    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as exc:
        return _denied("oidc_invalid", error=str(exc), expected_audience=audience)

    # Optional pin on the calling service account
    pinned = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if pinned and claims.get("email") != pinned:
        return _denied("service_account_mismatch")
    return True


def verify_task_auth(request: Request) -> bool:
    """Whether the request is an authorised task call.

    Fails closed when TASKS_OIDC_AUDIENCE is unset. The shared secret is
    only honoured while the audience is LOCAL_DEV_AUDIENCE.
    """
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured, rejecting task request",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    if audience == LOCAL_DEV_AUDIENCE and _local_secret_matches(request):
        return True

    token = _bearer(request)
    if not token:
        return _denied("missing_bearer_token")
    return _oidc_token_valid(token, audience)


def require_task_auth(request: Request) -> None:
    """FastAPI dependency rejecting unauthenticated task requests with 401."""
    if not verify_task_auth(request):
        logger.warning(
            "task request unauthorized",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
