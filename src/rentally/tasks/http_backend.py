"""Delivers tasks to the worker service with a plain HTTP POST.

Used when the public api and the worker run as separate services. The worker
authenticates the call either by a Google ID token minted for
TASKS_OIDC_AUDIENCE or, in local development, by the shared secret header.
"""

import os
from datetime import datetime

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Same value as rentally.api.task_auth.LOCAL_DEV_AUDIENCE
_LOCAL_DEV_AUDIENCE = "rentally-tasks-local"


def _log_failure(message: str, **fields) -> bool:
    logger.error(message, extra={"extra_fields": safe_log_context(**fields)})
    return False


def _auth_headers(base_url: str) -> dict[str, str] | None:
    """Credentials for the worker, or None when no token could be minted."""
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")
    if audience == _LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        return {"X-Internal-Task-Secret": secret} if secret else {}

    target = audience or base_url
    try:
        token = fetch_id_token(GoogleRequest(), target)
    except Exception as exc:
        _log_failure(
            "could not mint ID token for worker",
            audience=target,
            error_type=type(exc).__name__,
        )
        return None
    return {"Authorization": f"Bearer {token}"}


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """POST ``payload`` to WORKER_BASE_URL + ``url_path``.

    Delayed delivery is not available over plain HTTP, so a ``schedule_time``
    makes the call fail.

    Returns:
        True on a 2xx response, False otherwise.
    """
    if schedule_time is not None:
        logger.warning(
            "scheduled delivery not available on the http backend",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return False

    base_url = os.environ.get("WORKER_BASE_URL", "http://worker:8000").rstrip("/")
    auth = _auth_headers(base_url)
    if auth is None:
        return _log_failure("task not sent: no worker credentials", task_id=task_id, url_path=url_path)

    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
        **auth,
    }
    timeout_s = int(os.environ.get("TASKS_HTTP_TIMEOUT", "10"))

    try:
        response = requests.post(f"{base_url}{url_path}", json=payload, headers=headers, timeout=timeout_s)
        response.raise_for_status()
    except requests.RequestException as exc:
        return _log_failure("task delivery failed", task_id=task_id, url_path=url_path, error=str(exc))

    logger.info(
        "task delivered",
        extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
    )
    return True
