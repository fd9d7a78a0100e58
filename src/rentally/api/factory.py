"""Builds the FastAPI app for one deployment role.

The same image runs twice: ``public`` serves customers, operators and the
Stripe webhook; ``worker`` serves the task endpoints that drain the job
queue and sweep expired holds. Each role mounts only its own router.
"""

import os
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import APIRouter, FastAPI, Request, Response

from rentally.infra.settings import check_required
from rentally.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .routers import public, worker

AppRole = Literal["public", "worker"]

_ROUTERS: dict[str, APIRouter] = {
    "public": public.router,
    "worker": worker.router,
}


def _resolve_role(role: str | None) -> str:
    resolved = role or os.environ.get("APP_ROLE") or "public"
    if resolved not in _ROUTERS:
        raise ValueError(f"unknown APP_ROLE {resolved!r}; expected one of {sorted(_ROUTERS)}")
    return resolved


def _add_correlation_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response


def create_app(role: AppRole | None = None, *, check_config: bool = True) -> FastAPI:
    """Create the app for ``role`` (default: APP_ROLE, then "public").

    With ``check_config`` the lifespan refuses to start while a setting the
    role needs is missing (``ConfigurationError``).

    Raises:
        ValueError: For a role other than "public" or "worker".
    """
    resolved = _resolve_role(role)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if check_config:
            check_required(resolved)
        yield

    app = FastAPI(title="Rentally", docs_url=None, redoc_url=None, lifespan=lifespan)
    _add_correlation_middleware(app)
    app.include_router(_ROUTERS[resolved])
    return app
