"""Worker route for the hold expiry sweep."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rentally.api.deps import observer_for, settings_dep, stores_dep
from rentally.api.task_auth import require_task_auth
from rentally.domain.expire_holds import sweep_expired_holds
from rentally.domain.ports import Stores
from rentally.infra.settings import Settings
from rentally.observability.logging import get_logger

router = APIRouter(
    prefix="/tasks/holds",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


@router.post("/expire-sweep")
def expire_sweep(
    stores: Stores = Depends(stores_dep),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    """Cancel PENDING holds past their expiry (plus grace)."""
    expired = sweep_expired_holds(
        store=stores.reservations,
        settings=settings,
        observe=observer_for(logger),
    )
    return JSONResponse(
        status_code=200,
        content={"ok": True, "expired": len(expired), "reservation_ids": expired},
    )
