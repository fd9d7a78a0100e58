"""Worker route for the durable job queue.

Hit by the scheduler every minute and by the best-effort kick after a
payment confirmation. Safe to call concurrently.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rentally.api.deps import executor_dep, observer_for, settings_dep, stores_dep
from rentally.api.task_auth import require_task_auth
from rentally.domain.jobs import JobExecutor, process_work_items
from rentally.domain.ports import Stores
from rentally.infra.settings import Settings
from rentally.observability.correlation import get_correlation_id
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/tasks/jobs",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


@router.post("/process")
def process_jobs(
    stores: Stores = Depends(stores_dep),
    executor: JobExecutor = Depends(executor_dep),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    """Process one batch of pending work items."""
    result = process_work_items(
        stores=stores,
        executor=executor,
        limit=settings.job_batch_limit,
        max_attempts=settings.job_max_attempts,
        observe=observer_for(logger),
    )

    logger.info(
        "job batch processed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(), **result.to_dict()
            )
        },
    )
    return JSONResponse(status_code=200, content={"ok": True, **result.to_dict()})
