"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from rentally.api.routes import tasks_holds, tasks_jobs

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_jobs.router)
router.include_router(tasks_holds.router)
