"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Return API health status."""
    return {"status": "ok"}


@router.get("/health/schedulers")
def scheduler_health(request: Request) -> dict[str, Any]:
    """Registered reconciliation jobs, their cadence and last pass."""
    scheduler = getattr(request.app.state, "scheduler", None)
    jobs = getattr(request.app.state, "jobs", [])
    reports = {job.name: job.last_report.as_dict() if job.last_report else None for job in jobs}
    tasks = scheduler.describe() if scheduler is not None else []
    for task in tasks:
        task["last_report"] = reports.get(task["name"])
    return {
        "status": "running" if scheduler is not None and scheduler.running else "stopped",
        "jobs": tasks,
    }
