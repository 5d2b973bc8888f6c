"""Presentation-safe view-models over the backend's JobStats snapshot.

Nothing here computes statistics; it only defaults missing data so a partial
or absent snapshot renders instead of raising.
"""
from typing import Any, Dict, List, Optional, Sequence

from .lifecycle import format_duration, progress_info
from .schemas import JOB_STATUS_LABELS, JOB_STATUSES, Job, JobStats, JobType

NO_STATS_MESSAGE = "No job statistics available"
NO_TYPES_MESSAGE = "No job types registered"
NO_RUNNING_MESSAGE = "No jobs running"


def status_counts(stats: Optional[JobStats]) -> Dict[str, int]:
    total = stats.total if stats is not None else None
    return {status: (getattr(total, status, 0) or 0) for status in JOB_STATUSES}


def status_cards(stats: Optional[JobStats]) -> List[Dict[str, Any]]:
    counts = status_counts(stats)
    return [
        {"status": status, "title": JOB_STATUS_LABELS[status], "value": counts[status]}
        for status in JOB_STATUSES
    ]


def type_performance(stats: Optional[JobStats]) -> Dict[str, Any]:
    if stats is None or not stats.by_type:
        return {"rows": [], "empty_message": NO_STATS_MESSAGE}
    rows = []
    for name, type_stats in stats.by_type.items():
        rows.append({
            "type": type_stats.type or name,
            "display_name": type_stats.display_name or name,
            "success_rate": f"{type_stats.success_rate:.1f}%",
            "pending": type_stats.pending,
            "running": type_stats.running,
            "completed": type_stats.completed,
            "failed": type_stats.failed,
            "cancelled": type_stats.cancelled,
            "avg_duration": format_duration(type_stats.avg_duration_seconds),
        })
    return {"rows": rows, "empty_message": None}


def running_jobs(jobs: Optional[Sequence[Job]]) -> Dict[str, Any]:
    items = [
        {"id": job.id, "type": job.type, "started_at": job.started_at, "progress": progress_info(job)}
        for job in jobs or []
    ]
    return {"jobs": items, "empty_message": None if items else NO_RUNNING_MESSAGE}


def registered_types(types: Optional[Sequence[JobType]]) -> Dict[str, Any]:
    items = [
        {
            "type": t.type,
            "display_name": t.display_name,
            "description": t.description,
            "max_retries": t.max_retries,
            "timeout": t.timeout,
        }
        for t in types or []
    ]
    return {"types": items, "empty_message": None if items else NO_TYPES_MESSAGE}


def dashboard_snapshot(stats: Optional[JobStats], running: Optional[Sequence[Job]],
                       types: Optional[Sequence[JobType]]) -> Dict[str, Any]:
    return {
        "cards": status_cards(stats),
        "performance": type_performance(stats),
        "running": running_jobs(running),
        "types": registered_types(types),
    }
