"""Pure lifecycle predicates and formatting derived from a Job value.

These are the only legality gate the console uses before calling the backend;
the gateway itself never re-validates.
"""
import math
from typing import Dict, List, Optional

from .schemas import CANCELLED, COMPLETED, FAILED, PENDING, RUNNING, Job

TERMINAL_STATUSES = frozenset((COMPLETED, FAILED, CANCELLED))
CANCELLABLE_STATUSES = frozenset((PENDING, RUNNING))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def can_cancel(job: Job) -> bool:
    return job.status in CANCELLABLE_STATUSES


def can_retry(job: Job) -> bool:
    return job.status == FAILED and job.retry_count < job.max_retries


def can_delete(job: Job) -> bool:
    return is_terminal(job.status)


def available_actions(job: Job) -> List[str]:
    actions = []
    if can_cancel(job):
        actions.append("cancel")
    if can_retry(job):
        actions.append("retry")
    if can_delete(job):
        actions.append("delete")
    return actions


def format_duration(seconds: Optional[float]) -> str:
    """Render a duration as ``45s``, ``2m 5s`` or ``1h 2m``.

    The value is rounded once to whole seconds and that figure picks the tier
    and is split, so 59.6 renders as ``1m 0s`` and 119.6 as ``2m 0s``. The
    hours tier drops seconds and floors minutes.
    """
    if seconds is None or seconds < 0:
        return "0s"
    whole = round_half_up(seconds)
    if whole < 60:
        return f"{whole}s"
    if whole < 3600:
        minutes, secs = divmod(whole, 60)
        return f"{minutes}m {secs}s"
    seconds = max(seconds, whole)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


def progress_percentage(job: Job) -> int:
    if job.total_items == 0:
        return job.progress
    return round_half_up(job.processed_items / job.total_items * 100)


def progress_info(job: Job) -> Dict[str, object]:
    return {
        "percentage": progress_percentage(job),
        "message": job.progress_message,
        "total_items": job.total_items,
        "processed_items": job.processed_items,
        "is_running": job.status == RUNNING,
    }
