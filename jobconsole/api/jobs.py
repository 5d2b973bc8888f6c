from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from .. import config
from ..auth import require_operator
from ..client import get_queries
from ..forms import form_schema, validate_create_form
from ..lifecycle import available_actions, can_cancel, can_delete, can_retry, is_terminal, progress_info, progress_percentage
from ..pagination import PaginationParams, parse_filters
from ..polling import detail_policy, logs_policy
from ..queries import JobQueries
from ..results import ActionResult
from ..schemas import FILTER_FIELDS, JOB_STATUS_LABELS, SORT_FIELDS, BulkRequest, Job
from ..stats import dashboard_snapshot

router = APIRouter(prefix="/jobs", tags=["jobs"])

PAGING_PARAMS = ("page", "page_size", "sort_by", "sort_order", "search")


def raise_for_failure(result: ActionResult):
    if result.success:
        return
    status = result.error.status_code
    if status is None or status < 400:
        status = 502  # backend unreachable or answered nonsense
    raise HTTPException(status_code=status, detail=result.error.model_dump(exclude_none=True))


def job_row(job: Job) -> Dict[str, Any]:
    row = job.model_dump(mode="json")
    row["status_label"] = JOB_STATUS_LABELS[job.status]
    row["progress_percentage"] = progress_percentage(job)
    row["actions"] = available_actions(job)
    return row


def pagination_from(request: Request, page: int, page_size: int, sort_by: Optional[str],
                    sort_order: str, search: Optional[str]) -> PaginationParams:
    if sort_by is not None and sort_by not in SORT_FIELDS:
        raise HTTPException(status_code=422, detail={"message": f"Cannot sort by {sort_by}",
                                                     "fields": {"sort_by": "Unsupported sort field"}})
    filters = parse_filters(
        {k: v for k, v in request.query_params.items() if k not in PAGING_PARAMS}, FILTER_FIELDS
    )
    try:
        return PaginationParams(page=page, page_size=page_size, sort_by=sort_by,
                                sort_order=sort_order, search=search, filters=filters)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc)})


async def load_job(queries: JobQueries, job_id: int) -> Job:
    result = await queries.get_job(job_id)
    raise_for_failure(result)
    return result.data


@router.get("")
async def list_jobs(request: Request, page: int = 1, page_size: int = 20, sort_by: Optional[str] = None,
                    sort_order: str = "desc", search: Optional[str] = None,
                    queries: JobQueries = Depends(get_queries)):
    params = pagination_from(request, page, page_size, sort_by, sort_order, search)
    result = await queries.list_jobs(params)
    raise_for_failure(result)
    return {"data": [job_row(job) for job in result.data or []], "meta": result.meta}


@router.post("")
async def create_job(form: Dict[str, Any] = Body(...), authorized: bool = Depends(require_operator),
                     queries: JobQueries = Depends(get_queries)):
    job_type = None
    types = await queries.get_types()
    if types.success and form.get("type"):
        job_type = next((t for t in types.data if t.type == form.get("type")), None)
        if job_type is None:
            raise HTTPException(status_code=422, detail={"message": "Please correct the highlighted fields",
                                                         "fields": {"type": "Unknown job type"}})
    validated = validate_create_form(form, job_type)
    if not validated.success:
        raise HTTPException(status_code=422, detail=validated.error.model_dump(exclude_none=True))
    result = await queries.create(validated.data)
    raise_for_failure(result)
    job = result.data
    return {"job": job_row(job), "message": f"Job #{job.id} created successfully", "redirect": f"/jobs/{job.id}"}


@router.post("/refresh")
async def refresh(queries: JobQueries = Depends(get_queries)):
    return {"invalidated": queries.refresh_all()}


@router.get("/dashboard")
async def dashboard(queries: JobQueries = Depends(get_queries)):
    stats = await queries.get_stats()
    running = await queries.get_running()
    types = await queries.get_types()
    snapshot = dashboard_snapshot(
        stats.data if stats.success else None,
        running.data if running.success else None,
        types.data if types.success else None,
    )
    snapshot["errors"] = {
        name: r.error.message for name, r in (("stats", stats), ("running", running), ("types", types))
        if not r.success
    }
    snapshot["poll_interval_seconds"] = {"stats": config.STATS_POLL_SECONDS, "running": config.RUNNING_POLL_SECONDS}
    return snapshot


@router.get("/types")
async def job_types(queries: JobQueries = Depends(get_queries)):
    result = await queries.get_types()
    raise_for_failure(result)
    return {"data": [t.model_dump(mode="json") for t in result.data]}


@router.get("/types/{job_type}/form")
async def job_type_form(job_type: str, queries: JobQueries = Depends(get_queries)):
    result = await queries.get_types()
    raise_for_failure(result)
    match = next((t for t in result.data if t.type == job_type), None)
    if match is None:
        raise HTTPException(status_code=404, detail={"message": f"Unknown job type: {job_type}"})
    return form_schema(match)


@router.get("/type/{job_type}")
async def list_jobs_by_type(job_type: str, request: Request, page: int = 1, page_size: int = 20,
                            sort_by: Optional[str] = None, sort_order: str = "desc",
                            queries: JobQueries = Depends(get_queries)):
    params = pagination_from(request, page, page_size, sort_by, sort_order, None)
    result = await queries.list_jobs_by_type(job_type, params)
    raise_for_failure(result)
    return {"data": [job_row(job) for job in result.data or []], "meta": result.meta}


@router.post("/bulk/cancel")
async def bulk_cancel(body: BulkRequest, authorized: bool = Depends(require_operator),
                      queries: JobQueries = Depends(get_queries)):
    result = await queries.bulk_cancel(body.ids)
    return {
        "success": result.success,
        "succeeded": result.data.succeeded,
        "failed": result.data.failed,
        "message": result.error.message if result.error else f"{len(result.data.succeeded)} job(s) cancelled successfully",
    }


@router.post("/bulk/delete")
async def bulk_delete(body: BulkRequest, authorized: bool = Depends(require_operator),
                      queries: JobQueries = Depends(get_queries)):
    result = await queries.bulk_delete(body.ids)
    return {
        "success": result.success,
        "succeeded": result.data.succeeded,
        "failed": result.data.failed,
        "message": result.error.message if result.error else f"{len(result.data.succeeded)} job(s) deleted successfully",
    }


@router.get("/{job_id}")
async def get_job(job_id: int, queries: JobQueries = Depends(get_queries)):
    job = await load_job(queries, job_id)
    data = job.model_dump(mode="json")
    return {
        "job": data,
        "status_label": JOB_STATUS_LABELS[job.status],
        "actions": available_actions(job),
        "progress": progress_info(job),
        "is_terminal": is_terminal(job.status),
        "poll_interval_seconds": detail_policy(job.status),
        "logs_poll_interval_seconds": logs_policy(job.status),
    }


@router.get("/{job_id}/logs")
async def get_job_logs(job_id: int, limit: int = Query(default=config.LOG_LIMIT, ge=1, le=1000),
                       queries: JobQueries = Depends(get_queries)):
    result = await queries.get_logs(job_id, limit)
    raise_for_failure(result)
    logs = [log.model_dump(mode="json") for log in result.data]
    return {"logs": logs, "count": len(logs), "empty_message": None if logs else "No logs available"}


@router.post("/{job_id}/cancel")
async def cancel_job(job_id: int, authorized: bool = Depends(require_operator),
                     queries: JobQueries = Depends(get_queries)):
    job = await load_job(queries, job_id)
    if not can_cancel(job):
        raise HTTPException(status_code=409, detail={"message": f"Job #{job_id} cannot be cancelled while {job.status}"})
    result = await queries.cancel(job_id)
    raise_for_failure(result)
    return {"ok": True, "message": f"Job #{job_id} cancelled successfully"}


@router.post("/{job_id}/retry")
async def retry_job(job_id: int, authorized: bool = Depends(require_operator),
                    queries: JobQueries = Depends(get_queries)):
    job = await load_job(queries, job_id)
    if not can_retry(job):
        raise HTTPException(status_code=409, detail={"message": f"Job #{job_id} is not eligible for retry"})
    result = await queries.retry(job_id)
    raise_for_failure(result)
    new_job = result.data
    return {
        "ok": True,
        "job": job_row(new_job),
        "new_job_id": new_job.id,
        "message": f"Job #{job_id} retry created as Job #{new_job.id}",
        "redirect": f"/jobs/{new_job.id}",
    }


@router.delete("/{job_id}")
async def delete_job(job_id: int, authorized: bool = Depends(require_operator),
                     queries: JobQueries = Depends(get_queries)):
    job = await load_job(queries, job_id)
    if not can_delete(job):
        raise HTTPException(status_code=409, detail={"message": f"Job #{job_id} cannot be deleted while {job.status}"})
    result = await queries.delete(job_id)
    raise_for_failure(result)
    return {"ok": True, "message": f"Job #{job_id} deleted successfully"}
