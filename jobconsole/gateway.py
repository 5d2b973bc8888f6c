"""Typed boundary to the job backend's admin REST API.

Every operation returns an :class:`ActionResult`; transport, validation and
not-found/conflict failures are folded into the failure envelope rather than
raised. Nothing here retries.
"""
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from . import config
from . import metrics
from .pagination import PaginationParams, build_backend_url
from .results import ActionResult
from .schemas import BulkOutcome, CreateJobRequest, Job, JobDetail, JobLog, JobStats, JobType

logger = structlog.get_logger(__name__)

JOBS_PATH = "/admin/jobs"
STATS_PATH = "/admin/jobs/stats"
RUNNING_PATH = "/admin/jobs/running"
TYPES_PATH = "/admin/jobs/types"


def detail_path(job_id: int) -> str:
    return f"{JOBS_PATH}/{job_id}"


def cancel_path(job_id: int) -> str:
    return f"{JOBS_PATH}/{job_id}/cancel"


def retry_path(job_id: int) -> str:
    return f"{JOBS_PATH}/{job_id}/retry"


def logs_path(job_id: int) -> str:
    return f"{JOBS_PATH}/{job_id}/logs"


def by_type_path(job_type: str) -> str:
    return f"{JOBS_PATH}/type/{quote(job_type, safe='')}"


_job_list = TypeAdapter(List[Job])
_log_list = TypeAdapter(List[JobLog])
_type_list = TypeAdapter(List[JobType])


def _flatten_fields(raw: Any) -> Optional[Dict[str, str]]:
    if not isinstance(raw, dict) or not raw:
        return None
    fields = {}
    for name, value in raw.items():
        if isinstance(value, (list, tuple)):
            value = "; ".join(str(v) for v in value)
        fields[str(name)] = str(value)
    return fields


def _detail_fields(detail: list) -> Optional[Dict[str, str]]:
    # FastAPI style: [{"loc": ["body", "priority"], "msg": "..."}]
    fields = {}
    for item in detail:
        if isinstance(item, dict) and item.get("loc"):
            fields[str(item["loc"][-1])] = str(item.get("msg", "invalid value"))
    return fields or None


def handle_api_error(exc: Exception, fallback: str) -> ActionResult:
    """Normalize an exception raised around a backend call into a failure envelope."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        message = None
        fields = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message")
                fields = _flatten_fields(error.get("fields"))
            elif isinstance(error, str):
                message = error
            message = message or body.get("message")
            fields = fields or _flatten_fields(body.get("errors") or body.get("fields"))
            detail = body.get("detail")
            if isinstance(detail, str):
                message = message or detail
            elif isinstance(detail, list):
                fields = fields or _detail_fields(detail)
        return ActionResult.fail(message or f"{fallback} (HTTP {status})", fields=fields, status_code=status)
    if isinstance(exc, httpx.RequestError):
        reason = str(exc) or type(exc).__name__
        return ActionResult.fail(f"{fallback}: {reason}")
    if isinstance(exc, (ValidationError, ValueError, KeyError, TypeError)):
        return ActionResult.fail(f"{fallback}: unexpected response from backend")
    return ActionResult.fail(f"{fallback}: {exc}")


def extract_api_data(response: httpx.Response, parse: Optional[Callable[[Any], Any]] = None) -> ActionResult:
    if response.status_code == 204 or not response.content:
        return ActionResult.ok()
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("response envelope is not an object")
    data = body.get("data")
    if parse is not None and data is not None:
        data = parse(data)
    return ActionResult.ok(data=data, meta=body.get("meta"))


class JobGateway:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: str = None, token: str = None):
        if client is None:
            headers = {"Accept": "application/json"}
            token = config.BACKEND_TOKEN if token is None else token
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(
                base_url=base_url or config.BACKEND_URL,
                headers=headers,
                timeout=config.BACKEND_TIMEOUT_SECONDS,
            )
        self.client = client

    async def aclose(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _call(self, operation: str, method: str, url: str, fallback: str,
                    parse: Optional[Callable[[Any], Any]] = None, **kwargs) -> ActionResult:
        start = time.time()
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            result = extract_api_data(response, parse)
        except Exception as exc:
            result = handle_api_error(exc, fallback)
            logger.warning("gateway_call_failed", operation=operation, url=url,
                           error=result.error.message, status_code=result.error.status_code)
        finally:
            metrics.gateway_latency_seconds.labels(operation).observe(time.time() - start)
        metrics.gateway_requests_total.labels(operation, "success" if result.success else "failure").inc()
        return result

    # CRUD

    async def create(self, request: CreateJobRequest) -> ActionResult:
        return await self._call(
            "create", "POST", JOBS_PATH, "Failed to create job",
            parse=Job.model_validate, json=request.model_dump(exclude_none=True),
        )

    async def list(self, params: PaginationParams) -> ActionResult:
        return await self._call(
            "list", "GET", build_backend_url(JOBS_PATH, params), "Failed to fetch jobs",
            parse=_job_list.validate_python,
        )

    async def get_by_id(self, job_id: int) -> ActionResult:
        return await self._call(
            "get", "GET", detail_path(job_id), f"Failed to fetch job #{job_id}",
            parse=JobDetail.model_validate,
        )

    async def list_by_type(self, job_type: str, params: PaginationParams) -> ActionResult:
        return await self._call(
            "list_by_type", "GET", build_backend_url(by_type_path(job_type), params),
            f"Failed to fetch jobs of type: {job_type}", parse=_job_list.validate_python,
        )

    async def delete(self, job_id: int) -> ActionResult:
        result = await self._call("delete", "DELETE", detail_path(job_id), f"Failed to delete job #{job_id}")
        return ActionResult.ok() if result.success else result

    # Lifecycle

    async def cancel(self, job_id: int) -> ActionResult:
        result = await self._call("cancel", "POST", cancel_path(job_id), f"Failed to cancel job #{job_id}")
        return ActionResult.ok() if result.success else result

    async def retry(self, job_id: int) -> ActionResult:
        """Retry a failed job. On success ``data`` is the *new* job record."""
        return await self._call(
            "retry", "POST", retry_path(job_id), f"Failed to retry job #{job_id}",
            parse=Job.model_validate,
        )

    async def get_logs(self, job_id: int, limit: int = None) -> ActionResult:
        limit = config.LOG_LIMIT if limit is None else limit
        result = await self._call(
            "logs", "GET", logs_path(job_id), f"Failed to fetch logs for job #{job_id}",
            parse=_log_list.validate_python, params={"limit": limit},
        )
        if result.success and result.data is None:
            result.data = []
        return result

    # Monitoring

    async def get_stats(self) -> ActionResult:
        return await self._call(
            "stats", "GET", STATS_PATH, "Failed to fetch job statistics",
            parse=JobStats.model_validate,
        )

    async def get_running(self) -> ActionResult:
        result = await self._call(
            "running", "GET", RUNNING_PATH, "Failed to fetch running jobs",
            parse=_job_list.validate_python,
        )
        if result.success and result.data is None:
            result.data = []
        return result

    async def get_types(self) -> ActionResult:
        result = await self._call(
            "types", "GET", TYPES_PATH, "Failed to fetch job types",
            parse=_type_list.validate_python,
        )
        if result.success and result.data is None:
            result.data = []
        return result

    # Bulk

    async def _bulk(self, action: Callable, ids: Sequence[int], verb: str) -> ActionResult:
        outcome = BulkOutcome()
        for job_id in ids:
            result = await action(job_id)
            if result.success:
                outcome.succeeded.append(job_id)
            else:
                outcome.failed.append(job_id)
        if outcome.failed:
            logger.warning("bulk_partial_failure", verb=verb, succeeded=outcome.succeeded, failed=outcome.failed)
            return ActionResult.fail(f"{len(outcome.failed)} job(s) failed to {verb}", data=outcome)
        return ActionResult.ok(data=outcome)

    async def bulk_cancel(self, ids: Sequence[int]) -> ActionResult:
        return await self._bulk(self.cancel, ids, "cancel")

    async def bulk_delete(self, ids: Sequence[int]) -> ActionResult:
        return await self._bulk(self.delete, ids, "delete")
