import json
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from .results import ActionResult
from .schemas import BooleanField, CreateJobRequest, JobType, NumberField, SelectField, StringField

NO_FIELDS_MESSAGE = "This job type has no configurable payload fields."
NO_TYPE_MESSAGE = "Select a job type to see available options."
FORM_ERROR_MESSAGE = "Please correct the highlighted fields"

TRUE_WORDS = ("true", "1", "yes", "on")
FALSE_WORDS = ("false", "0", "no", "off")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _to_string(field: StringField, raw: Any) -> str:
    return str(raw).strip()


def _to_number(field: NumberField, raw: Any):
    if isinstance(raw, bool):
        raise ValueError(f"{field.label} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{field.label} must be a number")
    # the payload must stay valid JSON
    if not math.isfinite(value):
        raise ValueError(f"{field.label} must be a number")
    if field.min is not None and value < field.min:
        raise ValueError(f"{field.label} must be at least {field.min:g}")
    if field.max is not None and value > field.max:
        raise ValueError(f"{field.label} must be at most {field.max:g}")
    return int(value) if value.is_integer() else value


def _to_boolean(field: BooleanField, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    raise ValueError(f"{field.label} must be true or false")


def _to_select(field: SelectField, raw: Any) -> str:
    value = str(raw)
    if value not in [option.value for option in field.options]:
        raise ValueError(f"{field.label} must be one of the listed options")
    return value


CONVERTERS: Dict[str, Callable[[Any, Any], Any]] = {
    "string": _to_string,
    "number": _to_number,
    "boolean": _to_boolean,
    "select": _to_select,
}


def build_payload(job_type: JobType, raw_values: Mapping[str, Any]) -> ActionResult:
    """Convert raw form input into a typed payload for ``job_type``.

    Blank inputs fall back to the field default. Required fields without a
    value (booleans excepted, they default to False) are reported per field.
    """
    payload: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    for field in job_type.payload_fields or []:
        raw = raw_values.get(field.name)
        if _blank(raw):
            if field.default is not None:
                payload[field.name] = field.default
            elif field.type == "boolean":
                payload[field.name] = False
            elif field.required:
                errors[field.name] = f"{field.label} is required"
            continue
        try:
            payload[field.name] = CONVERTERS[field.type](field, raw)
        except ValueError as exc:
            errors[field.name] = str(exc)
    if errors:
        return ActionResult.fail(FORM_ERROR_MESSAGE, fields=errors)
    return ActionResult.ok(data=payload)


def form_schema(job_type: Optional[JobType]) -> Dict[str, Any]:
    if job_type is None:
        return {"type": None, "fields": [], "message": NO_TYPE_MESSAGE}
    fields = []
    for field in job_type.payload_fields or []:
        entry = field.model_dump(exclude_none=True)
        if field.type == "select":
            entry["placeholder"] = field.placeholder or f"Select {field.label}"
        fields.append(entry)
    return {
        "type": job_type.type,
        "display_name": job_type.display_name,
        "description": job_type.description,
        "max_retries_placeholder": f"Default: {job_type.max_retries}",
        "timeout": job_type.timeout,
        "fields": fields,
        "message": None if fields else NO_FIELDS_MESSAGE,
    }


def _parse_int(raw: Any, low: int, high: int, message: str) -> int:
    if isinstance(raw, bool):
        raise ValueError(message)
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValueError(message)
    if not low <= value <= high:
        raise ValueError(message)
    return value


def _parse_schedule(raw: Any) -> str:
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def validate_create_form(raw: Mapping[str, Any], job_type: Optional[JobType] = None) -> ActionResult:
    """Validate raw create-job form input into a :class:`CreateJobRequest`.

    ``payload`` is JSON text (or an already decoded object). When ``job_type``
    declares payload fields, values under ``payload_fields`` are converted and
    merged over the JSON payload.
    """
    errors: Dict[str, str] = {}

    job_type_name = str(raw.get("type") or "").strip()
    if not job_type_name:
        errors["type"] = "Job type is required"

    payload = None
    raw_payload = raw.get("payload")
    if isinstance(raw_payload, dict):
        payload = dict(raw_payload)
    elif not _blank(raw_payload):
        try:
            payload = json.loads(raw_payload)
        except (TypeError, ValueError):
            errors["payload"] = "Payload must be valid JSON"
        else:
            if not isinstance(payload, dict):
                errors["payload"] = "Payload must be a JSON object"
                payload = None

    if job_type is not None and job_type.payload_fields:
        built = build_payload(job_type, raw.get("payload_fields") or {})
        if built.success:
            payload = {**(payload or {}), **built.data}
        else:
            errors.update(built.error.fields or {})

    priority = 0
    if not _blank(raw.get("priority")):
        try:
            priority = _parse_int(raw["priority"], 0, 100, "Priority must be a whole number between 0 and 100")
        except ValueError as exc:
            errors["priority"] = str(exc)

    max_retries = None
    if not _blank(raw.get("max_retries")):
        try:
            max_retries = _parse_int(raw["max_retries"], 0, 10, "Max retries must be a whole number between 0 and 10")
        except ValueError as exc:
            errors["max_retries"] = str(exc)

    scheduled_at = None
    if not _blank(raw.get("scheduled_at")):
        try:
            scheduled_at = _parse_schedule(raw["scheduled_at"])
        except ValueError:
            errors["scheduled_at"] = "Schedule must be a valid date and time"

    if errors:
        return ActionResult.fail(FORM_ERROR_MESSAGE, fields=errors)
    try:
        request = CreateJobRequest(
            type=job_type_name, payload=payload, priority=priority,
            max_retries=max_retries, scheduled_at=scheduled_at,
        )
    except ValidationError as exc:
        fields = {str(err["loc"][-1]): err["msg"] for err in exc.errors() if err.get("loc")}
        return ActionResult.fail(FORM_ERROR_MESSAGE, fields=fields)
    return ActionResult.ok(data=request)
