import json

import pytest

from fake_backend import JOB_TYPES

from jobconsole.forms import (
    FORM_ERROR_MESSAGE,
    NO_FIELDS_MESSAGE,
    NO_TYPE_MESSAGE,
    build_payload,
    form_schema,
    validate_create_form,
)
from jobconsole.schemas import JobType

EMAIL = JobType.model_validate(JOB_TYPES[0])
REPORT = JobType.model_validate(JOB_TYPES[1])


def test_build_payload_converts_and_defaults():
    result = build_payload(EMAIL, {"to": " ops@example.com ", "urgent": "yes", "template": "reset"})
    assert result.success
    assert result.data == {"to": "ops@example.com", "attempts": 1, "urgent": True, "template": "reset"}


def test_build_payload_reports_each_bad_field():
    result = build_payload(EMAIL, {"attempts": "9", "urgent": "maybe", "template": "other"})
    assert not result.success
    assert result.error.message == FORM_ERROR_MESSAGE
    assert result.error.fields == {
        "to": "Recipient is required",
        "attempts": "Attempts must be at most 5",
        "urgent": "Urgent must be true or false",
        "template": "Template must be one of the listed options",
    }


@pytest.mark.parametrize("raw", ["nan", "inf", "-inf", float("nan")])
def test_build_payload_rejects_non_finite_numbers(raw):
    unbounded = JobType.model_validate({"type": "calc", "display_name": "Calc", "payload_fields": [
        {"name": "n", "label": "N", "type": "number"},
    ]})
    bounded = build_payload(EMAIL, {"to": "a@b.com", "attempts": raw})
    open_ended = build_payload(unbounded, {"n": raw})
    assert bounded.error.fields == {"attempts": "Attempts must be a number"}
    assert open_ended.error.fields == {"n": "N must be a number"}


def test_unchecked_boolean_defaults_to_false():
    result = build_payload(EMAIL, {"to": "a@b.com"})
    assert result.data["urgent"] is False


def test_form_schema_for_select_and_empty_types():
    schema = form_schema(EMAIL)
    template = next(f for f in schema["fields"] if f["name"] == "template")
    assert template["placeholder"] == "Select Template"
    assert schema["max_retries_placeholder"] == "Default: 3"
    assert schema["message"] is None

    assert form_schema(REPORT)["message"] == NO_FIELDS_MESSAGE
    assert form_schema(None) == {"type": None, "fields": [], "message": NO_TYPE_MESSAGE}


def test_valid_form_becomes_create_request():
    result = validate_create_form({
        "type": "email",
        "payload": json.dumps({"subject": "hi"}),
        "payload_fields": {"to": "a@b.com"},
        "priority": "7",
        "max_retries": "2",
        "scheduled_at": "2024-06-01T12:30:00Z",
    }, EMAIL)

    assert result.success
    request = result.data
    assert request.type == "email"
    assert request.payload == {"subject": "hi", "to": "a@b.com", "attempts": 1, "urgent": False}
    assert request.priority == 7
    assert request.max_retries == 2
    assert request.scheduled_at == "2024-06-01T12:30:00+00:00"


def test_blank_optional_inputs_are_omitted():
    result = validate_create_form({"type": "report", "payload": "", "priority": "", "max_retries": ""})
    assert result.success
    assert result.data.model_dump(exclude_none=True) == {"type": "report", "priority": 0}


def test_naive_schedule_is_read_as_utc():
    result = validate_create_form({"type": "report", "scheduled_at": "2024-06-01T08:00"})
    assert result.data.scheduled_at == "2024-06-01T08:00:00+00:00"


@pytest.mark.parametrize("field,value,message", [
    ("payload", "{not json", "Payload must be valid JSON"),
    ("payload", "[1, 2]", "Payload must be a JSON object"),
    ("priority", "101", "Priority must be a whole number between 0 and 100"),
    ("priority", "1.5", "Priority must be a whole number between 0 and 100"),
    ("max_retries", "-1", "Max retries must be a whole number between 0 and 10"),
    ("scheduled_at", "next tuesday", "Schedule must be a valid date and time"),
])
def test_invalid_inputs_are_reported_per_field(field, value, message):
    result = validate_create_form({"type": "report", field: value})
    assert not result.success
    assert result.error.fields == {field: message}


def test_missing_type_is_required():
    result = validate_create_form({"payload": "{}"})
    assert result.error.fields == {"type": "Job type is required"}
