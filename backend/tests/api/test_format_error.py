"""Error Formatter — tests for the pure failure-to-body mapping.

Tests cover:
    - success is always false and message always a non-empty string
    - status falls back to 500 without a usable status_code
    - stack appears only in development and only when the failure has one
    - only allow-listed fields are copied; the body always serializes
"""

import json

import pytest
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.error_handlers import GENERIC_MESSAGE, format_error
from app.core.errors import AppError


class _Unserializable:
    pass


def _raised(exc: BaseException) -> BaseException:
    try:
        raise exc
    except BaseException as caught:
        return caught


@pytest.mark.parametrize("exc", [
    Exception(),
    RuntimeError("disk on fire"),
    AppError(404, "Missing"),
    AppError(500, ""),
    StarletteHTTPException(status_code=405),
])
def test_body_always_has_success_false_and_message(exc):
    _, body = format_error(exc, "production")
    assert body["success"] is False
    assert isinstance(body["message"], str)
    assert body["message"]


def test_failure_without_message_uses_fallback():
    status_code, body = format_error(Exception(), "production")
    assert status_code == 500
    assert body["message"] == GENERIC_MESSAGE
    assert body["error"] == {"name": "Exception", "message": ""}


def test_app_error_status_and_fields():
    exc = AppError(404, "Missing", errors=[{"path": "/x"}], code="NOT_FOUND")
    status_code, body = format_error(exc, "production")
    assert status_code == 404
    assert body["message"] == "Missing"
    assert body["error"] == {
        "name": "AppError",
        "message": "Missing",
        "errors": [{"path": "/x"}],
        "code": "NOT_FOUND",
        "statusCode": 404,
    }


def test_stack_included_in_development():
    _, body = format_error(AppError(500, "Boom"), "development")
    assert "stack" in body["error"]
    assert body["error"]["stack"]


@pytest.mark.parametrize("environment", ["production", "test", "Development", ""])
def test_stack_hidden_outside_development(environment):
    _, body = format_error(_raised(RuntimeError("Boom")), environment)
    assert "stack" not in body["error"]


def test_raised_plain_exception_exposes_traceback_in_development():
    _, body = format_error(_raised(ValueError("bad")), "development")
    assert "ValueError: bad" in body["error"]["stack"]


def test_no_stack_when_failure_has_none():
    _, body = format_error(ValueError("never raised"), "development")
    assert "stack" not in body["error"]


def test_http_exception_uses_detail_and_status():
    exc = StarletteHTTPException(status_code=405)
    status_code, body = format_error(exc, "production")
    assert status_code == 405
    assert body["message"] == "Method Not Allowed"
    assert body["error"]["statusCode"] == 405


def test_zero_status_code_falls_back_to_500():
    exc = RuntimeError("odd")
    exc.status_code = 0
    status_code, body = format_error(exc, "production")
    assert status_code == 500
    assert "statusCode" not in body["error"]


def test_non_allow_listed_attributes_are_dropped():
    exc = RuntimeError("broken pipe")
    exc.socket = _Unserializable()
    exc.parent = exc
    exc.code = _Unserializable()
    _, body = format_error(exc, "production")
    assert set(body["error"]) == {"name", "message"}
    json.dumps(body)


def test_numeric_code_is_kept():
    exc = OSError("refused")
    exc.code = 111
    _, body = format_error(exc, "production")
    assert body["error"]["code"] == 111
