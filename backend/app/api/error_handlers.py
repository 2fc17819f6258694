"""Error Handlers — the single boundary that turns failures into JSON responses.

Invariants:
    - Every failure body is {"success": false, "message": str, "error": {...}}
    - message falls back to "Something went wrong!" when the failure carries none
    - error holds only allow-listed fields: name, message, stack (development
      only), errors, code, statusCode; never the raw exception object
    - Status comes from the failure's status_code, else 500

Design Decisions:
    - format_error is pure (no request, no I/O) so the shape is testable alone
    - Layers: AppError, RequestValidationError, HTTPException (incl. not-found),
      Exception (catch-all); all funnel into build_error_response
    - Unmatched routes become AppError(404) BEFORE formatting, so not-found
      responses share the formatter shape
    - UnexpectedErrorMiddleware formats unexpected exceptions inside the CORS
      layer; Starlette runs the Exception handler outside all user middleware,
      so without it a 500 would leave without CORS headers
"""

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import DEVELOPMENT, Settings
from app.core.errors import AppError

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong!"
NOT_FOUND_MESSAGE = "API Not Found"
_ROUTER_NOT_FOUND_DETAIL = "Not Found"


def format_error(exc: BaseException, environment: str) -> tuple[int, dict]:
    """Map any failure to (status_code, body) using the allow-list."""
    status_code = _failure_status(exc)
    raw_message = _failure_message(exc)

    error: dict[str, Any] = {
        "name": type(exc).__name__,
        "message": raw_message,
    }
    stack = _failure_stack(exc)
    if stack and environment == DEVELOPMENT:
        error["stack"] = stack
    errors = getattr(exc, "errors", None)
    if errors and isinstance(errors, (list, tuple, dict)):
        error["errors"] = jsonable_encoder(errors)
    code = getattr(exc, "code", None)
    if code and isinstance(code, (str, int)):
        error["code"] = code
    if status_code is not None:
        error["statusCode"] = status_code

    body = {
        "success": False,
        "message": raw_message or GENERIC_MESSAGE,
        "error": error,
    }
    return status_code or status.HTTP_500_INTERNAL_SERVER_ERROR, body


def build_error_response(
    request: Request,
    exc: BaseException,
    environment: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Log the failure and render it through format_error."""
    status_code, body = format_error(exc, environment)
    extra = {
        "status_code": status_code,
        "path": request.url.path,
        "error_code": body["error"].get("code"),
    }
    if _is_operational(exc):
        logger.warning(f"{type(exc).__name__}: {body['message']}", extra=extra)
    else:
        logger.error(
            f"Unhandled failure on {request.url.path}: {exc!r}",
            extra=extra,
            exc_info=exc,
        )
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def not_found_error(request: Request) -> AppError:
    """Structured failure for a path no route matched."""
    return AppError(
        status.HTTP_404_NOT_FOUND,
        NOT_FOUND_MESSAGE,
        errors=[{
            "path": request.url.path,
            "message": "Your requested path is not found!",
        }],
        code="NOT_FOUND",
    )


class UnexpectedErrorMiddleware:
    """Turn exceptions that escaped every handler into the formatted 500 response.

    Added before CORSMiddleware so the response still passes back through it.
    Once a response has started the exception is re-raised; the server closes
    the connection.
    """

    def __init__(self, app: ASGIApp, *, environment: str):
        self.app = app
        self._environment = environment

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            if response_started:
                raise
            response = build_error_response(Request(scope), exc, self._environment)
            await response(scope, receive, send)


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Register all global error handlers on the FastAPI app.

    Not-found conversion is registered ahead of the catch-all so that
    unmatched routes are always formatted.
    """
    environment = settings.node_env
    _register_app_error_handler(app, environment)
    _register_validation_error_handler(app, environment)
    _register_http_error_handler(app, environment)
    _register_generic_error_handler(app, environment)


def _register_app_error_handler(app: FastAPI, environment: str) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """Handle failures raised deliberately by application code."""
        return build_error_response(request, exc, environment)


def _register_validation_error_handler(app: FastAPI, environment: str) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors as a 400 AppError."""
        error = AppError(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request data",
            errors=[
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
            code="VALIDATION_ERROR",
        )
        return build_error_response(request, error, environment)


def _register_http_error_handler(app: FastAPI, environment: str) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        """Handle framework HTTP errors; unmatched routes become not-found."""
        if (
            exc.status_code == status.HTTP_404_NOT_FOUND
            and exc.detail == _ROUTER_NOT_FOUND_DETAIL
        ):
            return build_error_response(
                request, not_found_error(request), environment,
            )
        return build_error_response(
            request, exc, environment, headers=getattr(exc, "headers", None),
        )


def _register_generic_error_handler(app: FastAPI, environment: str) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Last resort for failures raised outside UnexpectedErrorMiddleware."""
        return build_error_response(request, exc, environment)


def _is_operational(exc: BaseException) -> bool:
    if isinstance(exc, StarletteHTTPException):
        return True
    return bool(getattr(exc, "is_operational", False))


def _failure_status(exc: BaseException) -> int | None:
    value = getattr(exc, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool) and value:
        return value
    return None


def _failure_message(exc: BaseException) -> str:
    for attr in ("message", "detail"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    return str(exc)


def _failure_stack(exc: BaseException) -> str | None:
    stack = getattr(exc, "stack", None)
    if isinstance(stack, str) and stack:
        return stack
    if exc.__traceback__ is not None:
        return "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__),
        )
    return None
