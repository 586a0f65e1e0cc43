"""Error envelopes, correlation ids and structured logging for the API.

Anything raised before a response starts streaming is turned into an
`ErrorResponse` body here. Failures inside a running stream never reach these
handlers: the stream forwarder reports them in-band with an error marker, so
the HTTP status of a stream is always 200.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import DomainError, EmptyModelOutputError
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Client-facing messages; internal exception text is only logged
DOMAIN_ERROR_MESSAGES: dict[type[Exception], str] = {
    EmptyModelOutputError: "The language model returned no usable output",
}
ERROR_CODE_MESSAGES: dict[str, str] = {
    "model_error": "The language model could not complete the request",
    "exhausted": "All language models failed to complete the request",
    "no_candidates": "No language model is configured for this feature",
}

DOMAIN_ERROR_STATUS: dict[type[Exception], int] = {
    EmptyModelOutputError: status.HTTP_502_BAD_GATEWAY,
}
ERROR_CODE_STATUS: dict[str, int] = {
    "model_error": status.HTTP_502_BAD_GATEWAY,
    "exhausted": status.HTTP_502_BAD_GATEWAY,
    "no_candidates": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_correlation_id() -> str:
    """Return the request's correlation id, minting one if none is set."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Logger that tags every record with the correlation id.

    Keyword arguments become structured fields. Fields whose names look like
    credentials, personal data or manuscript text are redacted first, so
    callers may pass request-derived values without checking them.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _emit(
        self, level: int, message: str, fields: dict[str, Any], exc_info: bool = False
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = get_correlation_id()
        sanitized = self._sanitize_data(fields)
        structured = {"correlation_id": correlation_id, "message": message, **sanitized}

        if get_settings().ENVIRONMENT == "production":
            # JsonFormatter serialises `structured_data` into the same object
            text = message
        else:
            details = " ".join(f"{k}={v}" for k, v in sanitized.items())
            text = f"[{correlation_id}] {message}" + (f" {details}" if details else "")

        self.logger.log(
            level, text, extra={"structured_data": structured}, exc_info=exc_info
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict) or not data:
            return {}

        header = self._redact_header_like(data)
        if header is not None:
            return header

        return {
            key: REDACTED if is_sensitive_key(key) else self._sanitize_value(value)
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list | tuple):
            return [self._sanitize_value(item) for item in value]
        return value

    def _redact_header_like(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Redact `{"name": ..., "value": ...}` pairs naming a sensitive header.

        Returns None when `data` is not such a pair, or names a harmless one.
        """
        if "value" not in data:
            return None
        header_name = data.get("name") or data.get("key")
        if not isinstance(header_name, str) or not is_sensitive_key(header_name):
            return None

        redacted: dict[str, Any] = {}
        for sub_k, sub_v in data.items():
            if sub_k.lower() in {"value", "val", "v"} or is_sensitive_key(sub_k):
                redacted[sub_k] = REDACTED
            elif isinstance(sub_v, dict):
                redacted[sub_k] = self._sanitize_data(sub_v)
            else:
                redacted[sub_k] = sub_v
        return redacted

    def debug(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._emit(logging.ERROR, message, kwargs, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Route exceptions that escape the exception handlers to the global handler."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def _build_error_response(
    *,
    error_type: str,
    message: str,
    environment: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    headers: dict[str, str] | None = None,
    **fields: Any,
) -> JSONResponse:
    """Wrap `fields` in an `ErrorResponse`, keeping only what `environment` allows."""
    allowed = get_allowed_error_fields(environment)
    error_body: dict[str, Any] = {
        "correlation_id": get_correlation_id(),
        "type": error_type,
    }
    error_body.update(
        {k: v for k, v in fields.items() if k in allowed and v is not None}
    )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error_body).model_dump(),
        headers=headers,
    )


def _jsonable_validation_errors(exc: ValidationError | RequestValidationError) -> Any:
    # ctx values may hold exception instances
    return json.loads(json.dumps(exc.errors(), default=str))


def _http_error(exc: StarletteHTTPException, environment: str) -> JSONResponse:
    return _build_error_response(
        error_type="http_error",
        message="An HTTP error occurred",
        environment=environment,
        status_code=exc.status_code,
        headers=exc.headers,
        details={"detail": exc.detail},
        exception_type=exc.__class__.__name__,
    )


def _validation_error(
    request: Request, exc: ValidationError | RequestValidationError, environment: str
) -> JSONResponse:
    errors = _jsonable_validation_errors(exc)
    structured_logger.warning(
        "Validation error", path=request.url.path, error_count=len(errors)
    )
    return _build_error_response(
        error_type="validation_error",
        message="Invalid request data provided",
        environment=environment,
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        validation_errors=errors,
    )


def _domain_error(exc: DomainError, environment: str) -> JSONResponse:
    error_code: str | None = getattr(exc, "error_code", None)
    structured_logger.warning(
        "Domain error",
        exception_type=exc.__class__.__name__,
        error_code=error_code,
        error=str(exc),
    )
    message = DOMAIN_ERROR_MESSAGES.get(type(exc)) or ERROR_CODE_MESSAGES.get(
        error_code or "", "Domain error"
    )
    status_code = DOMAIN_ERROR_STATUS.get(type(exc)) or ERROR_CODE_STATUS.get(
        error_code or "", status.HTTP_400_BAD_REQUEST
    )
    return _build_error_response(
        error_type="domain_error",
        message=message,
        environment=environment,
        status_code=status_code,
        code=error_code,
    )


def _internal_error(exc: Exception, environment: str) -> JSONResponse:
    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    return _build_error_response(
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback="".join(traceback.format_exception(exc)).strip(),
        exception_type=exc.__class__.__name__,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render any exception as an `ErrorResponse`.

    Production responses carry only the correlation id, the error type and,
    for domain errors, a stable error code. Other environments add details,
    validation errors and tracebacks.
    """
    environment = get_settings().ENVIRONMENT

    if isinstance(exc, StarletteHTTPException):
        return _http_error(exc, environment)
    if isinstance(exc, ValidationError | RequestValidationError):
        return _validation_error(request, exc, environment)
    if isinstance(exc, DomainError):
        return _domain_error(exc, environment)
    return _internal_error(exc, environment)


def setup_logging() -> None:
    """Install a single stdout handler on the root logger.

    JSON lines in production, plain text elsewhere. Calling it again is a
    no-op once the root logger has handlers.
    """
    settings = get_settings()
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO

    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    # Provider SDKs log every request and retry at INFO
    if settings.ENVIRONMENT != "development":
        for name in ("uvicorn.access", "httpx", "openai", "pydantic_ai"):
            logging.getLogger(name).setLevel(logging.WARNING)
