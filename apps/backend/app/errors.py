"""Exception hierarchy and the FastAPI handlers that render it."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Caller-visible failure carrying the HTTP status it should produce."""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details
        self.code = code or self.__class__.__name__

    def describe(self) -> str:
        """Most specific human text, used when recording a failure."""
        return self.details or self.message

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if include_details and self.details:
            body["details"] = self.details
        return body


class ConfigError(AppError):
    def __init__(self, details: str, message: str = "Server misconfigured") -> None:
        super().__init__(500, message, details, code="CONFIG_ERROR")


class RequestValidationFailed(AppError):
    """Input failed validation; ``errors`` lists every problem found."""

    def __init__(self, errors: List[str], message: str = "Invalid request") -> None:
        super().__init__(400, message, "; ".join(errors), code="VALIDATION_ERROR")
        self.errors = list(errors)

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        body = super().to_dict(include_details)
        body["errors"] = self.errors
        return body


class SessionError(AppError):
    @classmethod
    def missing_header(cls) -> "SessionError":
        return cls(400, "Missing session", "X-Session-ID header is required", code="SESSION_HEADER_MISSING")

    @classmethod
    def not_found(cls) -> "SessionError":
        return cls(404, "Session not found", "Invalid or expired session ID", code="SESSION_MISSING")


class TaskNotFound(AppError):
    def __init__(self, task_id: str) -> None:
        super().__init__(404, "Task not found", f"Invalid or expired taskId: {task_id}", code="TASK_NOT_FOUND")


class TaskForbidden(AppError):
    def __init__(self) -> None:
        super().__init__(403, "Forbidden", "Task does not belong to this session", code="TASK_FORBIDDEN")


class ProviderError(AppError):
    """The image provider rejected a call or could not be reached."""


class EnhancementError(AppError):
    pass


def install_error_handlers(app: FastAPI, expose_details: bool = True) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        else:
            logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(expose_details))

    @app.exception_handler(RequestValidationError)
    async def _body_validation(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        wrapped = RequestValidationFailed(errors)
        return JSONResponse(status_code=400, content=wrapped.to_dict(expose_details))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body: Dict[str, Any] = {"error": "Internal server error", "code": "INTERNAL_SERVER_ERROR"}
        body["details"] = str(exc) if expose_details else "An unexpected error occurred"
        return JSONResponse(status_code=500, content=body)
