from __future__ import annotations

from typing import Any, Dict

from flask import jsonify

from satinalma.observability import current_request_id
from satinalma.ui_strings import DEFAULT_ERROR_MESSAGE, error_message


_MISSING = object()


class AppError(Exception):
    default_code = "server_error"
    default_message_key: str | None = None
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: Any = _MISSING,
        message: str | None = None,
        log_context: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key or self.code).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.has_details = details is not _MISSING
        self.details = None if details is _MISSING else details
        self.message = (message or "").strip() or None
        self.log_context = (log_context or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.log_context or self.code)

    def user_message(self) -> str:
        if self.message:
            return self.message
        return error_message(self.message_key, DEFAULT_ERROR_MESSAGE)

    def to_response_payload(self, request_id: str | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "code": self.code,
            "message": self.user_message(),
        }
        if self.has_details:
            payload["details"] = self.details
        if request_id:
            payload["request_id"] = request_id
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "invalid_payload"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_failed"
    default_http_status = 400
    default_critical = False


class AuthenticationError(UserActionError):
    default_code = "unauthorized"
    default_http_status = 401
    default_critical = False


class PermissionError(UserActionError):
    default_code = "forbidden"
    default_http_status = 403
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_http_status = 404
    default_critical = False


class ConflictError(UserActionError):
    default_code = "duplicate"
    default_http_status = 409
    default_critical = False


class IntegrationError(AppError):
    default_code = "external_service_error"
    default_http_status = 502
    default_critical = False


class SystemError(AppError):
    default_code = "server_error"
    default_http_status = 500
    default_critical = True


def error_response(code: str, status: int, details: Any = _MISSING, message: str | None = None):
    error_class = UserActionError if int(status) < 500 else SystemError
    error = error_class(code=code, http_status=status, details=details, message=message)
    return jsonify(error.to_response_payload(current_request_id())), error.http_status
