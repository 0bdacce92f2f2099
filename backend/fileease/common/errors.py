from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from flask import Flask, jsonify
from sqlalchemy.exc import DisconnectionError, OperationalError
from werkzeug.exceptions import HTTPException

if TYPE_CHECKING:
    from ..sharing.decisions import AccessDecision, DenyReason


F = TypeVar("F", bound=Callable[..., Any])

ACCESS_DENIED_MESSAGE = "This file is not available."


class APIError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class SharingError(APIError):
    status_code = 400
    code = "SHARING_ERROR"
    default_message = "Sharing operation failed."

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(self.status_code, self.code, message or self.default_message, details)


class NotOwner(SharingError):
    status_code = 403
    code = "NOT_OWNER"
    default_message = "Only the file owner can manage its shares."


class NotFound(SharingError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found."


class AlreadyRevoked(SharingError):
    status_code = 409
    code = "ALREADY_REVOKED"
    default_message = "This share link has already been revoked."


class InvalidTTL(SharingError):
    status_code = 400
    code = "INVALID_TTL"
    default_message = "ttl_seconds must be a non-negative integer."


class InvalidGrantee(SharingError):
    status_code = 400
    code = "INVALID_GRANTEE"
    default_message = "The owner already has full access."


class TokenSpaceExhausted(SharingError):
    status_code = 503
    code = "TOKEN_SPACE_EXHAUSTED"
    default_message = "Could not allocate a unique share token, try again."


class Unavailable(SharingError):
    status_code = 503
    code = "UNAVAILABLE"
    default_message = "Storage is temporarily unavailable, try again."


class AccessDenied(APIError):
    """Raised on the access path. Renders the same for every deny reason."""

    def __init__(self, decision: AccessDecision) -> None:
        super().__init__(404, "NOT_AVAILABLE", ACCESS_DENIED_MESSAGE)
        self.decision = decision

    @property
    def reason(self) -> DenyReason | None:
        return self.decision.reason


def store_operation(func: F) -> F:
    """Surface transient database failures as ``Unavailable``."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (OperationalError, DisconnectionError) as error:
            raise Unavailable(details={"operation": func.__name__}) from error

    return wrapper  # type: ignore[return-value]


def error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AccessDenied)
    def handle_access_denied(error: AccessDenied):  # type: ignore[no-untyped-def]
        return jsonify(error_payload(error.code, error.message)), error.status_code

    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):  # type: ignore[no-untyped-def]
        if isinstance(error, Unavailable):
            app.logger.warning("Store unavailable during %s", error.details.get("operation"), exc_info=error.__cause__)
        return jsonify(error_payload(error.code, error.message, error.details)), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore[no-untyped-def]
        return (
            jsonify(error_payload("HTTP_ERROR", error.description, {"status": error.code})),
            error.code or 500,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[no-untyped-def]
        app.logger.exception("Unhandled exception", exc_info=error)
        return jsonify(error_payload("INTERNAL_ERROR", "An unexpected error occurred.")), 500
