"""
core/errors.py -- Error taxonomy shared by every layer.

Domain code (auth/, suppliers/, notifications/) raises these; api/main.py
registers one exception handler that renders any GateError as the standard
ErrorResponse envelope. Each subclass pins a stable machine-readable code and
the HTTP status the transport layer should use.

Token failures are deliberately collapsed: a bad signature, a malformed
token and an expired token all surface as InvalidCredential with the same
message, so a caller probing with forged tokens learns nothing about which
check failed.
"""

from __future__ import annotations


class GateError(Exception):
    """Base class for all authorization and lifecycle errors."""

    code = "error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class Unauthenticated(GateError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class BadCredentials(GateError):
    """Login failure. Same error for unknown email and wrong password."""

    code = "bad_credentials"
    status_code = 401
    default_message = "Invalid email or password."


class InvalidCredential(GateError):
    code = "invalid_credential"
    status_code = 403
    default_message = "Invalid or expired token."


class Forbidden(GateError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(GateError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class Conflict(GateError):
    code = "conflict"
    status_code = 409
    default_message = "The resource is already in the requested state."


class InvalidTransition(GateError):
    code = "invalid_transition"
    status_code = 400
    default_message = "The requested status change is not allowed."


class ValidationError(GateError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input."


class PayloadTooLarge(ValidationError):
    code = "file_too_large"
    status_code = 413
    default_message = "Uploaded file exceeds the size limit."
