"""Error taxonomy shared by the core components and the HTTP layer.

Every error carries a stable `code` and the HTTP status it maps to. The API
layer renders them as `{"ok": false, "error": ..., "code": ...}`.
"""

from __future__ import annotations


class CopierError(Exception):
    code = "ERROR"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.lower())
        self.message = message or self.code.lower()


class InvalidInput(CopierError):
    """Malformed or missing required fields."""

    code = "INVALID_INPUT"
    status_code = 400


class Unauthorized(CopierError):
    """Missing or invalid credential."""

    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(CopierError):
    """Valid credential, but not entitled (expired, disabled, group mismatch, binding conflict)."""

    code = "FORBIDDEN"
    status_code = 403


class NotFound(CopierError):
    code = "NOT_FOUND"
    status_code = 404


class StorageFailure(CopierError):
    """A durable write failed. Absorbed by DocumentStore.save(); never reaches a client."""

    code = "STORAGE_FAILURE"
    status_code = 500
