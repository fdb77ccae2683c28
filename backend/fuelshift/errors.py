# Overview: Error taxonomy for shift reconciliation and its JSON rendering.

"""
Every failure raised by the services carries:

- code:    machine-readable reason (e.g. "NotMonotonic", "NotFlagged")
- field:   the offending input field, when there is one
- message: a specific, actionable sentence for the caller

Routes never build error payloads by hand; the handlers registered in
register_error_handlers() render every FuelShiftError as

    {"error": {"code": "...", "message": "...", "field": "..."}}
"""

from __future__ import annotations

from flask import Flask, jsonify


class FuelShiftError(Exception):
    """Base class for all reportable engine failures."""

    status_code = 400

    def __init__(self, code: str, message: str, *, field: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(FuelShiftError):
    """Malformed or out-of-policy input. Nothing was written."""

    status_code = 400


class StateConflictError(FuelShiftError):
    """The entity is not in the state the operation requires. Re-fetch before retrying."""

    status_code = 409


class NotFoundError(FuelShiftError):
    status_code = 404


class AuthorizationError(FuelShiftError):
    """Actor role is insufficient for the operation."""

    status_code = 403


class PersistenceError(FuelShiftError):
    """
    The store failed to commit.

    The engine never retries open/close/resolve on its own: a blind retry of
    close could double-process if the first commit actually landed.
    """

    status_code = 503


class AuditWriteError(Exception):
    """Audit entry could not be persisted. Logged, never surfaced to the caller."""


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(FuelShiftError)
    def handle_fuelshift_error(exc: FuelShiftError):
        if isinstance(exc, PersistenceError):
            app.logger.error("Persistence failure: %s", exc.message)
        return jsonify({"error": exc.to_dict()}), exc.status_code

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return jsonify({"error": {"code": "NotFound", "message": "Resource not found"}}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_exc):
        return jsonify({"error": {"code": "MethodNotAllowed", "message": "Method not allowed"}}), 405
