# Overview: Error taxonomy shared by the transaction engines and the API layer.

from __future__ import annotations

from flask import jsonify


class LedgerError(Exception):
    """Base class for every error a transaction engine raises on purpose."""

    status_code = 500
    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """400-level input problem, raised before anything is written."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class InsufficientStockError(LedgerError):
    """A sale asks for more units than the product has on hand."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, available: int, required: int, product_id: int | None = None):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available} units, Required: {required} units",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "required": required,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.required = required


class ConcurrencyConflictError(LedgerError):
    """Another operator changed the same record first; re-read and retry."""

    status_code = 409
    code = "CONCURRENCY_CONFLICT"


class ConnectivityError(LedgerError):
    """
    The backing store could not be reached or the write was not confirmed.

    outcome_unknown=True means the commit was attempted: the write may or may
    not have landed, so the operator has to re-check before trying again.
    """

    status_code = 503
    code = "CONNECTIVITY_ERROR"

    def __init__(self, message: str | None = None, *, outcome_unknown: bool = False):
        if message is None:
            if outcome_unknown:
                message = (
                    "Could not confirm the save. Check your connection and verify "
                    "the record before retrying."
                )
            else:
                message = "No connection to the database. Check your connection and try again."
        super().__init__(message, details={"outcome_unknown": outcome_unknown})
        self.outcome_unknown = outcome_unknown


class AuthorizationError(LedgerError):
    """Wrong password on re-authentication, or a role that may not do this."""

    status_code = 403
    code = "AUTHORIZATION_ERROR"


def error_response(exc: LedgerError):
    """Flask (body, status) tuple for a LedgerError."""
    return jsonify(exc.to_dict()), exc.status_code
