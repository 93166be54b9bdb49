# backend/oropos/errors.py
"""
Domain errors raised by the service layer.

Each error carries a stable machine-readable ``code``, the HTTP status the
API layer answers with, and optional structured details that are merged
into the JSON error body: ``{"error": message, "code": code, **details}``.

Routes catch ``PosError`` and translate it with ``to_dict()``; anything else
is logged with ``current_app.logger.exception`` and answered with an opaque
500 (``InternalError``).
"""
from __future__ import annotations


class PosError(Exception):
    code = "POS_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message()
        self.details = details
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


# Cash-drawer session guard

class NoOpenShift(PosError):
    code = "NO_OPEN_SHIFT"

    @classmethod
    def default_message(cls) -> str:
        return "No open shift. Open a shift before processing this operation."


class ShiftClosed(PosError):
    code = "SHIFT_CLOSED"

    @classmethod
    def default_message(cls) -> str:
        return "The cash drawer session is closed or does not exist."


# Validation and state

class ValidationFailed(PosError):
    code = "VALIDATION_FAILED"


class OfflineCardNotPermitted(PosError):
    code = "OFFLINE_CARD_NOT_PERMITTED"

    @classmethod
    def default_message(cls) -> str:
        return "Offline card payments are not enabled for this business."


class InvalidState(PosError):
    code = "INVALID_STATE"


class LineItemNotFound(PosError):
    code = "LINE_ITEM_NOT_FOUND"


class OverRefund(PosError):
    code = "OVER_REFUND"


# Access

class Forbidden(PosError):
    code = "FORBIDDEN"
    http_status = 403

    @classmethod
    def default_message(cls) -> str:
        return "Forbidden"


class NotFound(PosError):
    code = "NOT_FOUND"
    http_status = 404

    @classmethod
    def default_message(cls) -> str:
        return "Not found"


class Conflict(PosError):
    code = "CONFLICT"
    http_status = 409


class InternalError(PosError):
    code = "INTERNAL_ERROR"
    http_status = 500

    @classmethod
    def default_message(cls) -> str:
        return "Internal server error"
