"""Error taxonomy shared by every engine component.

Each error carries a user-facing ``message`` that says what changed and a
``hint`` that says what to do next. ``status_code`` is the HTTP mapping used by
the API layer; services never raise ``HTTPException`` directly.
"""
from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..schemas.availability import AvailabilityResult


class EngineError(Exception):
    """Base class for expected, typed engine failures."""

    code = "engine_error"
    status_code = 500
    hint = "Please try again."

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if hint is not None:
            self.hint = hint

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, "action": self.hint}


class ValidationError(EngineError):
    code = "validation_error"
    status_code = 400
    hint = "Correct the request and submit it again."


class ConflictError(EngineError):
    """The requested state change lost to a concurrent change."""

    code = "conflict"
    status_code = 409
    hint = "Availability has changed. Please search again."

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        availability: "AvailabilityResult | None" = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.availability = availability

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.availability is not None:
            payload["availability"] = self.availability.model_dump(mode="json")
        return payload


class RangeConflict(ConflictError):
    """Raised by the calendar store when a range transition finds a mismatched day."""

    code = "range_conflict"

    def __init__(self, room_id: str, day: date, current_status: str, expected_status: str) -> None:
        super().__init__(
            f"Room {room_id} is {current_status} on {day.isoformat()} (expected {expected_status}).",
        )
        self.room_id = room_id
        self.day = day
        self.current_status = current_status
        self.expected_status = expected_status

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["date"] = self.day.isoformat()
        payload["current_status"] = self.current_status
        return payload


class HoldExpiredError(ConflictError):
    """The hold ended before the operation completed.

    ``payment_reference`` is set when a captured payment was attached to the
    hold and no booking uses it, so the charge has to be returned.
    """

    code = "hold_expired"
    hint = "Your reservation expired. Please re-select your dates."

    def __init__(self, message: str, *, hint: str | None = None, payment_reference: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.payment_reference = payment_reference
        self.refund_requested = False

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.payment_reference is not None:
            payload["payment_reference"] = self.payment_reference
            payload["refund_requested"] = self.refund_requested
        return payload


class UnauthorizedError(EngineError):
    code = "unauthorized"
    status_code = 401
    hint = "Please sign in and try again."


class ForbiddenError(UnauthorizedError):
    code = "forbidden"
    status_code = 403
    hint = "Ask an administrator to perform this action."


class NotFoundError(EngineError):
    code = "not_found"
    status_code = 404
    hint = "Check the identifier and try again."


class PaymentFailedError(EngineError):
    code = "payment_declined"
    status_code = 402
    hint = "Try another payment method."


class FatalBookingError(EngineError):
    """Payment was captured but the booking could not be committed."""

    code = "booking_fatal"
    status_code = 500
    hint = "Your payment is safe. Please contact support quoting the payment reference."

    def __init__(self, message: str, *, payment_reference: str, hold_id: str) -> None:
        super().__init__(message)
        self.payment_reference = payment_reference
        self.hold_id = hold_id
        self.refund_requested = False

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload.update(
            {
                "payment_reference": self.payment_reference,
                "hold_id": self.hold_id,
                "requires_reconciliation": True,
                "refund_requested": self.refund_requested,
            }
        )
        return payload


class CalendarInconsistencyError(RuntimeError):
    """Persisted calendar state contradicts the records that own it."""
