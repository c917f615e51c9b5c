"""
Booking lifecycle state machine: ordered repair steps plus the terminal `cancelled` flag.
Transitions return a new Booking; persistence happens only on explicit save.
"""
import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from repair_admin.documents import DELETE_FIELD


class BookingStatus(str, Enum):
    BOOKED = "booked"
    CONFIRMED = "confirmed"
    PICKED = "picked"
    SERVICE_CENTER = "serviceCenter"
    REPAIR = "repair"
    OUT_FOR_DELIVERY = "outForDelivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Lifecycle order, index 0..6. `cancelled` is not part of it.
ORDERED_STEPS: tuple[BookingStatus, ...] = (
    BookingStatus.BOOKED,
    BookingStatus.CONFIRMED,
    BookingStatus.PICKED,
    BookingStatus.SERVICE_CENTER,
    BookingStatus.REPAIR,
    BookingStatus.OUT_FOR_DELIVERY,
    BookingStatus.DELIVERED,
)

STATUS_LABELS: dict[BookingStatus, str] = {
    BookingStatus.BOOKED: "Booked",
    BookingStatus.CONFIRMED: "Confirmed",
    BookingStatus.PICKED: "Pickup",
    BookingStatus.SERVICE_CENTER: "Service Center",
    BookingStatus.REPAIR: "Repair",
    BookingStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    BookingStatus.DELIVERED: "Delivered",
    BookingStatus.CANCELLED: "Cancelled",
}

SERVICE_CENTER_INDEX = ORDERED_STEPS.index(BookingStatus.SERVICE_CENTER)


class Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    booking_id: str
    status: BookingStatus = BookingStatus.BOOKED
    date: datetime.date
    customer: str = "Unknown Customer"
    service: str = ""
    mobile_number: str = ""
    category: str = "Unknown"
    amount: float = 0
    payment_status: Literal["pending", "paid", "cash"] = "pending"
    payment_method: Literal["UPI", "Cash", "Card"] = "Cash"
    images: list[str] | None = None
    audio_recording: str | None = None
    text_description: str | None = None
    service_reason: str | None = None
    service_amount: float | None = None
    cancelled_at_status: BookingStatus | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED


class InvalidLifecycleStateError(ValueError):
    """Raised when a working booking breaks a lifecycle invariant. `reason` is a short machine-readable code."""
    def __init__(self, reason: str, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(detail)


class MissingServiceReasonError(InvalidLifecycleStateError):
    """Raised when a booking is moved to (or saved at) serviceCenter without a reason."""
    def __init__(self):
        super().__init__("missing_reason", "Please enter the reason for service")


@dataclass(frozen=True)
class ServiceCenterInput:
    """Collected from the admin before a serviceCenter transition. `reason` must be non-empty."""
    reason: str
    amount: float | None = None


def step_index(status: BookingStatus | None) -> int | None:
    """Position of status in ORDERED_STEPS, None for cancelled/missing."""
    if status is None or status == BookingStatus.CANCELLED:
        return None
    return ORDERED_STEPS.index(status)


def effective_step_index(booking: Booking) -> int | None:
    """Ordered index used for sub-state rules. Cancelled bookings use the step they were cancelled at."""
    if booking.is_cancelled:
        return step_index(booking.cancelled_at_status)
    return step_index(booking.status)


def request_transition(
    booking: Booking,
    target: BookingStatus,
    aux: ServiceCenterInput | None = None,
) -> Booking:
    """
    Apply a status change and return the updated booking.
    Preconditions (checked by the caller): target != booking.status; for serviceCenter, aux.reason is non-empty.
    Raises MissingServiceReasonError when the serviceCenter precondition does not hold.
    """
    if target == BookingStatus.CANCELLED:
        update: dict[str, Any] = {"status": BookingStatus.CANCELLED}
        if not booking.is_cancelled:
            update["cancelled_at_status"] = booking.status
        return booking.model_copy(update=update)

    if target == BookingStatus.SERVICE_CENTER:
        if aux is None or not aux.reason.strip():
            raise MissingServiceReasonError()
        return booking.model_copy(update={
            "status": BookingStatus.SERVICE_CENTER,
            "service_reason": aux.reason,
            "service_amount": aux.amount,
            "cancelled_at_status": None,
        })

    update = {"status": target, "cancelled_at_status": None}
    # Only a direct regression away from serviceCenter drops the sub-state
    if booking.status == BookingStatus.SERVICE_CENTER and ORDERED_STEPS.index(target) < SERVICE_CENTER_INDEX:
        update["service_reason"] = None
        update["service_amount"] = None
    return booking.model_copy(update=update)


def check_working_state(stored: Booking, working: Booking) -> None:
    """
    Validate lifecycle fields a client wants to save against what is stored.
    Raises InvalidLifecycleStateError (422 at the HTTP layer).
    """
    if working.cancelled_at_status == BookingStatus.CANCELLED:
        raise InvalidLifecycleStateError("invalid_cancelled_at", "cancelled_at_status must be an ordered step")
    if working.cancelled_at_status is not None and not working.is_cancelled:
        raise InvalidLifecycleStateError(
            "invalid_cancelled_at", "cancelled_at_status is only allowed on a cancelled booking"
        )
    if working.is_cancelled and working.cancelled_at_status is None:
        # Legacy documents may already be cancelled without a recorded step; re-saving them is fine
        if not (stored.is_cancelled and stored.cancelled_at_status is None):
            raise InvalidLifecycleStateError(
                "missing_cancelled_at", "A cancelled booking must record the step it was cancelled at"
            )
    if working.status == BookingStatus.SERVICE_CENTER and not (working.service_reason or "").strip():
        raise MissingServiceReasonError()


def build_persistence_payload(booking: Booking) -> dict[str, Any]:
    """
    Fields for the repository update on save, keyed by stored document field names.
    Fields that must not survive in the store are set to DELETE_FIELD.
    """
    payload: dict[str, Any] = {"status": booking.status.value}

    index = effective_step_index(booking)
    if index is not None:
        if index >= SERVICE_CENTER_INDEX and booking.service_reason:
            payload["serviceReason"] = booking.service_reason
            payload["serviceAmount"] = booking.service_amount if booking.service_amount is not None else DELETE_FIELD
        else:
            payload["serviceReason"] = DELETE_FIELD
            payload["serviceAmount"] = DELETE_FIELD

    if booking.is_cancelled:
        if booking.cancelled_at_status is not None:
            payload["cancelledAtStatus"] = booking.cancelled_at_status.value
    else:
        payload["cancelledAtStatus"] = DELETE_FIELD
    return payload
