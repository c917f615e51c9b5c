"""
Stored booking documents <-> Booking values.
Documents come from the customer app with loosely-typed fields (legacy status spellings,
raw payment methods, several timestamp shapes); everything is normalized here.
"""
import datetime
import logging
from typing import Any

from repair_admin.booking_state import Booking, BookingStatus

logger = logging.getLogger(__name__)

_STATUS_ALIASES: dict[str, BookingStatus] = {
    "pending": BookingStatus.BOOKED,
    "booked": BookingStatus.BOOKED,
    "confirmed": BookingStatus.CONFIRMED,
    "picked": BookingStatus.PICKED,
    "servicecenter": BookingStatus.SERVICE_CENTER,
    "service-center": BookingStatus.SERVICE_CENTER,
    "repair": BookingStatus.REPAIR,
    "outfordelivery": BookingStatus.OUT_FOR_DELIVERY,
    "out-for-delivery": BookingStatus.OUT_FOR_DELIVERY,
    "delivered": BookingStatus.DELIVERED,
    "cancelled": BookingStatus.CANCELLED,
}


def map_status(raw: Any) -> BookingStatus:
    """Unknown or missing status falls back to booked."""
    if not isinstance(raw, str):
        return BookingStatus.BOOKED
    return _STATUS_ALIASES.get(raw.strip().lower(), BookingStatus.BOOKED)


def map_payment_method(raw: Any) -> str:
    method = raw.lower() if isinstance(raw, str) else ""
    if method in ("cod", "cash"):
        return "Cash"
    if method in ("upi", "wallet"):
        return "UPI"
    if method in ("card", "credit", "debit"):
        return "Card"
    return "Cash"


def map_payment_status(raw: Any) -> str:
    method = raw.lower() if isinstance(raw, str) else ""
    if method == "cod":
        return "pending"
    if method == "cash":
        return "cash"
    return "paid"


def parse_created_at(value: Any, today: datetime.date) -> datetime.date:
    """
    Accepts datetime/date, {"seconds": ...} timestamps, epoch numbers and ISO strings.
    Missing or unusable values fall back to today.
    """
    if value is None or value == "":
        return today
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, dict) and value.get("seconds") is not None:
        return datetime.datetime.fromtimestamp(float(value["seconds"]), tz=datetime.timezone.utc).date()
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc).date()
    if isinstance(value, str):
        try:
            return datetime.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            pass
        try:
            return datetime.date.fromisoformat(value.split("T")[0])
        except ValueError:
            logger.warning("Unparseable createdAt %r, using today", value)
            return today
    return today


def booking_from_document(doc: dict[str, Any], doc_id: str, today: datetime.date | None = None) -> Booking:
    today = today or datetime.date.today()
    address = doc.get("address") or {}
    category = doc.get("categoryName") or "Unknown"
    description = doc.get("description") or None
    status = map_status(doc.get("status"))

    cancelled_at = doc.get("cancelledAtStatus")
    cancelled_at_status = map_status(cancelled_at) if cancelled_at else None
    if cancelled_at_status == BookingStatus.CANCELLED:
        cancelled_at_status = None

    return Booking(
        id=doc_id,
        booking_id=doc.get("bookingId") or doc_id,
        customer=address.get("fullName") or "Unknown Customer",
        service=description or category,
        mobile_number=address.get("phone") or "",
        payment_status=map_payment_status(doc.get("paymentMethod")),
        payment_method=map_payment_method(doc.get("paymentMethod")),
        category=category,
        amount=doc.get("amount") or 0,
        status=status,
        date=parse_created_at(doc.get("createdAt"), today),
        images=doc.get("images") or None,
        audio_recording=doc.get("audioUrl") or None,
        text_description=description,
        service_reason=doc.get("serviceReason") or None,
        service_amount=doc.get("serviceAmount") or None,
        cancelled_at_status=cancelled_at_status,
    )
