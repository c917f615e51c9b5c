import datetime
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from repair_admin.booking_state import (
    ORDERED_STEPS,
    STATUS_LABELS,
    Booking,
    BookingStatus,
    InvalidLifecycleStateError,
    MissingServiceReasonError,
    ServiceCenterInput,
    build_persistence_payload,
    check_working_state,
    request_transition,
)
from repair_admin.config import settings
from repair_admin.documents import RepositoryError, split_update
from repair_admin.listing import calculate_stats, filter_bookings, paginate
from repair_admin.metrics import (
    booking_save_failures_total,
    booking_saves_total,
    booking_transitions_rejected_total,
    booking_transitions_total,
)
from repair_admin.repository import BookingRepository, get_booking_repository
from repair_admin.timeline import project_timeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_today() -> datetime.date:
    return datetime.date.today()


class ServiceCenterBody(BaseModel):
    reason: str = Field(..., description="Issue found at the service center (required, non-empty)")
    amount: float | None = Field(default=None, ge=0, description="Optional extra service charge")


class WorkingState(BaseModel):
    """Lifecycle fields of a booking as currently held by the admin, possibly unsaved."""
    status: BookingStatus
    cancelled_at_status: BookingStatus | None = None
    service_reason: str | None = None
    service_amount: float | None = Field(default=None, ge=0)


class TransitionBody(BaseModel):
    target_status: BookingStatus = Field(..., description="Status to move the booking to")
    service_center: ServiceCenterBody | None = Field(default=None, description="Required when target is serviceCenter")
    working: WorkingState | None = Field(default=None, description="Unsaved state to apply on; defaults to the stored booking")


def _booking_view(booking: Booking, today: datetime.date) -> dict:
    return {
        "booking": booking.model_dump(mode="json"),
        "timeline": project_timeline(booking, today).model_dump(mode="json"),
    }


def _payload_view(payload: dict) -> dict:
    to_set, to_delete = split_update(payload)
    return {"set": to_set, "delete": to_delete}


def _reject(status_code: int, reason: str, detail: str) -> JSONResponse:
    booking_transitions_rejected_total.labels(reason=reason).inc()
    return JSONResponse(status_code=status_code, content={"status": "rejected", "reason": reason, "detail": detail})


@router.get("/statuses")
async def list_statuses() -> dict:
    """Ordered lifecycle steps and display labels for status pickers."""
    return {
        "steps": [s.value for s in ORDERED_STEPS],
        "labels": {s.value: label for s, label in STATUS_LABELS.items()},
    }


@router.get("/stats")
async def booking_stats(repo: BookingRepository = Depends(get_booking_repository)) -> dict:
    stats = calculate_stats(await repo.list_bookings())
    return {
        "total_revenue": stats.total_revenue,
        "pending_amount": stats.pending_amount,
        "status_counts": stats.status_counts,
    }


@router.get("")
async def list_bookings(
    search: str | None = Query(default=None),
    status: BookingStatus | None = Query(default=None),
    category: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=settings.default_page_size, ge=1, le=100),
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    bookings = filter_bookings(await repo.list_bookings(), search=search, status=status, category=category)
    result = paginate(bookings, page, per_page)
    return {
        "bookings": [b.model_dump(mode="json") for b in result.items],
        "total": result.total,
        "page": result.page,
        "pages": result.pages,
    }


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    repo: BookingRepository = Depends(get_booking_repository),
    today: datetime.date = Depends(get_today),
) -> dict:
    booking = await repo.fetch_booking(booking_id, today)
    return _booking_view(booking, today)


@router.post("/{booking_id}/transition")
async def transition_booking(
    booking_id: str,
    body: TransitionBody,
    repo: BookingRepository = Depends(get_booking_repository),
    today: datetime.date = Depends(get_today),
):
    """
    Preview a status change: returns the updated booking, its timeline and the fields a save would write.
    Nothing is persisted; call PUT /bookings/{booking_id} with the returned state to save.
    """
    booking = await repo.fetch_booking(booking_id, today)
    if body.working is not None:
        working = booking.model_copy(update=body.working.model_dump())
        try:
            check_working_state(booking, working)
        except InvalidLifecycleStateError as e:
            return _reject(422, e.reason, e.detail)
        booking = working

    target = body.target_status
    if target == booking.status:
        return _reject(409, "no_op", f"Booking is already {target.value}")

    aux = None
    if target == BookingStatus.SERVICE_CENTER and body.service_center is not None:
        aux = ServiceCenterInput(reason=body.service_center.reason.strip(), amount=body.service_center.amount)

    try:
        updated = request_transition(booking, target, aux)
    except MissingServiceReasonError as e:
        return _reject(422, e.reason, e.detail)
    booking_transitions_total.labels(from_status=booking.status.value, to_status=target.value).inc()
    logger.info("Booking %s transition %s -> %s (unsaved)", booking_id, booking.status.value, target.value)

    view = _booking_view(updated, today)
    view["payload"] = _payload_view(build_persistence_payload(updated))
    return view


@router.put("/{booking_id}")
async def save_booking(
    booking_id: str,
    body: WorkingState,
    repo: BookingRepository = Depends(get_booking_repository),
    today: datetime.date = Depends(get_today),
):
    """Persist the lifecycle fields of a working booking. On failure the caller keeps its unsaved state and may retry."""
    stored = await repo.fetch_booking(booking_id, today)
    booking = stored.model_copy(update=body.model_dump())
    try:
        check_working_state(stored, booking)
    except InvalidLifecycleStateError as e:
        return _reject(422, e.reason, e.detail)
    payload = build_persistence_payload(booking)
    try:
        await repo.update_booking(booking_id, payload)
    except RepositoryError as e:
        booking_save_failures_total.inc()
        logger.exception("Failed to update booking %s: %s", booking_id, e)
        return JSONResponse(
            status_code=502,
            content={"status": "error", "detail": "Failed to update booking"},
        )
    booking_saves_total.inc()

    saved = await repo.fetch_booking(booking_id, today)
    view = _booking_view(saved, today)
    view["status"] = "ok"
    view["payload"] = _payload_view(payload)
    return view
