"""
Tracking timeline: per-step render flags plus the progress line drawn under the step icons.
Pure projection of a Booking; the render date is passed in by the caller.
"""
import datetime
from collections.abc import Sequence

from pydantic import BaseModel

from repair_admin.booking_state import ORDERED_STEPS, STATUS_LABELS, Booking, BookingStatus

STEP_DESCRIPTIONS: dict[BookingStatus, str] = {
    BookingStatus.PICKED: "Repair request submitted and payment completed",
    BookingStatus.SERVICE_CENTER: "Device collected and reached service center",
    BookingStatus.REPAIR: "Repair in progress - blades replacement and motor check",
}


class TimelineStep(BaseModel):
    step: BookingStatus
    label: str
    is_completed: bool
    is_current: bool
    is_cancelled_mark: bool
    date_label: datetime.date | None = None
    description: str = ""


class Timeline(BaseModel):
    steps: list[TimelineStep]
    cancelled: bool
    completed_count: int
    progress_fraction: float  # 0..1 along the line between first and last icon centers
    line_start: float  # percent of container width
    line_span: float
    progress_width: float


def _index_of(steps: Sequence[BookingStatus], status: BookingStatus | None) -> int:
    if status is None or status not in steps:
        return -1
    return list(steps).index(status)


def project_timeline(
    booking: Booking,
    today: datetime.date,
    steps: Sequence[BookingStatus] = ORDERED_STEPS,
) -> Timeline:
    cancelled = booking.is_cancelled
    cancelled_index = _index_of(steps, booking.cancelled_at_status) if cancelled else -1
    # The current step counts as completed so its icon turns solid on entry
    if cancelled and cancelled_index >= 0:
        last_completed = cancelled_index
    else:
        last_completed = _index_of(steps, booking.status)
    current_index = -1 if cancelled else last_completed

    rendered: list[TimelineStep] = []
    for i, step in enumerate(steps):
        is_completed = last_completed >= 0 and i <= last_completed
        is_cancelled_mark = cancelled and cancelled_index >= 0 and i == cancelled_index
        show_details = (is_completed or is_cancelled_mark) and not (cancelled and i > last_completed)

        if step == BookingStatus.BOOKED:
            date_label = booking.date
        elif show_details:
            date_label = today
        else:
            date_label = None

        rendered.append(TimelineStep(
            step=step,
            label=STATUS_LABELS[step],
            is_completed=is_completed,
            is_current=i == current_index,
            is_cancelled_mark=is_cancelled_mark,
            date_label=date_label,
            description=STEP_DESCRIPTIONS.get(step, "") if show_details else "",
        ))

    # A cancelled booking's line stops before the step it was cancelled at
    if last_completed < 0:
        completed_count = 0
    elif cancelled:
        completed_count = last_completed
    else:
        completed_count = last_completed + 1

    total = len(steps)
    icon_slot = 100 / total
    line_start = icon_slot / 2
    line_end = 100 - icon_slot / 2
    line_span = line_end - line_start
    if completed_count > 0 and total > 1:
        progress_fraction = (completed_count - 1) / (total - 1)
    else:
        progress_fraction = 0.0

    return Timeline(
        steps=rendered,
        cancelled=cancelled,
        completed_count=completed_count,
        progress_fraction=progress_fraction,
        line_start=line_start,
        line_span=line_span,
        progress_width=progress_fraction * line_span,
    )
