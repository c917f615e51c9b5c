"""
Bookings list view helpers: search/filter, pagination, dashboard totals.
"""
import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from repair_admin.booking_state import Booking, BookingStatus


@dataclass
class Page:
    items: list[Booking]
    total: int
    page: int
    pages: int


@dataclass
class BookingStats:
    total_revenue: float = 0
    pending_amount: float = 0
    status_counts: dict[str, int] = field(default_factory=dict)


def filter_bookings(
    bookings: Sequence[Booking],
    search: str | None = None,
    status: BookingStatus | None = None,
    category: str | None = None,
) -> list[Booking]:
    term = (search or "").strip().lower()
    result = []
    for b in bookings:
        if term and not (
            term in b.id.lower()
            or term in b.booking_id.lower()
            or term in b.customer.lower()
        ):
            continue
        if status is not None and b.status != status:
            continue
        if category is not None and b.category != category:
            continue
        result.append(b)
    return result


def paginate(items: Sequence[Booking], page: int, per_page: int) -> Page:
    """1-based pages; a page past the end is empty."""
    total = len(items)
    start = (page - 1) * per_page
    return Page(
        items=list(items[start:start + per_page]),
        total=total,
        page=page,
        pages=math.ceil(total / per_page) if per_page else 0,
    )


def calculate_stats(bookings: Sequence[Booking] | None) -> BookingStats:
    if not bookings:
        return BookingStats()
    revenue = sum(b.amount for b in bookings if b.status == BookingStatus.DELIVERED)
    pending = sum(
        b.amount for b in bookings
        if b.status not in (BookingStatus.DELIVERED, BookingStatus.CANCELLED)
    )
    counts = Counter(b.status.value for b in bookings)
    return BookingStats(total_revenue=revenue, pending_amount=pending, status_counts=dict(counts))
