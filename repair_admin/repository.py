"""
Booking repository over the document store. Backend: Redis (default) or Postgres when DOCUMENT_BACKEND=postgres.
"""
import datetime
import logging
from typing import Any

from repair_admin.booking_documents import booking_from_document
from repair_admin.booking_state import Booking
from repair_admin.config import settings
from repair_admin.documents import DocumentNotFoundError, DocumentStore

logger = logging.getLogger(__name__)


class BookingNotFoundError(Exception):
    """Raised when neither a document id nor a bookingId matches."""
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class BookingRepository:
    def __init__(self, store: DocumentStore, collection: str | None = None):
        self.store = store
        self.collection = collection or settings.bookings_collection

    async def _resolve(self, booking_id: str) -> tuple[str, dict[str, Any]]:
        """Match on bookingId first, then on the document id."""
        found = await self.store.find_by(self.collection, "bookingId", booking_id)
        if found is not None:
            return found
        doc = await self.store.get(self.collection, booking_id)
        if doc is None:
            raise BookingNotFoundError(booking_id)
        return booking_id, doc

    async def fetch_booking(self, booking_id: str, today: datetime.date | None = None) -> Booking:
        doc_id, doc = await self._resolve(booking_id)
        return booking_from_document(doc, doc_id, today)

    async def list_bookings(self, today: datetime.date | None = None) -> list[Booking]:
        """All bookings, newest first."""
        rows = await self.store.list(self.collection)
        bookings = [booking_from_document(doc, doc_id, today) for doc_id, doc in rows]
        bookings.sort(key=lambda b: b.date, reverse=True)
        logger.info("Fetched %d bookings from %s", len(bookings), self.collection)
        return bookings

    async def update_booking(self, booking_id: str, payload: dict[str, Any]) -> None:
        doc_id, _ = await self._resolve(booking_id)
        try:
            await self.store.update(self.collection, doc_id, payload)
        except DocumentNotFoundError:
            # Deleted between lookup and write
            raise BookingNotFoundError(booking_id)
        logger.info("Updated booking %s fields=%s", booking_id, sorted(payload))


async def get_document_store() -> DocumentStore:
    if settings.document_backend == "postgres":
        from repair_admin.db import PostgresDocumentStore, get_pool
        return PostgresDocumentStore(await get_pool())
    from repair_admin.redis_client import RedisDocumentStore, get_redis
    return RedisDocumentStore(await get_redis())


async def get_booking_repository() -> BookingRepository:
    return BookingRepository(await get_document_store())
