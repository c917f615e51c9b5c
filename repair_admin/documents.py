"""
Document store contract shared by the Redis and Postgres backends.
Documents are flat JSON objects keyed by (collection, doc_id).
"""
from typing import Any, Protocol


class _DeleteField:
    """Marker value: remove the field from the stored document instead of writing it."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


class DocumentNotFoundError(Exception):
    """Raised when (collection, doc_id) does not exist."""
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")


class RepositoryError(Exception):
    """Raised when the backend fails (connection, timeout, bad data). Caller may retry."""


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]: ...

    async def find_by(self, collection: str, field: str, value: Any) -> tuple[str, dict[str, Any]] | None: ...

    async def create(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None: ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...


def split_update(fields: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Split an update payload into (fields to write, field names to delete)."""
    to_set = {k: v for k, v in fields.items() if v is not DELETE_FIELD}
    to_delete = [k for k, v in fields.items() if v is DELETE_FIELD]
    return to_set, to_delete
