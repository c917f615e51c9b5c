"""
Load booking documents from a JSON file into the document store (local development / demos).
The file holds a list of objects; each needs an "id" (document id), the rest is stored as-is.
Run: python -m repair_admin.seed bookings.json
"""
import argparse
import asyncio
import json
import logging
import sys

from repair_admin.config import settings
from repair_admin.documents import DocumentStore
from repair_admin.repository import get_document_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


async def seed_documents(store: DocumentStore, collection: str, docs: list[dict]) -> int:
    seeded = 0
    for doc in docs:
        doc = dict(doc)
        doc_id = doc.pop("id", None)
        if not doc_id:
            logger.warning("Document missing id, skipping: %s", doc.get("bookingId"))
            continue
        await store.create(collection, str(doc_id), doc)
        seeded += 1
    return seeded


async def run(path: str, collection: str) -> int:
    with open(path, encoding="utf-8") as f:
        docs = json.load(f)
    store = await get_document_store()
    try:
        if settings.document_backend == "postgres":
            from repair_admin.db import get_pool, init_schema
            await init_schema(await get_pool())
        return await seed_documents(store, collection, docs)
    finally:
        if settings.document_backend == "postgres":
            from repair_admin.db import close_pool
            await close_pool()
        else:
            from repair_admin.redis_client import close_redis
            await close_redis()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("path", help="JSON file with a list of booking documents")
    parser.add_argument("--collection", default=settings.bookings_collection)
    args = parser.parse_args()

    seeded = asyncio.run(run(args.path, args.collection))
    logger.info("Seeded %d document(s) into %s", seeded, args.collection)


if __name__ == "__main__":
    main()
