"""
Redis document backend: one hash per document (values JSON-encoded) and one set of ids per collection.
Keys: <prefix>:<collection>:<doc_id> and <prefix>:<collection>:ids
"""
import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from repair_admin.config import settings
from repair_admin.documents import DocumentNotFoundError, RepositoryError, split_update

logger = logging.getLogger(__name__)

UPDATE_RETRIES = 3

_redis: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def encode_fields(fields: dict[str, Any]) -> dict[str, str]:
    return {k: json.dumps(v, default=str) for k, v in fields.items()}


def decode_hash(raw: dict[str, str]) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for k, v in raw.items():
        try:
            doc[k] = json.loads(v)
        except json.JSONDecodeError:
            # Written by something other than this store; keep the raw string
            doc[k] = v
    return doc


class RedisDocumentStore:
    def __init__(self, r: redis.Redis, prefix: str | None = None):
        self._r = r
        self._prefix = prefix or settings.redis_key_prefix

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self._prefix}:{collection}:{doc_id}"

    def _ids_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:ids"

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            raw = await self._r.hgetall(self._doc_key(collection, doc_id))
        except RedisError as e:
            raise RepositoryError(str(e)) from e
        if not raw:
            return None
        return decode_hash(raw)

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        try:
            ids = sorted(await self._r.smembers(self._ids_key(collection)))
            async with self._r.pipeline(transaction=False) as pipe:
                for doc_id in ids:
                    pipe.hgetall(self._doc_key(collection, doc_id))
                rows = await pipe.execute()
        except RedisError as e:
            raise RepositoryError(str(e)) from e
        return [(doc_id, decode_hash(raw)) for doc_id, raw in zip(ids, rows) if raw]

    async def find_by(self, collection: str, field: str, value: Any) -> tuple[str, dict[str, Any]] | None:
        for doc_id, doc in await self.list(collection):
            if doc.get(field) == value:
                return doc_id, doc
        return None

    async def create(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        try:
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.delete(self._doc_key(collection, doc_id))
                if doc:
                    pipe.hset(self._doc_key(collection, doc_id), mapping=encode_fields(doc))
                pipe.sadd(self._ids_key(collection), doc_id)
                await pipe.execute()
        except RedisError as e:
            raise RepositoryError(str(e)) from e

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Set and delete fields of an existing document atomically. The existence check is WATCHed."""
        key = self._doc_key(collection, doc_id)
        to_set, to_delete = split_update(fields)
        try:
            for _ in range(UPDATE_RETRIES):
                async with self._r.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        if not await pipe.exists(key):
                            raise DocumentNotFoundError(collection, doc_id)
                        pipe.multi()
                        if to_set:
                            pipe.hset(key, mapping=encode_fields(to_set))
                        if to_delete:
                            pipe.hdel(key, *to_delete)
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.warning("Document %s changed during update, retrying", key)
            raise RepositoryError(f"Document {key} kept changing during update")
        except RedisError as e:
            raise RepositoryError(str(e)) from e
