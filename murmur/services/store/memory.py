from __future__ import annotations

import copy
import uuid
from datetime import timedelta
from typing import Any, Optional

from murmur.services.store.base import (
    POSTS,
    SERVER_TIMESTAMP,
    ChangeEvent,
    Direction,
    DocumentNotFound,
    comments_of,
    parse_collection,
)
from murmur.services.store.changes import ChangeHub, LocalChangeHub, WatchSubscription, open_watch
from murmur.services.timestamps import TIMESTAMP_FIELDS, normalize_document, to_datetime, utcnow


class MemoryDocumentStore:
    """In-process document store.

    Used when no database is configured and as the store under test. Writes are
    stamped from a clock that never goes backwards, so two creates in the same
    microsecond still order deterministically.
    """

    def __init__(self, hub: Optional[ChangeHub] = None) -> None:
        self.hub = hub or LocalChangeHub()
        self._collections: dict[str, dict[str, dict]] = {}
        self._last_write = None

    def _tick(self):
        now = utcnow()
        if self._last_write is not None and now <= self._last_write:
            now = self._last_write + timedelta(microseconds=1)
        self._last_write = now
        return now

    async def create(self, collection: str, document: dict[str, Any]) -> str:
        parse_collection(collection)
        doc_id = str(uuid.uuid4())
        stamp = self._tick()
        stored = {k: (stamp if v is SERVER_TIMESTAMP else copy.deepcopy(v)) for k, v in document.items()}
        stored["id"] = doc_id
        self._collections.setdefault(collection, {})[doc_id] = stored
        await self.hub.publish(ChangeEvent("added", collection, normalize_document(stored)))
        return doc_id

    async def get(self, collection: str, doc_id: str) -> dict:
        parse_collection(collection)
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            raise DocumentNotFound(collection, doc_id)
        return normalize_document(copy.deepcopy(doc))

    async def delete(self, collection: str, doc_id: str) -> None:
        parse_collection(collection)
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFound(collection, doc_id)
        doc = docs.pop(doc_id)
        if collection == POSTS:
            # Comments go with their thread, as the SQL foreign key does.
            thread = comments_of(doc_id)
            for comment in self._collections.pop(thread, {}).values():
                await self.hub.publish(ChangeEvent("removed", thread, normalize_document(comment)))
        await self.hub.publish(ChangeEvent("removed", collection, normalize_document(doc)))

    async def list_ordered(
        self, collection: str, order_field: str, direction: Direction = "desc", limit: Optional[int] = None
    ) -> list[dict]:
        parse_collection(collection)
        docs = [d for d in self._collections.get(collection, {}).values() if d.get(order_field) is not None]
        key = (lambda d: to_datetime(d[order_field])) if order_field in TIMESTAMP_FIELDS else (lambda d: d[order_field])
        docs.sort(key=key, reverse=(direction == "desc"))
        if limit is not None:
            docs = docs[:limit]
        return [normalize_document(copy.deepcopy(d)) for d in docs]

    async def watch(self, collection: str, order_field: str, direction: Direction = "desc") -> WatchSubscription:
        parse_collection(collection)
        return await open_watch(self, self.hub, collection, order_field, direction)
