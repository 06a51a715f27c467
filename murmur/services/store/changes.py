"""Change fan-out for live listings.

Stores publish an event after every successful create or delete. A single
process can use `LocalChangeHub`; several API workers share changes through
`RedisChangeHub`, which relays events over one pub/sub channel per collection.
"""
from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from typing import Protocol

import redis.asyncio as aioredis

from murmur.core.logging import log
from murmur.services.store.base import ChangeEvent, Direction, Subscription

_CLOSED = object()


class ChangeHub(Protocol):
    async def publish(self, event: ChangeEvent) -> None: ...

    async def subscribe(self, collection: str) -> Subscription: ...


class QueueSubscription:
    def __init__(self, hub: "LocalChangeHub", collection: str) -> None:
        self._hub = hub
        self.collection = collection
        self.queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self.queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._hub._discard(self)
            self.queue.put_nowait(_CLOSED)


class LocalChangeHub:
    def __init__(self) -> None:
        self._subs: dict[str, set[QueueSubscription]] = defaultdict(set)

    async def publish(self, event: ChangeEvent) -> None:
        for sub in list(self._subs.get(event.collection, ())):
            sub.queue.put_nowait(event)

    async def subscribe(self, collection: str) -> QueueSubscription:
        sub = QueueSubscription(self, collection)
        self._subs[collection].add(sub)
        return sub

    def subscriber_count(self, collection: str) -> int:
        return len(self._subs.get(collection, ()))

    def _discard(self, sub: QueueSubscription) -> None:
        subs = self._subs.get(sub.collection)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._subs[sub.collection]


class RedisSubscription:
    def __init__(self, pubsub, poll_timeout: float = 1.0) -> None:
        self._pubsub = pubsub
        self._poll_timeout = poll_timeout
        self._closed = False

    def __aiter__(self) -> "RedisSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        while not self._closed:
            msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_timeout)
            if msg is None or msg.get("type") != "message":
                continue
            try:
                return ChangeEvent.from_dict(json.loads(msg["data"]))
            except (ValueError, KeyError, TypeError):
                log.warning("dropping malformed change event", extra={"channel": msg.get("channel")})
        raise StopAsyncIteration

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()


class RedisChangeHub:
    def __init__(self, client: aioredis.Redis, prefix: str = "murmur:changes:") -> None:
        self._redis = client
        self._prefix = prefix

    def _channel(self, collection: str) -> str:
        return f"{self._prefix}{collection}"

    async def publish(self, event: ChangeEvent) -> None:
        await self._redis.publish(self._channel(event.collection), json.dumps(event.to_dict()))

    async def subscribe(self, collection: str) -> RedisSubscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel(collection))
        return RedisSubscription(pubsub)


class WatchSubscription:
    """Snapshot of the collection as `added` events, then live changes.

    The hub subscription is opened before the snapshot is read, so a change
    racing the snapshot is never lost; an `added` event for a document already
    delivered in the snapshot is dropped.
    """

    def __init__(self, collection: str, snapshot: list[dict], changes: Subscription) -> None:
        self.collection = collection
        self._pending = list(snapshot)
        self._seen = {doc["id"] for doc in snapshot}
        self._changes = changes
        self._iter = changes.__aiter__()

    def __aiter__(self) -> "WatchSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._pending:
            return ChangeEvent("added", self.collection, self._pending.pop(0))
        while True:
            event = await self._iter.__anext__()
            doc_id = event.document.get("id")
            if event.kind == "added" and doc_id in self._seen:
                self._seen.discard(doc_id)
                continue
            self._seen.discard(doc_id)
            return event

    async def close(self) -> None:
        await self._changes.close()

    async def __aenter__(self) -> "WatchSubscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


async def open_watch(store, hub: ChangeHub, collection: str, order_field: str, direction: Direction) -> WatchSubscription:
    changes = await hub.subscribe(collection)
    try:
        snapshot = await store.list_ordered(collection, order_field, direction)
    except BaseException:
        await changes.close()
        raise
    return WatchSubscription(collection, snapshot, changes)

