"""Document-store contract used by the moderation engine.

Collections are addressed by slash-separated paths:

- ``posts``: top-level posts
- ``posts/<thread_id>/comments``: comments of one thread
- ``quarantine``: submissions judged violating
- ``reports``: reader reports against posts

Creates are durable on return, deletes of a missing document raise
`DocumentNotFound`, and `watch` yields an eventually consistent view: a snapshot
of existing documents followed by incremental changes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Optional, Protocol

from murmur.core.errors import NotFoundError

Direction = Literal["asc", "desc"]

POSTS = "posts"
QUARANTINE = "quarantine"
REPORTS = "reports"


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder replaced by the store's clock at write time.
SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentNotFound(NotFoundError):
    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__()


@dataclass(frozen=True)
class CollectionRef:
    kind: str  # posts|comments|quarantine|reports
    parent_id: Optional[str] = None


def comments_of(thread_id: str) -> str:
    return f"{POSTS}/{thread_id}/comments"


def posts_collection(parent_thread_id: Optional[str]) -> str:
    return comments_of(parent_thread_id) if parent_thread_id else POSTS


def parse_collection(path: str) -> CollectionRef:
    parts = [p for p in path.strip("/").split("/") if p]
    if parts == [POSTS]:
        return CollectionRef("posts")
    if len(parts) == 3 and parts[0] == POSTS and parts[2] == "comments":
        return CollectionRef("comments", parts[1])
    if parts == [QUARANTINE]:
        return CollectionRef("quarantine")
    if parts == [REPORTS]:
        return CollectionRef("reports")
    raise ValueError(f"unknown collection path: {path!r}")


@dataclass(frozen=True)
class ChangeEvent:
    kind: Literal["added", "removed"]
    collection: str
    document: dict

    def to_dict(self) -> dict:
        return {"kind": self.kind, "collection": self.collection, "document": self.document}

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeEvent":
        return cls(kind=data["kind"], collection=data["collection"], document=data["document"])


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class DocumentStore(Protocol):
    async def create(self, collection: str, document: dict[str, Any]) -> str: ...

    async def get(self, collection: str, doc_id: str) -> dict: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def list_ordered(
        self, collection: str, order_field: str, direction: Direction = "desc", limit: Optional[int] = None
    ) -> list[dict]: ...

    async def watch(self, collection: str, order_field: str, direction: Direction = "desc") -> Subscription: ...
