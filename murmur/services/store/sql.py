from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from murmur.core.errors import PersistenceError
from murmur.core.logging import log
from murmur.models import ModerationReport, Post, QuarantinedItem
from murmur.services.crypto import ContentCrypto
from murmur.services.store.base import (
    SERVER_TIMESTAMP,
    ChangeEvent,
    CollectionRef,
    Direction,
    DocumentNotFound,
    comments_of,
    parse_collection,
)
from murmur.services.store.changes import ChangeHub, LocalChangeHub, WatchSubscription, open_watch
from murmur.services.timestamps import normalize_document, to_datetime, utcnow

_MODELS = {
    "posts": Post,
    "comments": Post,
    "quarantine": QuarantinedItem,
    "reports": ModerationReport,
}

_ORDER_COLUMNS = {
    Post: {"created_at": Post.created_at},
    QuarantinedItem: {"flagged_at": QuarantinedItem.flagged_at},
    ModerationReport: {"created_at": ModerationReport.created_at},
}


class SqlDocumentStore:
    """Document-store contract over the relational schema.

    Each collection path maps onto a table, comments being post rows scoped by
    ``parent_thread_id``. Post and quarantined bodies are encrypted at rest.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        crypto: ContentCrypto,
        hub: Optional[ChangeHub] = None,
    ) -> None:
        self._sessions = sessions
        self._crypto = crypto
        self.hub = hub or LocalChangeHub()

    # -- row mapping -------------------------------------------------------

    def _to_row(self, ref: CollectionRef, doc: dict[str, Any], doc_id: str):
        now = utcnow()

        def stamp(value):
            return now if value is SERVER_TIMESTAMP or value is None else to_datetime(value)

        if ref.kind in ("posts", "comments"):
            ct, nonce = self._crypto.encrypt_text(doc["content"])
            return Post(
                id=doc_id,
                parent_thread_id=ref.parent_id,
                author_id=doc["author_id"],
                author_label=doc["author_label"],
                body_ciphertext=ct,
                body_nonce=nonce,
                attachment_uri=doc.get("attachment_uri"),
                created_at=stamp(doc.get("created_at")),
            )
        if ref.kind == "quarantine":
            ct, nonce = self._crypto.encrypt_text(doc["content"])
            return QuarantinedItem(
                id=doc_id,
                parent_thread_id=doc.get("parent_thread_id"),
                author_id=doc["author_id"],
                author_label=doc["author_label"],
                body_ciphertext=ct,
                body_nonce=nonce,
                attachment_uri=doc.get("attachment_uri"),
                reason=doc.get("reason") or "",
                flagged_at=stamp(doc.get("flagged_at")),
            )
        return ModerationReport(
            id=doc_id,
            reporter_id=doc["reporter_id"],
            target_id=doc["target_id"],
            parent_thread_id=doc.get("parent_thread_id"),
            reason=doc["reason"],
            details=doc.get("details"),
            created_at=stamp(doc.get("created_at")),
        )

    def _to_doc(self, row) -> dict:
        if isinstance(row, Post):
            doc = {
                "id": row.id,
                "content": self._crypto.decrypt_text(row.body_ciphertext, row.body_nonce),
                "attachment_uri": row.attachment_uri,
                "author_id": row.author_id,
                "author_label": row.author_label,
                "created_at": row.created_at,
                "parent_thread_id": row.parent_thread_id,
            }
        elif isinstance(row, QuarantinedItem):
            doc = {
                "id": row.id,
                "content": self._crypto.decrypt_text(row.body_ciphertext, row.body_nonce),
                "attachment_uri": row.attachment_uri,
                "author_id": row.author_id,
                "author_label": row.author_label,
                "flagged_at": row.flagged_at,
                "reason": row.reason,
                "parent_thread_id": row.parent_thread_id,
            }
        else:
            doc = {
                "id": row.id,
                "reporter_id": row.reporter_id,
                "target_id": row.target_id,
                "parent_thread_id": row.parent_thread_id,
                "reason": row.reason,
                "details": row.details,
                "created_at": row.created_at,
            }
        return normalize_document(doc)

    def _scoped(self, stmt, model, ref: CollectionRef):
        if model is Post:
            if ref.kind == "comments":
                return stmt.where(Post.parent_thread_id == ref.parent_id)
            return stmt.where(Post.parent_thread_id.is_(None))
        return stmt

    # -- contract ----------------------------------------------------------

    async def create(self, collection: str, document: dict[str, Any]) -> str:
        ref = parse_collection(collection)
        doc_id = str(uuid.uuid4())
        row = self._to_row(ref, document, doc_id)
        try:
            async with self._sessions() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            log.error("store create failed", extra={"collection": collection, "error": repr(e)})
            raise PersistenceError() from e
        await self.hub.publish(ChangeEvent("added", collection, self._to_doc(row)))
        return doc_id

    async def _fetch(self, db: AsyncSession, collection: str, doc_id: str):
        ref = parse_collection(collection)
        model = _MODELS[ref.kind]
        stmt = self._scoped(select(model).where(model.id == doc_id), model, ref)
        row = (await db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise DocumentNotFound(collection, doc_id)
        return model, ref, row

    async def get(self, collection: str, doc_id: str) -> dict:
        try:
            async with self._sessions() as db:
                _, _, row = await self._fetch(db, collection, doc_id)
                return self._to_doc(row)
        except SQLAlchemyError as e:
            log.error("store get failed", extra={"collection": collection, "error": repr(e)})
            raise PersistenceError() from e

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            async with self._sessions() as db:
                model, ref, row = await self._fetch(db, collection, doc_id)
                doc = self._to_doc(row)
                # Comments go with a thread through ON DELETE CASCADE.
                cascaded = []
                if ref.kind == "posts":
                    replies = (await db.execute(select(Post).where(Post.parent_thread_id == doc_id))).scalars().all()
                    cascaded = [self._to_doc(r) for r in replies]
                stmt = self._scoped(delete(model).where(model.id == doc_id), model, ref)
                result = await db.execute(stmt)
                if result.rowcount == 0:
                    # Lost a race with another delete of the same document.
                    raise DocumentNotFound(collection, doc_id)
                await db.commit()
        except SQLAlchemyError as e:
            log.error("store delete failed", extra={"collection": collection, "error": repr(e)})
            raise PersistenceError() from e
        thread = comments_of(doc_id)
        for comment in cascaded:
            await self.hub.publish(ChangeEvent("removed", thread, comment))
        await self.hub.publish(ChangeEvent("removed", collection, doc))

    async def list_ordered(
        self, collection: str, order_field: str, direction: Direction = "desc", limit: Optional[int] = None
    ) -> list[dict]:
        ref = parse_collection(collection)
        model = _MODELS[ref.kind]
        column = _ORDER_COLUMNS[model].get(order_field)
        if column is None:
            raise ValueError(f"{collection!r} cannot be ordered by {order_field!r}")
        order = column.desc() if direction == "desc" else column.asc()
        tiebreak = model.id.desc() if direction == "desc" else model.id.asc()
        stmt = self._scoped(select(model), model, ref).order_by(order, tiebreak)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._sessions() as db:
                rows = (await db.execute(stmt)).scalars().all()
                return [self._to_doc(r) for r in rows]
        except SQLAlchemyError as e:
            log.error("store list failed", extra={"collection": collection, "error": repr(e)})
            raise PersistenceError() from e

    async def watch(self, collection: str, order_field: str, direction: Direction = "desc") -> WatchSubscription:
        parse_collection(collection)
        return await open_watch(self, self.hub, collection, order_field, direction)
