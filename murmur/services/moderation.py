"""Moderation decision engine.

A submission moves through ``Received -> Validated -> Classified`` and ends
either ``Published`` (a Post in the public collection) or ``Quarantined`` (a
QuarantinedItem kept out of every feed). Validation and classifier failures
end it earlier with nothing written. Exactly one single-document create
happens per accepted submission, so no transaction is needed.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Optional, TypeVar

from murmur.core.errors import ClassifierError, ForbiddenError, MurmurError, PersistenceError, ValidationError
from murmur.core.logging import log
from murmur.services.classifier import Classifier
from murmur.services.entities import (
    ClassificationVerdict,
    Identity,
    Published,
    Quarantined,
    ReportReason,
    Submission,
    SubmissionOutcome,
)
from murmur.services.store.base import (
    POSTS,
    QUARANTINE,
    REPORTS,
    SERVER_TIMESTAMP,
    DocumentStore,
    posts_collection,
)
from murmur.services.validation import SubmissionValidator

T = TypeVar("T")

CLASSIFIER_UNAVAILABLE_REASON = "classifier_unavailable"


def _log_detached_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("detached store call failed", exc_info=exc)


class FailurePolicy(str, Enum):
    """What a submission becomes when the classifier itself fails."""

    REJECT = "reject"  # fail closed, nothing written
    QUARANTINE = "quarantine"  # fail closed, kept for manual review
    PUBLISH = "publish"  # fail open


class ModerationEngine:
    def __init__(
        self,
        store: DocumentStore,
        classifier: Classifier,
        validator: Optional[SubmissionValidator] = None,
        *,
        failure_policy: FailurePolicy = FailurePolicy.REJECT,
        persistence_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.validator = validator or SubmissionValidator()
        self.failure_policy = FailurePolicy(failure_policy)
        self.persistence_timeout = persistence_timeout

    async def _persist(self, op: Awaitable[T]) -> T:
        """Run a store call with a ceiling.

        The call is shielded: if the request is cancelled (client went away)
        the write still runs to completion. Only the timeout abandons it.
        """
        task = asyncio.ensure_future(op)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self.persistence_timeout)
        except asyncio.CancelledError:
            # Nobody awaits the write any more; its outcome only reaches the log.
            task.add_done_callback(_log_detached_failure)
            raise
        except asyncio.TimeoutError as e:
            task.cancel()
            log.error("store call timed out", extra={"timeout": self.persistence_timeout})
            raise PersistenceError() from e
        except MurmurError:
            raise
        except Exception as e:
            log.exception("store call failed")
            raise PersistenceError() from e

    async def _classify(self, content: str) -> ClassificationVerdict:
        try:
            return await self.classifier.classify(content)
        except ClassifierError as e:
            log.warning(
                "classifier failed",
                extra={"error": type(e).__name__, "policy": self.failure_policy.value},
            )
            if self.failure_policy is FailurePolicy.QUARANTINE:
                return ClassificationVerdict(is_violating=True, reason=CLASSIFIER_UNAVAILABLE_REASON)
            if self.failure_policy is FailurePolicy.PUBLISH:
                return ClassificationVerdict(is_violating=False)
            log.info("submission rejected", extra={"kind": "classifier"})
            raise

    async def submit(self, submission: Submission, identity: Identity) -> SubmissionOutcome:
        try:
            valid = self.validator.validate(submission)
        except ValidationError as e:
            log.info("submission rejected", extra={"author_id": identity.subject_id, "kind": e.kind.value})
            raise
        if valid.parent_thread_id:
            # Comments attach to an existing top-level post.
            await self._persist(self.store.get(POSTS, valid.parent_thread_id))

        verdict = await self._classify(valid.content)

        if verdict.is_violating:
            await self._persist(
                self.store.create(
                    QUARANTINE,
                    {
                        "content": valid.content,
                        "attachment_uri": valid.attachment_uri,
                        "author_id": identity.subject_id,
                        "author_label": identity.label,
                        "parent_thread_id": valid.parent_thread_id,
                        "reason": verdict.reason,
                        "flagged_at": SERVER_TIMESTAMP,
                    },
                )
            )
            log.info(
                "submission quarantined",
                extra={
                    "author_id": identity.subject_id,
                    "thread_id": valid.parent_thread_id,
                    "attachment_type": valid.attachment_type,
                },
            )
            return Quarantined(reason=verdict.reason)

        post_id = await self._persist(
            self.store.create(
                posts_collection(valid.parent_thread_id),
                {
                    "content": valid.content,
                    "attachment_uri": valid.attachment_uri,
                    "author_id": identity.subject_id,
                    "author_label": identity.label,
                    "parent_thread_id": valid.parent_thread_id,
                    "created_at": SERVER_TIMESTAMP,
                },
            )
        )
        log.info(
            "submission published",
            extra={
                "post_id": post_id,
                "author_id": identity.subject_id,
                "thread_id": valid.parent_thread_id,
                "attachment_type": valid.attachment_type,
            },
        )
        return Published(post_id=post_id)

    async def delete(self, post_id: str, identity: Identity, parent_thread_id: Optional[str] = None) -> str:
        collection = posts_collection(parent_thread_id)
        doc = await self._persist(self.store.get(collection, post_id))
        if identity.anonymous or doc.get("author_id") != identity.subject_id:
            log.info("delete refused", extra={"post_id": post_id, "subject_id": identity.subject_id})
            raise ForbiddenError()
        await self._persist(self.store.delete(collection, post_id))
        log.info("post deleted", extra={"post_id": post_id})
        return post_id

    async def screen(self, content: str, preferences: Optional[str] = None) -> ClassificationVerdict:
        """Classify text against a reader's preferences without storing anything."""
        self.validator.validate_content(content)
        return await self.classifier.classify(content, preferences)

    async def report(
        self,
        target_id: str,
        reason: ReportReason,
        identity: Identity,
        details: Optional[str] = None,
        parent_thread_id: Optional[str] = None,
    ) -> str:
        await self._persist(self.store.get(posts_collection(parent_thread_id), target_id))
        report_id = await self._persist(
            self.store.create(
                REPORTS,
                {
                    "target_id": target_id,
                    "parent_thread_id": parent_thread_id,
                    "reason": ReportReason(reason).value,
                    "details": details,
                    "reporter_id": identity.subject_id,
                    "created_at": SERVER_TIMESTAMP,
                },
            )
        )
        log.info("post reported", extra={"post_id": target_id, "reason": ReportReason(reason).value})
        return report_id

    async def get_post(self, post_id: str, parent_thread_id: Optional[str] = None) -> dict:
        return await self._persist(self.store.get(posts_collection(parent_thread_id), post_id))

    async def feed(self, limit: Optional[int] = None) -> list[dict]:
        return await self._persist(self.store.list_ordered(POSTS, "created_at", "desc", limit))

    async def comments(self, thread_id: str, limit: Optional[int] = None) -> list[dict]:
        return await self._persist(self.store.list_ordered(posts_collection(thread_id), "created_at", "asc", limit))

    async def watch(self, thread_id: Optional[str] = None):
        """Live listing of the feed, or of one thread's comments when `thread_id` is given."""
        direction = "asc" if thread_id else "desc"
        return await self._persist(self.store.watch(posts_collection(thread_id), "created_at", direction))

    async def quarantine(self, limit: Optional[int] = None) -> list[dict]:
        return await self._persist(self.store.list_ordered(QUARANTINE, "flagged_at", "desc", limit))

    async def reports(self, limit: Optional[int] = None) -> list[dict]:
        return await self._persist(self.store.list_ordered(REPORTS, "created_at", "desc", limit))
