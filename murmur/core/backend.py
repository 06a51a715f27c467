"""Process-wide backend handle.

The store, classifier, identity provider and engine are assembled once per
process and live until it exits. Initialisation is lazy and double-checked
under an asyncio.Lock so concurrent first requests cannot build two handles.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from murmur.core.logging import log
from murmur.core.redis import get_redis
from murmur.core.settings import Settings, settings as default_settings
from murmur.db.session import create_all, make_engine, make_sessionmaker
from murmur.services.classifier import Classifier, GeminiClassifier
from murmur.services.crypto import ContentCrypto
from murmur.services.identity import IdentityProvider, JwtIdentityProvider
from murmur.services.moderation import FailurePolicy, ModerationEngine
from murmur.services.store.base import DocumentStore
from murmur.services.store.changes import ChangeHub, LocalChangeHub, RedisChangeHub
from murmur.services.store.memory import MemoryDocumentStore
from murmur.services.store.sql import SqlDocumentStore
from murmur.services.validation import SubmissionValidator


@dataclass
class Backend:
    store: DocumentStore
    classifier: Classifier
    identity: IdentityProvider
    engine: ModerationEngine
    allow_anonymous: bool = False


_backend: Optional[Backend] = None
_lock = asyncio.Lock()


def build_engine(store: DocumentStore, classifier: Classifier, cfg: Settings) -> ModerationEngine:
    validator = SubmissionValidator(
        max_length=cfg.max_content_length,
        max_attachment_bytes=cfg.max_attachment_bytes,
        image_types=cfg.allowed_image_types,
    )
    return ModerationEngine(
        store,
        classifier,
        validator,
        failure_policy=FailurePolicy(cfg.classifier_failure_policy),
        persistence_timeout=cfg.persistence_timeout_seconds,
    )


async def build_backend(cfg: Settings) -> Backend:
    hub: ChangeHub = RedisChangeHub(get_redis(cfg.redis_url)) if cfg.redis_url else LocalChangeHub()
    if cfg.database_url:
        db_engine = make_engine(cfg.database_url)
        if cfg.database_url.startswith("sqlite"):
            await create_all(db_engine)
        store: DocumentStore = SqlDocumentStore(make_sessionmaker(db_engine), ContentCrypto(cfg.content_enc_key_b64), hub)
    else:
        log.warning("DATABASE_URL not set; posts are kept in memory only")
        store = MemoryDocumentStore(hub)
    classifier = GeminiClassifier.from_settings(cfg)
    identity = JwtIdentityProvider(cfg.jwt_secret, cfg.jwt_issuer)
    return Backend(
        store=store,
        classifier=classifier,
        identity=identity,
        engine=build_engine(store, classifier, cfg),
        allow_anonymous=cfg.auth_mode == "optional",
    )


async def get_backend() -> Backend:
    global _backend
    if _backend is None:
        async with _lock:
            if _backend is None:
                _backend = await build_backend(default_settings)
                log.info("backend initialised", extra={"store": type(_backend.store).__name__})
    return _backend


def set_backend(backend: Optional[Backend]) -> None:
    global _backend
    _backend = backend
