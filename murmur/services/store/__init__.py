from murmur.services.store.base import (
    POSTS,
    QUARANTINE,
    REPORTS,
    SERVER_TIMESTAMP,
    ChangeEvent,
    CollectionRef,
    DocumentNotFound,
    DocumentStore,
    comments_of,
    posts_collection,
)
from murmur.services.store.memory import MemoryDocumentStore
from murmur.services.store.sql import SqlDocumentStore

__all__ = [
    "POSTS",
    "QUARANTINE",
    "REPORTS",
    "SERVER_TIMESTAMP",
    "ChangeEvent",
    "CollectionRef",
    "DocumentNotFound",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqlDocumentStore",
    "comments_of",
    "posts_collection",
]
