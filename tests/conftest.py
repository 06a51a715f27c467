import base64
import os

# Settings are read at import time; these must be in place first.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ADMIN_REVIEW_TOKEN", "admin-token")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("CONTENT_ENC_KEY_B64", base64.b64encode(b"k" * 32).decode())

from typing import Optional  # noqa: E402

import pytest  # noqa: E402

from murmur.core.backend import Backend, build_engine, set_backend  # noqa: E402
from murmur.core.errors import ClassifierError  # noqa: E402
from murmur.core.settings import settings  # noqa: E402
from murmur.services.entities import ClassificationVerdict, Identity  # noqa: E402
from murmur.services.identity import JwtIdentityProvider, create_access_token  # noqa: E402
from murmur.services.store.memory import MemoryDocumentStore  # noqa: E402


class StubClassifier:
    """Returns a fixed verdict (or raises a fixed error) and counts calls."""

    def __init__(self, verdict: Optional[ClassificationVerdict] = None, error: Optional[ClassifierError] = None):
        self.verdict = verdict or ClassificationVerdict(is_violating=False)
        self.error = error
        self.calls: list[tuple[str, Optional[str]]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def classify(self, text: str, preferences: Optional[str] = None) -> ClassificationVerdict:
        self.calls.append((text, preferences))
        if self.error is not None:
            raise self.error
        return self.verdict


@pytest.fixture
def classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def engine(store, classifier):
    return build_engine(store, classifier, settings)


@pytest.fixture
def alice() -> Identity:
    return Identity(subject_id="u1", display_label="Alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(subject_id="u2", display_label="Bob")


@pytest.fixture
def backend(store, classifier, engine):
    b = Backend(
        store=store,
        classifier=classifier,
        identity=JwtIdentityProvider(settings.jwt_secret, settings.jwt_issuer),
        engine=engine,
    )
    set_backend(b)
    yield b
    set_backend(None)


@pytest.fixture
def auth():
    """Builds bearer headers for a subject."""

    def headers(sub: str, label: Optional[str] = None) -> dict:
        token = create_access_token(
            sub, settings.jwt_secret, settings.jwt_issuer, minutes=settings.access_token_minutes, label=label
        )
        return {"Authorization": f"Bearer {token}"}

    return headers
