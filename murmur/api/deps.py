from __future__ import annotations
import hmac
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from murmur.core.backend import Backend, get_backend
from murmur.core.errors import AuthError, ForbiddenError
from murmur.core.settings import settings
from murmur.services.entities import Identity
from murmur.services.moderation import ModerationEngine

bearer = HTTPBearer(auto_error=False)

async def get_engine(backend: Backend = Depends(get_backend)) -> ModerationEngine:
    return backend.engine

async def get_current_identity(
    cred: HTTPAuthorizationCredentials | None = Depends(bearer),
    backend: Backend = Depends(get_backend),
) -> Identity:
    if cred is None:
        raise AuthError()
    return await backend.identity.verify(cred.credentials)

async def get_submitter(
    cred: HTTPAuthorizationCredentials | None = Depends(bearer),
    backend: Backend = Depends(get_backend),
) -> Identity:
    # Deployments with auth_mode=optional accept tokenless submissions.
    if cred is None and backend.allow_anonymous:
        return Identity.anonymous_subject()
    return await get_current_identity(cred, backend)

def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), settings.admin_review_token.encode()):
        raise ForbiddenError("Forbidden")
