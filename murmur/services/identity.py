from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol
from jose import JWTError, jwt
from murmur.core.errors import AuthError
from murmur.services.entities import Identity

ALGORITHM = "HS256"


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> Identity: ...


class JwtIdentityProvider:
    """Verifies bearer tokens minted by the identity service (HS256, shared secret)."""

    def __init__(self, secret: str, issuer: str) -> None:
        self._secret = secret
        self._issuer = issuer

    def decode_token(self, token: str) -> dict:
        return jwt.decode(token, self._secret, algorithms=[ALGORITHM], issuer=self._issuer)

    async def verify(self, token: str) -> Identity:
        try:
            payload = self.decode_token(token)
        except JWTError:
            raise AuthError()
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub.strip():
            raise AuthError()
        label = payload.get("name") or payload.get("email")
        return Identity(subject_id=sub, display_label=label if isinstance(label, str) else None)


def create_access_token(
    sub: str,
    secret: str,
    issuer: str,
    minutes: int = 30,
    label: Optional[str] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "iss": issuer,
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    if label:
        payload["name"] = label
    return jwt.encode(payload, secret, algorithm=ALGORITHM)
