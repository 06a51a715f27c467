from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from murmur.core.settings import settings

# IMPORTANT: for anonymity, avoid persisting IPs. Rate-limit keys live in limiter storage only.
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
