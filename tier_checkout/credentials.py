import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from tier_checkout.errors import UpstreamAuthError

logger = structlog.get_logger(__name__)

# Refresh this long before the provider-reported expiry
EXPIRY_SKEW = timedelta(seconds=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessCredential:
    value: str
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at

    @classmethod
    def from_ttl(cls, value: str, expires_in: float, now: datetime) -> "AccessCredential":
        ttl = max(timedelta(seconds=expires_in) - EXPIRY_SKEW, timedelta(0))
        return cls(value=value, expires_at=now + ttl)


class CredentialCache:
    """Process-wide holder for the provider bearer token.

    Construct once per process and hand it to the lifecycle manager. The
    lock only guards the cached value; the exchange runs unlocked, so two
    concurrent misses may both exchange.
    """

    def __init__(self, provider, clock: Callable[[], datetime] = utcnow):
        self._provider = provider
        self._clock = clock
        self._lock = threading.Lock()
        self._credential: Optional[AccessCredential] = None

    def get_credential(self) -> AccessCredential:
        with self._lock:
            cached = self._credential
        if cached is not None and cached.is_live(self._clock()):
            return cached

        # Raises UpstreamAuthError
        credential = self._provider.exchange_credentials()
        logger.info("access_credential_refreshed", expires_at=credential.expires_at.isoformat())

        with self._lock:
            self._credential = credential

        if not credential.is_live(self._clock()):
            raise UpstreamAuthError("Provider issued an already expired credential")
        return credential

    def invalidate(self) -> None:
        with self._lock:
            self._credential = None
