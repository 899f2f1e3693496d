"""CSRF protection for the authorization round trip (RFC 6749 section 10.12).

A fresh nonce is issued with every challenge. It travels inside the protected
state, together with its issue time, and in a short-lived HttpOnly cookie. The
callback is accepted when both copies match and the nonce is younger than the
cookie lifetime, so any worker holding the state secret can validate it.

A :class:`CorrelationStore` may additionally record every nonce server-side;
records are consumed on validation, so each nonce is accepted at most once even
if the cookie is replayed.
"""

import asyncio
import hmac
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

from fastapi_bluejeans.consts import DEFAULT_CORRELATION_TTL_SECONDS
from fastapi_bluejeans.state import AuthorizationRequestState

logger = logging.getLogger(__name__)


@dataclass
class CorrelationRecord:
    token: str
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None
    ttl_seconds: int = DEFAULT_CORRELATION_TTL_SECONDS

    def __post_init__(self):
        if self.expires_at is None:
            self.expires_at = self.created_at + self.ttl_seconds

    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class CorrelationStore(ABC):
    """Abstract base class for server-side correlation records."""

    @abstractmethod
    async def store(self, record: CorrelationRecord) -> None:
        """Store a freshly issued record."""
        pass

    @abstractmethod
    async def consume(self, token: str) -> Optional[CorrelationRecord]:
        """Remove and return the record for ``token``, if any."""
        pass

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Drop expired records and return how many were removed."""
        pass


class MemoryCorrelationStore(CorrelationStore):
    """In-process store; use a shared backend when running several workers."""

    def __init__(self):
        self.records: Dict[str, CorrelationRecord] = {}
        self._lock = asyncio.Lock()

    async def store(self, record: CorrelationRecord) -> None:
        async with self._lock:
            self.records[record.token] = record

    async def consume(self, token: str) -> Optional[CorrelationRecord]:
        async with self._lock:
            return self.records.pop(token, None)

    async def cleanup_expired(self) -> int:
        async with self._lock:
            expired = [k for k, v in self.records.items() if v.is_expired()]
            for key in expired:
                del self.records[key]
            return len(expired)


class CorrelationValidator:
    """Issues and checks the per-flow correlation nonce.

    ``cookie_secure`` of ``None`` marks the cookie ``Secure`` only for requests
    served over https.
    """

    TOKEN_BYTES = 32

    def __init__(
        self,
        cookie_name: str,
        store: Optional[CorrelationStore] = None,
        ttl_seconds: int = DEFAULT_CORRELATION_TTL_SECONDS,
        cookie_secure: Optional[bool] = None,
        cookie_samesite: str = "lax",
        cleanup_interval_seconds: int = 300,
    ):
        self.cookie_name = cookie_name
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.cookie_secure = cookie_secure
        self.cookie_samesite = cookie_samesite
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._last_cleanup = time.time()

    async def issue(self, state: AuthorizationRequestState) -> str:
        """Generate a nonce and stash it, with its issue time, in ``state``."""
        token = secrets.token_urlsafe(self.TOKEN_BYTES)
        if self.store is not None:
            await self._periodic_cleanup()
            await self.store.store(CorrelationRecord(token=token, ttl_seconds=self.ttl_seconds))
        state.correlation_token = token
        state.issued_at = int(time.time())
        return token

    async def validate(self, request: Request, state: AuthorizationRequestState) -> bool:
        """Check the nonce of ``state`` against the cookie and consume it.

        Never raises; every failure is reported as ``False``.
        """
        token = state.correlation_token
        state.correlation_token = None
        if not token:
            logger.warning("Correlation token missing from state")
            return False

        record = None
        if self.store is not None:
            await self._periodic_cleanup()
            record = await self.store.consume(token)
        cookie = request.cookies.get(self.cookie_name)
        if not cookie:
            logger.warning(f"Correlation cookie {self.cookie_name} not found")
            return False
        if not hmac.compare_digest(cookie.encode("utf-8"), token.encode("utf-8")):
            logger.warning("Correlation cookie does not match state")
            return False
        if state.issued_at is None or time.time() > state.issued_at + self.ttl_seconds:
            logger.warning("Correlation token expired")
            return False
        if self.store is not None:
            if record is None:
                logger.warning("Correlation token unknown or already used")
                return False
            if record.is_expired():
                logger.warning("Correlation token expired")
                return False
        return True

    def is_secure(self, request: Optional[Request] = None) -> bool:
        if self.cookie_secure is not None:
            return self.cookie_secure
        return request is None or request.url.scheme == "https"

    def set_cookie(
        self,
        response: Response,
        token: str,
        path: str = "/",
        request: Optional[Request] = None,
    ) -> None:
        response.set_cookie(
            self.cookie_name,
            token,
            max_age=self.ttl_seconds,
            path=path,
            secure=self.is_secure(request),
            httponly=True,
            samesite=self.cookie_samesite,
        )

    def delete_cookie(
        self, response: Response, path: str = "/", request: Optional[Request] = None
    ) -> None:
        response.delete_cookie(
            self.cookie_name,
            path=path,
            secure=self.is_secure(request),
            httponly=True,
            samesite=self.cookie_samesite,
        )

    async def _periodic_cleanup(self) -> None:
        current_time = time.time()
        if current_time - self._last_cleanup > self.cleanup_interval_seconds:
            await self.store.cleanup_expired()
            self._last_cleanup = current_time
