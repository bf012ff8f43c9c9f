"""Operator session tokens for the manual control endpoints.

A single operator credential pair comes from configuration. A successful
login issues an opaque bearer token that maps to a :class:`Principal` until it
expires. Tokens live in Redis (``SETEX``) when a client is available and in a
process-local table otherwise.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import redis.asyncio as redis
from redis.exceptions import RedisError

from vivero.config import Settings
from vivero.core.errors import StorageError, UnauthorizedError
from vivero.core.manual_control import Principal
from vivero.models.enums import AuthMethod

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Session:
    token: str
    principal: Principal

    @property
    def expires_at(self) -> datetime:
        assert self.principal.expires_at is not None
        return self.principal.expires_at


class SessionService:
    _KEY_PREFIX = "vivero:session:"

    def __init__(
        self,
        *,
        operator_email: str,
        operator_password: str,
        ttl: timedelta,
        redis_client: redis.Redis | None = None,
    ) -> None:
        self._email = operator_email.strip().lower()
        self._password = operator_password
        self._ttl = ttl
        self._redis = redis_client
        self._local: dict[str, Principal] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, redis_client: redis.Redis | None = None
    ) -> SessionService:
        return cls(
            operator_email=settings.operator_email,
            operator_password=settings.operator_password,
            ttl=timedelta(minutes=settings.session_ttl_minutes),
            redis_client=redis_client,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._email and self._password)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> Session:
        if not self.enabled:
            raise UnauthorizedError("Operator login is not configured")
        email_ok = secrets.compare_digest(email.strip().lower().encode(), self._email.encode())
        password_ok = secrets.compare_digest(password.encode(), self._password.encode())
        if not (email_ok and password_ok):
            logger.warning("Rejected operator login for %s", email)
            raise UnauthorizedError("Invalid credentials")

        token = secrets.token_urlsafe(32)
        principal = Principal(
            subject=self._email,
            method=AuthMethod.session,
            expires_at=_utc_now() + self._ttl,
        )
        await self._save(token, principal)
        logger.info("Operator %s logged in", self._email)
        return Session(token=token, principal=principal)

    async def verify(self, token: str | None) -> Principal | None:
        if not token:
            return None
        principal = await self._load(token)
        if principal is None or not principal.is_active():
            return None
        return principal

    async def logout(self, token: str) -> bool:
        if self._redis is not None:
            try:
                return bool(await self._redis.delete(self._KEY_PREFIX + token))
            except (RedisError, OSError) as exc:
                raise StorageError("Failed to delete session") from exc
        return self._local.pop(token, None) is not None

    async def purge_expired(self) -> int:
        """Drop expired local sessions; Redis expires its own keys."""
        now = _utc_now()
        expired = [token for token, p in self._local.items() if not p.is_active(now)]
        for token in expired:
            self._local.pop(token, None)
        if expired:
            logger.debug("Purged %d expired sessions", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------
    async def _save(self, token: str, principal: Principal) -> None:
        if self._redis is None:
            self._local[token] = principal
            return
        payload = json.dumps(
            {
                "subject": principal.subject,
                "expires_at": principal.expires_at.isoformat() if principal.expires_at else None,
            }
        )
        try:
            await self._redis.setex(
                self._KEY_PREFIX + token, int(self._ttl.total_seconds()), payload
            )
        except (RedisError, OSError) as exc:
            raise StorageError("Failed to store session") from exc

    async def _load(self, token: str) -> Principal | None:
        if self._redis is None:
            return self._local.get(token)
        try:
            raw = await self._redis.get(self._KEY_PREFIX + token)
        except (RedisError, OSError) as exc:
            raise StorageError("Failed to read session") from exc
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            expires_at = datetime.fromisoformat(data["expires_at"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed session record")
            return None
        return Principal(subject=data["subject"], method=AuthMethod.session, expires_at=expires_at)


__all__ = ["Session", "SessionService"]
