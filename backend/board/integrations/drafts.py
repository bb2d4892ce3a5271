"""Short-lived staged form data (sign-up and profile-edit drafts).

Drafts live in the cache under ``draft:{sid}:{name}``. The sid is a random
value kept in the caller's signed session cookie, so one caller can never
address another caller's drafts. Each entry is a versioned envelope with
an explicit ``expires_at`` that is checked on every load, independently of
the cache TTL.
"""

import logging
import secrets
from collections.abc import MutableMapping
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ValidationError

from .cache import CacheService

logger = logging.getLogger(__name__)

DRAFT_VERSION = 1
SESSION_KEY = "draft_sid"


class DraftEnvelope(BaseModel):
    version: int
    name: str
    owner_id: str | None = None
    expires_at: datetime
    data: dict


class DraftStore:
    def __init__(self, cache: CacheService, session: MutableMapping, ttl: int = 600) -> None:
        self._cache = cache
        self._session = session
        self._ttl = ttl

    def _sid(self, create: bool = False) -> str | None:
        sid = self._session.get(SESSION_KEY)
        if not sid and create:
            sid = secrets.token_urlsafe(16)
            self._session[SESSION_KEY] = sid
        return sid

    @staticmethod
    def _key(sid: str, name: str) -> str:
        return f"draft:{sid}:{name}"

    def save(self, name: str, data: dict, owner_id: str | None = None) -> DraftEnvelope:
        sid = self._sid(create=True)
        envelope = DraftEnvelope(
            version=DRAFT_VERSION,
            name=name,
            owner_id=owner_id,
            expires_at=datetime.now(UTC) + timedelta(seconds=self._ttl),
            data=data,
        )
        self._cache.set(self._key(sid, name), envelope.model_dump_json(), self._ttl)
        return envelope

    def load(self, name: str) -> DraftEnvelope | None:
        """Return the live draft, or None. Broken or expired entries are evicted."""
        sid = self._sid()
        if not sid:
            return None
        raw = self._cache.get(self._key(sid, name))
        if raw is None:
            return None

        try:
            envelope = DraftEnvelope.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unparseable %s draft", name)
            self.evict(name)
            return None

        if envelope.version != DRAFT_VERSION or envelope.name != name:
            logger.info("Discarding %s draft with version %s", name, envelope.version)
            self.evict(name)
            return None

        if envelope.expires_at <= datetime.now(UTC):
            self.evict(name)
            return None

        return envelope

    def evict(self, name: str) -> None:
        sid = self._sid()
        if sid:
            self._cache.delete(self._key(sid, name))
