"""
Session stores for in-progress payment-link flows.

One entry per user, keyed by Telegram user id. Entries expire after
`ttl_seconds` of inactivity (every write refreshes the clock). The store is
constructed once at startup and injected; nothing here is a module global.

Two backends share the same interface:
- InMemorySessionStore: single-process deployments and tests
- DatabaseSessionStore: conversation_states table, so any instance can resume
"""
import copy
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from app.models.conversation_state import ConversationState

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15 * 60


class InMemorySessionStore:
    def __init__(self, ttl_seconds: Optional[int] = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, dict]] = {}

    def _expired(self, touched_at: float) -> bool:
        return bool(self.ttl_seconds) and self._clock() - touched_at > self.ttl_seconds

    def get(self, user_id) -> Optional[dict]:
        key = str(user_id)
        entry = self._entries.get(key)
        if entry is None:
            return None
        touched_at, state = entry
        if self._expired(touched_at):
            logger.info(f"[Session] Expired flow for user {key}")
            del self._entries[key]
            return None
        return copy.deepcopy(state)

    def set(self, user_id, state: dict) -> None:
        self._entries[str(user_id)] = (self._clock(), copy.deepcopy(state))

    def delete(self, user_id) -> bool:
        return self._entries.pop(str(user_id), None) is not None

    def purge_expired(self) -> int:
        stale = [key for key, (touched_at, _) in self._entries.items() if self._expired(touched_at)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self):
        return len(self._entries)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseSessionStore:
    """Persists flow state in conversation_states using short-lived sessions."""

    def __init__(
        self,
        session_factory,
        ttl_seconds: Optional[int] = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _expired(self, updated_at: datetime) -> bool:
        if not self.ttl_seconds or updated_at is None:
            return False
        if updated_at.tzinfo is None:
            # SQLite drops tzinfo
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return self._clock() - updated_at > timedelta(seconds=self.ttl_seconds)

    def get(self, user_id) -> Optional[dict]:
        db = self.session_factory()
        try:
            record = db.query(ConversationState).filter(ConversationState.user_id == str(user_id)).first()
            if not record:
                return None
            if self._expired(record.updated_at):
                logger.info(f"[Session] Expired flow for user {user_id}")
                db.delete(record)
                db.commit()
                return None
            payload = dict(record.payload or {})
            payload["step"] = record.step
            return payload
        finally:
            db.close()

    def set(self, user_id, state: dict) -> None:
        db = self.session_factory()
        try:
            record = db.query(ConversationState).filter(ConversationState.user_id == str(user_id)).first()
            if record:
                record.step = state["step"]
                record.payload = copy.deepcopy(state)
                record.updated_at = self._clock()
            else:
                db.add(ConversationState(
                    user_id=str(user_id),
                    step=state["step"],
                    payload=copy.deepcopy(state),
                    updated_at=self._clock(),
                ))
            db.commit()
        finally:
            db.close()

    def delete(self, user_id) -> bool:
        db = self.session_factory()
        try:
            deleted = db.query(ConversationState).filter(ConversationState.user_id == str(user_id)).delete()
            db.commit()
            return bool(deleted)
        finally:
            db.close()

    def purge_expired(self) -> int:
        if not self.ttl_seconds:
            return 0
        cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
        db = self.session_factory()
        try:
            deleted = db.query(ConversationState).filter(ConversationState.updated_at < cutoff).delete()
            db.commit()
            return deleted
        finally:
            db.close()
