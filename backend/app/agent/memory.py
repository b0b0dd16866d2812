"""
Per-user conversation memory: a ring buffer of the most recent messages.

Used for context boosting in the intent classifier and as LLM history.
Never persisted.
"""
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

DEFAULT_MAX_ENTRIES = 10


class ConversationMemory:
    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        idle_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_entries = max_entries
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._buffers: Dict[str, Deque[dict]] = {}

    def _is_idle(self, buffer: Deque[dict]) -> bool:
        return bool(buffer) and bool(self.idle_ttl_seconds) and (
            self._clock() - buffer[-1]["timestamp"] > self.idle_ttl_seconds
        )

    def _buffer(self, user_id, create: bool = False) -> Optional[Deque[dict]]:
        """The user's buffer; an idle one is dropped. Reads never create entries."""
        key = str(user_id)
        buffer = self._buffers.get(key)
        if buffer is not None and self._is_idle(buffer):
            del self._buffers[key]
            buffer = None
        if buffer is None and create:
            buffer = deque(maxlen=self.max_entries)
            self._buffers[key] = buffer
        return buffer

    def add(self, user_id, role: str, content: str) -> None:
        if role not in ("user", "assistant"):
            raise ValueError(f"role must be 'user' or 'assistant', got {role!r}")
        self._buffer(user_id, create=True).append({"role": role, "content": content, "timestamp": self._clock()})

    def history(self, user_id, limit: Optional[int] = None) -> List[dict]:
        entries = list(self._buffer(user_id) or ())
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def last_assistant_message(self, user_id) -> Optional[str]:
        for entry in reversed(self._buffer(user_id) or ()):
            if entry["role"] == "assistant":
                return entry["content"]
        return None

    def clear(self, user_id) -> None:
        self._buffers.pop(str(user_id), None)

    def purge_idle(self) -> int:
        """Drop every idle buffer. Returns how many were removed."""
        idle = [key for key, buffer in self._buffers.items() if self._is_idle(buffer)]
        for key in idle:
            del self._buffers[key]
        return len(idle)

    def user_count(self) -> int:
        return len(self._buffers)
