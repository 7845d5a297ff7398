from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from memory_engine.memory.types import Memory
from memory_engine.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """In-memory state for one conversation session; never persisted."""

    session_id: str
    project_id: str
    started_at: datetime = field(default_factory=utc_now)
    message_count: int = 0
    injected_memory_ids: set[str] = field(default_factory=set)
    last_seen: float = 0.0


class SessionRegistry:
    """Engine-owned map of session id to state with idle TTL and LRU bounds.

    The registry is constructor-scoped: two engines never share sessions.
    Dropping an entry (eviction, restart) resets that session's dedup set.
    """

    def __init__(
        self,
        *,
        ttl_sec: float = 86400,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_sec = ttl_sec
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._sessions: OrderedDict[str, SessionState] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_or_create(self, session_id: str, project_id: str) -> SessionState:
        """Return the session's state, creating it lazily on first use."""

        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            state = self._sessions.get(session_id)
            if state is None:
                state = SessionState(session_id=session_id, project_id=project_id)
                self._sessions[session_id] = state
            else:
                self._sessions.move_to_end(session_id)
            state.last_seen = now
            while len(self._sessions) > self._max_entries:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("Evicted least recently used session state %s", evicted_id)
            return state

    def get(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            return self._sessions.get(session_id)

    def add_injected(self, session_id: str, memory_ids: Iterable[str]) -> None:
        """Union ids into the session's injected set under the registry lock."""

        ids = list(memory_ids)
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return
            state.injected_memory_ids.update(ids)

    def injected_ids(self, session_id: str) -> frozenset[str]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return frozenset()
            return frozenset(state.injected_memory_ids)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def _evict_expired(self, now: float) -> None:
        if self._ttl_sec <= 0:
            return
        expired = [
            session_id
            for session_id, state in self._sessions.items()
            if now - state.last_seen > self._ttl_sec
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info("Evicted %s idle session states", len(expired))


class SessionDeduplicator:
    """Keep a memory from surfacing twice within one session."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    def filter(self, session_id: str, memories: Iterable[Memory]) -> list[Memory]:
        """Remove already-injected memories before they reach the scorer."""

        injected = self._registry.injected_ids(session_id)
        return [memory for memory in memories if memory.id not in injected]

    def record(self, session_id: str, memory_ids: Iterable[str]) -> None:
        self._registry.add_injected(session_id, memory_ids)
