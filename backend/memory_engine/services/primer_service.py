from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Optional, TypeVar

from memory_engine.memory.store import MemoryStore
from memory_engine.memory.types import ProjectSnapshot, SessionPrimer
from memory_engine.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PrimerComposer:
    """Build the session-opening primer shown instead of scored memories.

    Reads the latest summary, snapshot, session count and (when enabled) the
    personal primer. A failed read leaves that part of the primer absent.
    """

    def __init__(
        self,
        store: MemoryStore,
        *,
        personal_memories_enabled: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._personal_memories_enabled = personal_memories_enabled
        self._clock = clock

    async def compose(self, project_id: str) -> SessionPrimer:
        now = self._clock()

        personal_context: Optional[str] = None
        if self._personal_memories_enabled:
            personal_context = await self._read(
                "personal primer", self._store.get_personal_primer
            )
        summary = await self._read(
            "session summary", lambda: self._store.get_latest_summary(project_id)
        )
        snapshot = await self._read(
            "project snapshot", lambda: self._store.get_latest_snapshot(project_id)
        )
        stats = await self._read(
            "project stats", lambda: self._store.get_project_stats(project_id)
        )

        temporal_context = ""
        if summary is not None:
            temporal_context = format_time_since(now - ensure_utc(summary.created_at))

        # The just-resolved session is already counted.
        session_number = max(1, stats.total_sessions if stats else 1)

        return SessionPrimer(
            temporal_context=temporal_context,
            current_datetime=format_current_datetime(now),
            session_number=session_number,
            personal_context=personal_context,
            session_summary=summary.summary if summary and summary.summary else None,
            project_status=(format_snapshot(snapshot) or None) if snapshot else None,
        )

    @staticmethod
    async def _read(label: str, loader: Callable[[], Awaitable[T]]) -> Optional[T]:
        try:
            return await loader()
        except Exception:  # noqa: BLE001
            logger.exception("Primer %s unavailable; continuing without it", label)
            return None


def format_time_since(elapsed: timedelta) -> str:
    """Bucket elapsed time; the largest nonzero unit wins."""

    minutes = max(0, int(elapsed.total_seconds() // 60))
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"Last session: {days} day{'' if days == 1 else 's'} ago"
    if hours > 0:
        return f"Last session: {hours} hour{'' if hours == 1 else 's'} ago"
    if minutes > 0:
        return f"Last session: {minutes} minute{'' if minutes == 1 else 's'} ago"
    return "Last session: just now"


def format_current_datetime(now: datetime) -> str:
    """Verbose local datetime, e.g. ``Monday, December 23, 2024 • 3:45 PM • EST``."""

    local = now.astimezone()
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    zone = local.strftime("%Z") or "UTC"
    return (
        f"{local:%A}, {local:%B} {local.day}, {local.year} • "
        f"{hour}:{local:%M} {meridiem} • {zone}"
    )


def format_snapshot(snapshot: ProjectSnapshot) -> str:
    parts: list[str] = []
    if snapshot.current_phase:
        parts.append(f"Phase: {snapshot.current_phase}")
    if snapshot.recent_achievements:
        parts.append(f"Recent: {', '.join(snapshot.recent_achievements)}")
    if snapshot.active_challenges:
        parts.append(f"Challenges: {', '.join(snapshot.active_challenges)}")
    if snapshot.next_steps:
        parts.append(f"Next: {', '.join(snapshot.next_steps)}")
    return " | ".join(parts)
