from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from memory_engine.db.models import ChatSession
from memory_engine.utils.time_utils import utc_now


class SessionRepo:
    """Repository for per-project conversation session counters."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_session(self, project_id: str, session_id: str) -> Optional[ChatSession]:
        """Fetch a session by project and external session ID."""

        result = await self._db.execute(
            select(ChatSession).where(
                ChatSession.project_id == project_id,
                ChatSession.session_id == session_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_session(self, project_id: str, session_id: str) -> ChatSession:
        """Persist a new session with a zero message count."""

        now = utc_now()
        session = ChatSession(
            id=uuid.uuid4().hex,
            project_id=project_id,
            session_id=session_id,
            message_count=0,
            first_session_completed=False,
            created_at=now,
            last_active=now,
        )
        self._db.add(session)
        await self._db.flush()
        return session

    async def any_first_session_completed(self, project_id: str) -> bool:
        result = await self._db.scalar(
            select(func.count()).select_from(ChatSession).where(
                ChatSession.project_id == project_id,
                ChatSession.first_session_completed.is_(True),
            )
        )
        return bool(result)

    async def increment_message_count(
        self, project_id: str, session_id: str
    ) -> Optional[int]:
        """Bump the message counter and return the new value."""

        session = await self.get_session(project_id, session_id)
        if not session:
            return None
        session.message_count += 1
        session.last_active = utc_now()
        await self._db.flush()
        return session.message_count

    async def mark_first_session_completed(self, project_id: str, session_id: str) -> None:
        session = await self.get_session(project_id, session_id)
        if not session:
            return
        session.first_session_completed = True
        await self._db.flush()

    async def count_sessions(self, project_id: str) -> int:
        result = await self._db.scalar(
            select(func.count()).select_from(ChatSession).where(
                ChatSession.project_id == project_id
            )
        )
        return int(result or 0)

    async def latest_session(self, project_id: str) -> Optional[ChatSession]:
        """Return the most recently active session for a project."""

        result = await self._db.execute(
            select(ChatSession)
            .where(ChatSession.project_id == project_id)
            .order_by(ChatSession.last_active.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
