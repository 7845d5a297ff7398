from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memory_engine.db.models import (
    PersonalPrimerRecord,
    ProjectSnapshotRecord,
    SessionSummaryRecord,
)
from memory_engine.utils.time_utils import utc_now

PERSONAL_PRIMER_ID = "personal-primer"


class SummaryRepo:
    """Repository for session summaries, project snapshots and the personal primer."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add_summary(
        self,
        *,
        project_id: str,
        session_id: str,
        summary: str,
        interaction_tone: str = "",
    ) -> SessionSummaryRecord:
        record = SessionSummaryRecord(
            id=uuid.uuid4().hex,
            project_id=project_id,
            session_id=session_id,
            summary=summary,
            interaction_tone=interaction_tone,
            created_at=utc_now(),
        )
        self._db.add(record)
        await self._db.flush()
        return record

    async def latest_summary(self, project_id: str) -> Optional[SessionSummaryRecord]:
        result = await self._db.execute(
            select(SessionSummaryRecord)
            .where(SessionSummaryRecord.project_id == project_id)
            .order_by(SessionSummaryRecord.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_snapshot(
        self,
        *,
        project_id: str,
        session_id: str,
        current_phase: str,
        recent_achievements: Sequence[str],
        active_challenges: Sequence[str],
        next_steps: Sequence[str],
    ) -> ProjectSnapshotRecord:
        record = ProjectSnapshotRecord(
            id=uuid.uuid4().hex,
            project_id=project_id,
            session_id=session_id,
            current_phase=current_phase,
            recent_achievements_json=_dump_list(recent_achievements),
            active_challenges_json=_dump_list(active_challenges),
            next_steps_json=_dump_list(next_steps),
            created_at=utc_now(),
        )
        self._db.add(record)
        await self._db.flush()
        return record

    async def latest_snapshot(self, project_id: str) -> Optional[ProjectSnapshotRecord]:
        result = await self._db.execute(
            select(ProjectSnapshotRecord)
            .where(ProjectSnapshotRecord.project_id == project_id)
            .order_by(ProjectSnapshotRecord.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_personal_primer(self) -> Optional[PersonalPrimerRecord]:
        result = await self._db.execute(
            select(PersonalPrimerRecord).where(PersonalPrimerRecord.id == PERSONAL_PRIMER_ID)
        )
        return result.scalar_one_or_none()

    async def upsert_personal_primer(self, content: str) -> PersonalPrimerRecord:
        existing = await self.get_personal_primer()
        if existing:
            existing.content = content
            existing.updated_at = utc_now()
            await self._db.flush()
            return existing

        record = PersonalPrimerRecord(
            id=PERSONAL_PRIMER_ID, content=content, updated_at=utc_now()
        )
        self._db.add(record)
        await self._db.flush()
        return record


def _dump_list(values: Sequence[str]) -> str:
    return json.dumps([str(item) for item in values], ensure_ascii=False)
