from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from memory_engine.db.models import MemoryRecord
from memory_engine.utils.time_utils import utc_now

UPDATABLE_FIELDS = frozenset(
    {
        "importance_weight",
        "confidence_score",
        "exclude_from_retrieval",
        "action_required",
        "awaiting_implementation",
        "awaiting_decision",
        "semantic_tags_json",
        "trigger_phrases_json",
    }
)


class MemoryRepo:
    """Repository for curated memory persistence."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add_memory(self, **values: Any) -> MemoryRecord:
        """Insert a memory row built from already-normalized column values."""

        now = utc_now()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        record = MemoryRecord(**values)
        self._db.add(record)
        await self._db.flush()
        return record

    async def list_project_memories(self, project_id: str) -> list[MemoryRecord]:
        """List project-scoped memories for one project, oldest first."""

        result = await self._db.execute(
            select(MemoryRecord)
            .where(MemoryRecord.project_id == project_id, MemoryRecord.scope == "project")
            .order_by(MemoryRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_global_memories(self) -> list[MemoryRecord]:
        """List memories shared across every project."""

        result = await self._db.execute(
            select(MemoryRecord)
            .where(MemoryRecord.scope == "global")
            .order_by(MemoryRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        result = await self._db.execute(select(MemoryRecord).where(MemoryRecord.id == memory_id))
        return result.scalar_one_or_none()

    async def update_memory(
        self, memory_id: str, updates: dict[str, Any]
    ) -> Optional[list[str]]:
        """Apply whitelisted column updates; return changed field names or None if missing."""

        record = await self.get_memory(memory_id)
        if record is None:
            return None
        changed: list[str] = []
        for name, value in updates.items():
            if name not in UPDATABLE_FIELDS or value is None:
                continue
            setattr(record, name, value)
            changed.append(name)
        if changed:
            record.updated_at = utc_now()
            await self._db.flush()
        return changed

    async def count_project_memories(self, project_id: str) -> tuple[int, int]:
        """Return (total, without embedding) counts for a project's own memories."""

        total = await self._db.scalar(
            select(func.count()).select_from(MemoryRecord).where(
                MemoryRecord.project_id == project_id
            )
        )
        stale = await self._db.scalar(
            select(func.count()).select_from(MemoryRecord).where(
                MemoryRecord.project_id == project_id,
                MemoryRecord.embedding_json.is_(None),
            )
        )
        return int(total or 0), int(stale or 0)
