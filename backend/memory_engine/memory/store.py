from __future__ import annotations

import json
import logging
import math
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memory_engine.db.models import MemoryRecord
from memory_engine.memory.types import (
    SCOPE_GLOBAL,
    SCOPE_PROJECT,
    Memory,
    ProjectSnapshot,
    ProjectStats,
    SessionHandle,
    SessionSummary,
)
from memory_engine.repos.memory_repo import MemoryRepo
from memory_engine.repos.session_repo import SessionRepo
from memory_engine.repos.summary_repo import SummaryRepo
from memory_engine.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

# Per context type: (scope, temporal_class, fade_rate).
TYPE_DEFAULTS: dict[str, tuple[str, str, float]] = {
    "personal": (SCOPE_GLOBAL, "eternal", 0.0),
    "philosophy": (SCOPE_GLOBAL, "eternal", 0.0),
    "breakthrough": (SCOPE_PROJECT, "eternal", 0.0),
    "milestone": (SCOPE_PROJECT, "eternal", 0.0),
    "decision": (SCOPE_PROJECT, "long_term", 0.0),
    "architecture": (SCOPE_PROJECT, "long_term", 0.01),
    "workflow": (SCOPE_PROJECT, "long_term", 0.02),
    "technical": (SCOPE_PROJECT, "medium_term", 0.03),
    "debug": (SCOPE_PROJECT, "medium_term", 0.03),
    "unresolved": (SCOPE_PROJECT, "medium_term", 0.05),
    "state": (SCOPE_PROJECT, "short_term", 0.1),
}
FALLBACK_DEFAULTS = (SCOPE_PROJECT, "medium_term", 0.03)
TEMPORAL_RELEVANCE_VALUES = frozenset({"persistent", "session", "temporary", "archived"})


class StoreError(RuntimeError):
    """Raised when the persistent store cannot complete an operation."""


class SessionNotFoundError(LookupError):
    """Raised when a session counter is updated before the session exists."""


class MemoryStore(ABC):
    """Persistence collaborator consumed by the memory engine.

    Retrieval only reads through this interface, apart from the session
    counter; the write methods serve curation results and curation actions.
    """

    @abstractmethod
    async def get_all_memories(self, project_id: str) -> list[Memory]:
        """Return the project-scoped memories of one project."""

    @abstractmethod
    async def get_global_memories(self) -> list[Memory]:
        """Return memories shared across all projects."""

    @abstractmethod
    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        """Return one memory by id."""

    @abstractmethod
    async def get_or_create_session(self, project_id: str, session_id: str) -> SessionHandle:
        """Resolve a session, creating it with a zero message count when unknown."""

    @abstractmethod
    async def increment_message_count(self, project_id: str, session_id: str) -> int:
        """Bump and return a session's message count."""

    @abstractmethod
    async def get_latest_summary(self, project_id: str) -> Optional[SessionSummary]:
        """Return the newest session summary of a project."""

    @abstractmethod
    async def get_latest_snapshot(self, project_id: str) -> Optional[ProjectSnapshot]:
        """Return the newest project snapshot."""

    @abstractmethod
    async def get_project_stats(self, project_id: str) -> ProjectStats:
        """Return memory and session counts for a project."""

    @abstractmethod
    async def get_personal_primer(self) -> Optional[str]:
        """Return the relationship primer text, if one was written."""

    @abstractmethod
    async def store_memory(
        self,
        project_id: str,
        session_id: str,
        raw: Mapping[str, Any],
        embedding: Optional[Sequence[float]] = None,
    ) -> str:
        """Normalize and persist one curated memory; return its id."""

    @abstractmethod
    async def store_session_summary(
        self, project_id: str, session_id: str, summary: str, interaction_tone: str = ""
    ) -> None:
        """Persist a session summary."""

    @abstractmethod
    async def store_project_snapshot(
        self, project_id: str, session_id: str, snapshot: Mapping[str, Any]
    ) -> None:
        """Persist a project snapshot."""

    @abstractmethod
    async def mark_first_session_completed(self, project_id: str, session_id: str) -> None:
        """Flag a session as having produced its first curation."""

    @abstractmethod
    async def set_personal_primer(self, content: str) -> None:
        """Replace the relationship primer."""

    @abstractmethod
    async def update_memory(
        self, memory_id: str, updates: Mapping[str, Any]
    ) -> Optional[list[str]]:
        """Apply curation actions; return updated field names or None if unknown."""


class SQLMemoryStore(MemoryStore):
    """SQLAlchemy-backed store; every call runs in its own transaction."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get_all_memories(self, project_id: str) -> list[Memory]:
        async with self._transaction() as db:
            records = await MemoryRepo(db).list_project_memories(project_id)
            return [memory_from_record(record) for record in records]

    async def get_global_memories(self) -> list[Memory]:
        async with self._transaction() as db:
            records = await MemoryRepo(db).list_global_memories()
            return [memory_from_record(record) for record in records]

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        async with self._transaction() as db:
            record = await MemoryRepo(db).get_memory(memory_id)
            return memory_from_record(record) if record else None

    async def get_or_create_session(self, project_id: str, session_id: str) -> SessionHandle:
        async with self._transaction() as db:
            repo = SessionRepo(db)
            existing = await repo.get_session(project_id, session_id)
            if existing:
                return SessionHandle(
                    is_new=False,
                    message_count=existing.message_count,
                    first_session_completed=existing.first_session_completed,
                )
            first_completed = await repo.any_first_session_completed(project_id)
            await repo.create_session(project_id, session_id)
            return SessionHandle(
                is_new=True, message_count=0, first_session_completed=first_completed
            )

    async def increment_message_count(self, project_id: str, session_id: str) -> int:
        async with self._transaction() as db:
            count = await SessionRepo(db).increment_message_count(project_id, session_id)
        if count is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return count

    async def get_latest_summary(self, project_id: str) -> Optional[SessionSummary]:
        async with self._transaction() as db:
            record = await SummaryRepo(db).latest_summary(project_id)
            if record is None:
                return None
            return SessionSummary(
                id=record.id,
                session_id=record.session_id,
                project_id=record.project_id,
                summary=record.summary,
                interaction_tone=record.interaction_tone,
                created_at=ensure_utc(record.created_at),
            )

    async def get_latest_snapshot(self, project_id: str) -> Optional[ProjectSnapshot]:
        async with self._transaction() as db:
            record = await SummaryRepo(db).latest_snapshot(project_id)
            if record is None:
                return None
            return ProjectSnapshot(
                id=record.id,
                session_id=record.session_id,
                project_id=record.project_id,
                current_phase=record.current_phase,
                recent_achievements=_load_strings(record.recent_achievements_json),
                active_challenges=_load_strings(record.active_challenges_json),
                next_steps=_load_strings(record.next_steps_json),
                created_at=ensure_utc(record.created_at),
            )

    async def get_project_stats(self, project_id: str) -> ProjectStats:
        async with self._transaction() as db:
            total, stale = await MemoryRepo(db).count_project_memories(project_id)
            session_repo = SessionRepo(db)
            total_sessions = await session_repo.count_sessions(project_id)
            latest = await session_repo.latest_session(project_id)
            return ProjectStats(
                total_memories=total,
                total_sessions=total_sessions,
                stale_memories=stale,
                latest_session=latest.session_id if latest else None,
            )

    async def get_personal_primer(self) -> Optional[str]:
        async with self._transaction() as db:
            record = await SummaryRepo(db).get_personal_primer()
            if record is None or not record.content.strip():
                return None
            return record.content

    async def store_memory(
        self,
        project_id: str,
        session_id: str,
        raw: Mapping[str, Any],
        embedding: Optional[Sequence[float]] = None,
    ) -> str:
        values = record_values(raw)
        memory_id = str(raw.get("id") or uuid.uuid4().hex)
        vector = [float(value) for value in embedding] if embedding else None
        async with self._transaction() as db:
            await MemoryRepo(db).add_memory(
                id=memory_id,
                project_id=project_id,
                session_id=session_id,
                embedding_json=(
                    json.dumps(vector, separators=(",", ":")) if vector else None
                ),
                embedding_dim=len(vector) if vector else None,
                **values,
            )
        return memory_id

    async def store_session_summary(
        self, project_id: str, session_id: str, summary: str, interaction_tone: str = ""
    ) -> None:
        async with self._transaction() as db:
            await SummaryRepo(db).add_summary(
                project_id=project_id,
                session_id=session_id,
                summary=summary,
                interaction_tone=interaction_tone,
            )

    async def store_project_snapshot(
        self, project_id: str, session_id: str, snapshot: Mapping[str, Any]
    ) -> None:
        async with self._transaction() as db:
            await SummaryRepo(db).add_snapshot(
                project_id=project_id,
                session_id=session_id,
                current_phase=str(snapshot.get("current_phase") or ""),
                recent_achievements=_coerce_strings(snapshot.get("recent_achievements")),
                active_challenges=_coerce_strings(snapshot.get("active_challenges")),
                next_steps=_coerce_strings(snapshot.get("next_steps")),
            )

    async def mark_first_session_completed(self, project_id: str, session_id: str) -> None:
        async with self._transaction() as db:
            await SessionRepo(db).mark_first_session_completed(project_id, session_id)

    async def set_personal_primer(self, content: str) -> None:
        async with self._transaction() as db:
            await SummaryRepo(db).upsert_personal_primer(content)

    async def update_memory(
        self, memory_id: str, updates: Mapping[str, Any]
    ) -> Optional[list[str]]:
        columns: dict[str, Any] = {}
        for name, value in updates.items():
            if value is None:
                continue
            if name in {"importance_weight", "confidence_score"}:
                columns[name] = clamp_unit(value, 0.5)
            elif name in {"semantic_tags", "trigger_phrases"}:
                columns[f"{name}_json"] = json.dumps(list(_coerce_strings(value)))
            else:
                columns[name] = bool(value)
        async with self._transaction() as db:
            changed = await MemoryRepo(db).update_memory(memory_id, columns)
        if changed is None:
            return None
        return [name.removesuffix("_json") for name in changed]

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as db:
                async with db.begin():
                    yield db
        except SQLAlchemyError as exc:
            raise StoreError("Memory store operation failed") from exc


def clamp_unit(value: Any, default: float) -> float:
    """Coerce to float in [0, 1]; non-numeric or NaN input yields ``default``."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, 0.0), 1.0)


def record_values(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize a loosely-typed curated memory into ``MemoryRecord`` columns.

    Applies context-type defaults for scope, temporal class and fade rate.
    """

    context_type = str(raw.get("context_type") or "general").strip().lower()
    default_scope, default_class, default_fade = TYPE_DEFAULTS.get(
        context_type, FALLBACK_DEFAULTS
    )
    scope = str(raw.get("scope") or default_scope).strip().lower()
    if scope not in {SCOPE_PROJECT, SCOPE_GLOBAL}:
        scope = default_scope
    temporal_relevance = str(raw.get("temporal_relevance") or "persistent").strip().lower()
    headline = str(raw.get("headline") or "").strip()
    return {
        "scope": scope,
        "headline": headline or None,
        "content": str(raw.get("content") or ""),
        "reasoning": str(raw.get("reasoning") or ""),
        "importance_weight": clamp_unit(raw.get("importance_weight", 0.5), 0.5),
        "confidence_score": clamp_unit(raw.get("confidence_score", 0.8), 0.8),
        "context_type": context_type,
        "temporal_relevance": temporal_relevance,
        "temporal_class": str(raw.get("temporal_class") or default_class),
        "fade_rate": _coerce_rate(raw.get("fade_rate"), default_fade),
        "knowledge_domain": str(raw.get("knowledge_domain") or raw.get("domain") or ""),
        "emotional_resonance": str(raw.get("emotional_resonance") or ""),
        "semantic_tags_json": json.dumps(list(_coerce_strings(raw.get("semantic_tags")))),
        "trigger_phrases_json": json.dumps(list(_coerce_strings(raw.get("trigger_phrases")))),
        "question_types_json": json.dumps(list(_coerce_strings(raw.get("question_types")))),
        "problem_solution_pair": bool(raw.get("problem_solution_pair", False)),
        "action_required": bool(raw.get("action_required", False)),
        "awaiting_implementation": bool(raw.get("awaiting_implementation", False)),
        "awaiting_decision": bool(raw.get("awaiting_decision", False)),
        "exclude_from_retrieval": bool(raw.get("exclude_from_retrieval", False)),
    }


def memory_from_record(record: MemoryRecord) -> Memory:
    """Build the typed ``Memory`` value object from a stored row."""

    return Memory(
        id=record.id,
        content=record.content or "",
        headline=(record.headline or "").strip() or None,
        importance_weight=clamp_unit(record.importance_weight, 0.5),
        confidence_score=clamp_unit(record.confidence_score, 0.8),
        context_type=record.context_type or "general",
        temporal_relevance=record.temporal_relevance or "persistent",
        temporal_class=record.temporal_class or "medium_term",
        fade_rate=float(record.fade_rate or 0.0),
        semantic_tags=_load_strings(record.semantic_tags_json),
        trigger_phrases=_load_strings(record.trigger_phrases_json),
        question_types=_load_strings(record.question_types_json),
        emotional_resonance=record.emotional_resonance or "",
        knowledge_domain=record.knowledge_domain or "",
        problem_solution_pair=bool(record.problem_solution_pair),
        action_required=bool(record.action_required),
        awaiting_implementation=bool(record.awaiting_implementation),
        awaiting_decision=bool(record.awaiting_decision),
        exclude_from_retrieval=bool(record.exclude_from_retrieval),
        scope=record.scope if record.scope in {SCOPE_PROJECT, SCOPE_GLOBAL} else SCOPE_PROJECT,
        project_id=record.project_id,
        session_id=record.session_id,
        reasoning=record.reasoning or "",
        embedding=_load_vector(record.embedding_json),
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
    )


def memory_from_mapping(raw: Mapping[str, Any]) -> Memory:
    """Build a ``Memory`` from a loosely-typed mapping (curation output, fixtures)."""

    values = record_values(raw)
    embedding = raw.get("embedding")
    vector: Optional[tuple[float, ...]] = None
    if isinstance(embedding, (list, tuple)) and embedding:
        try:
            vector = tuple(float(value) for value in embedding)
        except (TypeError, ValueError):
            vector = None
    return Memory(
        id=str(raw.get("id") or uuid.uuid4().hex),
        content=values["content"],
        headline=values["headline"],
        importance_weight=values["importance_weight"],
        confidence_score=values["confidence_score"],
        context_type=values["context_type"],
        temporal_relevance=values["temporal_relevance"],
        temporal_class=values["temporal_class"],
        fade_rate=values["fade_rate"],
        semantic_tags=_coerce_strings(raw.get("semantic_tags")),
        trigger_phrases=_coerce_strings(raw.get("trigger_phrases")),
        question_types=_coerce_strings(raw.get("question_types")),
        emotional_resonance=values["emotional_resonance"],
        knowledge_domain=values["knowledge_domain"],
        problem_solution_pair=values["problem_solution_pair"],
        action_required=values["action_required"],
        awaiting_implementation=values["awaiting_implementation"],
        awaiting_decision=values["awaiting_decision"],
        exclude_from_retrieval=values["exclude_from_retrieval"],
        scope=values["scope"],
        project_id=str(raw.get("project_id") or ""),
        session_id=str(raw.get("session_id") or ""),
        reasoning=values["reasoning"],
        embedding=vector,
        created_at=_parse_datetime(raw.get("created_at")),
        updated_at=_parse_datetime(raw.get("updated_at")),
    )


def _coerce_rate(value: Any, default: float) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(rate) or rate < 0 else rate


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    return ensure_utc(value) if isinstance(value, datetime) else None


def _coerce_strings(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def _load_strings(raw_json: Optional[str]) -> tuple[str, ...]:
    if not raw_json:
        return ()
    try:
        value = json.loads(raw_json)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed list column: %.60s", raw_json)
        return ()
    return _coerce_strings(value)


def _load_vector(raw_json: Optional[str]) -> Optional[tuple[float, ...]]:
    if not raw_json:
        return None
    try:
        value = json.loads(raw_json)
        vector = tuple(float(item) for item in value)
    except (json.JSONDecodeError, TypeError, ValueError):
        logger.warning("Ignoring malformed embedding column")
        return None
    return vector or None
