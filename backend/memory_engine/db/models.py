from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from memory_engine.db.base import Base
from memory_engine.utils.time_utils import utc_now


class MemoryRecord(Base):
    """Curated memory persisted for one project or shared globally."""

    __tablename__ = "memories"
    __table_args__ = (
        Index("ix_memories_project_scope", "project_id", "scope"),
        Index("ix_memories_scope", "scope"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    scope: Mapped[str] = mapped_column(String, nullable=False, default="project")
    headline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    importance_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    context_type: Mapped[str] = mapped_column(String, nullable=False, default="general")
    temporal_relevance: Mapped[str] = mapped_column(String, nullable=False, default="persistent")
    temporal_class: Mapped[str] = mapped_column(String, nullable=False, default="medium_term")
    fade_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.03)
    knowledge_domain: Mapped[str] = mapped_column(String, nullable=False, default="")
    emotional_resonance: Mapped[str] = mapped_column(String, nullable=False, default="")
    semantic_tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    trigger_phrases_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    question_types_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    problem_solution_pair: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    action_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    awaiting_implementation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    awaiting_decision: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exclude_from_retrieval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    embedding_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    embedding_dim: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class ChatSession(Base):
    """Conversation session tracked per project for message counting."""

    __tablename__ = "chat_sessions"
    __table_args__ = (
        UniqueConstraint("project_id", "session_id", name="uq_chat_session_project"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[str] = mapped_column(String, nullable=False)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_session_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    last_active: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class SessionSummaryRecord(Base):
    """High-level summary written by curation at the end of a session."""

    __tablename__ = "session_summaries"
    __table_args__ = (Index("ix_session_summaries_project", "project_id", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[str] = mapped_column(String, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    interaction_tone: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class ProjectSnapshotRecord(Base):
    """Point-in-time project status written by curation."""

    __tablename__ = "project_snapshots"
    __table_args__ = (Index("ix_project_snapshots_project", "project_id", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[str] = mapped_column(String, nullable=False)
    current_phase: Mapped[str] = mapped_column(Text, nullable=False, default="")
    recent_achievements_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    active_challenges_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    next_steps_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class PersonalPrimerRecord(Base):
    """Singleton relationship primer shown at the start of every session."""

    __tablename__ = "personal_primer"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
