from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from memory_engine.memory.types import RetrievalMode
from memory_engine.schemas.common import APIModel, SuccessResponse


class ContextRequestPayload(APIModel):
    """Payload for retrieving context for the current user message."""

    session_id: str = Field(min_length=1, max_length=200)
    project_id: str = Field(min_length=1, max_length=200)
    current_message: str = Field(default="")
    max_memories: Optional[int] = Field(default=None, ge=1, le=50)
    mode: RetrievalMode = Field(default=RetrievalMode.NORMAL)


class ContextMemoryItem(APIModel):
    id: str
    short_id: str
    headline: Optional[str] = None
    content: str
    context_type: str
    scope: str
    score: float
    relevance_score: float
    value_score: float
    reasoning: str


class ContextResponse(SuccessResponse):
    session_id: str
    context_text: str
    has_memories: bool
    memories_count: int
    has_primer: bool
    mode: RetrievalMode
    memories: List[ContextMemoryItem] = Field(default_factory=list)


class ProcessRequest(APIModel):
    """Payload for counting one processed message."""

    session_id: str = Field(min_length=1, max_length=200)
    project_id: str = Field(min_length=1, max_length=200)


class ProcessResponse(SuccessResponse):
    message_count: int


class CuratedMemoryPayload(APIModel):
    """One memory produced by the external curation pipeline."""

    headline: Optional[str] = Field(default=None, max_length=500)
    content: str = Field(min_length=1)
    reasoning: str = Field(default="")
    importance_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_score: float = Field(default=0.8, ge=0.0, le=1.0)
    context_type: str = Field(default="general", max_length=50)
    temporal_relevance: str = Field(default="persistent", max_length=20)
    temporal_class: Optional[str] = Field(default=None, max_length=20)
    fade_rate: Optional[float] = Field(default=None, ge=0.0)
    scope: Optional[str] = Field(default=None, pattern="^(project|global)$")
    semantic_tags: List[str] = Field(default_factory=list)
    trigger_phrases: List[str] = Field(default_factory=list)
    question_types: List[str] = Field(default_factory=list)
    emotional_resonance: str = Field(default="")
    knowledge_domain: str = Field(default="")
    problem_solution_pair: bool = False
    action_required: bool = False
    awaiting_implementation: bool = False
    awaiting_decision: bool = False
    exclude_from_retrieval: bool = False


class ProjectSnapshotPayload(APIModel):
    current_phase: str = Field(default="")
    recent_achievements: List[str] = Field(default_factory=list)
    active_challenges: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)


class CurationRequest(APIModel):
    """Curation result for one finished session."""

    session_id: str = Field(min_length=1, max_length=200)
    project_id: str = Field(min_length=1, max_length=200)
    session_summary: str = Field(default="")
    interaction_tone: str = Field(default="", max_length=200)
    project_snapshot: Optional[ProjectSnapshotPayload] = Field(default=None)
    memories: List[CuratedMemoryPayload] = Field(default_factory=list)


class CurationResponse(SuccessResponse):
    memories_stored: int


class ExpandedMemoryItem(APIModel):
    id: str
    short_id: str
    headline: Optional[str] = None
    content: str
    context_type: str
    scope: str
    importance_weight: float


class ExpandResponse(SuccessResponse):
    memories: List[ExpandedMemoryItem] = Field(default_factory=list)


class StatsResponse(SuccessResponse):
    total_memories: int
    total_sessions: int
    stale_memories: int
    latest_session: Optional[str] = None


class MemoryUpdatePayload(APIModel):
    """Curation actions applied to one stored memory."""

    importance_weight: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    exclude_from_retrieval: Optional[bool] = None
    action_required: Optional[bool] = None
    awaiting_implementation: Optional[bool] = None
    awaiting_decision: Optional[bool] = None
    semantic_tags: Optional[List[str]] = None
    trigger_phrases: Optional[List[str]] = None


class MemoryUpdateResponse(SuccessResponse):
    updated_fields: List[str] = Field(default_factory=list)


class PersonalPrimerRequest(APIModel):
    content: str = Field(max_length=20000)
