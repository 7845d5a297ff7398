from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional

SCOPE_PROJECT = "project"
SCOPE_GLOBAL = "global"


class RetrievalMode(str, Enum):
    """How a context request selects memories."""

    NORMAL = "normal"
    ACTION_ITEMS = "action_items"


@dataclass(frozen=True)
class Memory:
    """Read-only view of one stored memory.

    Instances are built at the store boundary (see ``memory.store``) where
    weights are clamped to [0, 1] and list fields are coerced to tuples, so
    scoring code can rely on the shapes declared here.
    """

    id: str
    content: str
    headline: Optional[str] = None
    importance_weight: float = 0.5
    confidence_score: float = 0.8
    context_type: str = "general"
    temporal_relevance: str = "persistent"
    temporal_class: str = "medium_term"
    fade_rate: float = 0.03
    semantic_tags: tuple[str, ...] = ()
    trigger_phrases: tuple[str, ...] = ()
    question_types: tuple[str, ...] = ()
    emotional_resonance: str = ""
    knowledge_domain: str = ""
    problem_solution_pair: bool = False
    action_required: bool = False
    awaiting_implementation: bool = False
    awaiting_decision: bool = False
    exclude_from_retrieval: bool = False
    scope: str = SCOPE_PROJECT
    project_id: str = ""
    session_id: str = ""
    reasoning: str = ""
    embedding: Optional[tuple[float, ...]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def short_id(self) -> str:
        return self.id[-6:]

    @property
    def has_headline(self) -> bool:
        return bool(self.headline and self.headline.strip())

    @property
    def is_global(self) -> bool:
        return self.scope == SCOPE_GLOBAL

    @property
    def is_action_item(self) -> bool:
        return (
            self.action_required
            or self.awaiting_implementation
            or self.awaiting_decision
            or self.context_type == "unresolved"
        )


@dataclass(frozen=True)
class ScoringComponents:
    """Per-dimension sub-scores, each in [0, 1]."""

    trigger: float = 0.0
    vector: float = 0.0
    importance: float = 0.0
    temporal: float = 0.0
    context: float = 0.0
    tags: float = 0.0
    question: float = 0.0
    emotion: float = 0.0
    problem: float = 0.0
    action: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {item.name: getattr(self, item.name) for item in fields(self)}

    def max_value(self) -> float:
        return max(self.as_dict().values())


@dataclass(frozen=True)
class ScoredCandidate:
    """A memory that passed the admission gate, with its score breakdown."""

    memory: Memory
    score: float
    relevance_score: float
    value_score: float
    reasoning: str
    components: ScoringComponents = field(default_factory=ScoringComponents)

    @classmethod
    def unscored(cls, memory: Memory, reasoning: str) -> "ScoredCandidate":
        """Wrap a memory selected without scoring (action-items mode)."""

        return cls(
            memory=memory,
            score=0.0,
            relevance_score=0.0,
            value_score=0.0,
            reasoning=reasoning,
        )


@dataclass(frozen=True)
class SessionContext:
    """Per-request session information handed to the scorer."""

    session_id: str
    project_id: str
    message_count: int


@dataclass(frozen=True)
class SessionSummary:
    id: str
    session_id: str
    project_id: str
    summary: str
    interaction_tone: str
    created_at: datetime


@dataclass(frozen=True)
class ProjectSnapshot:
    id: str
    session_id: str
    project_id: str
    current_phase: str
    recent_achievements: tuple[str, ...]
    active_challenges: tuple[str, ...]
    next_steps: tuple[str, ...]
    created_at: datetime


@dataclass(frozen=True)
class ProjectStats:
    total_memories: int
    total_sessions: int
    stale_memories: int
    latest_session: Optional[str]


@dataclass(frozen=True)
class SessionHandle:
    """Result of resolving a session against the store."""

    is_new: bool
    message_count: int
    first_session_completed: bool = False


@dataclass(frozen=True)
class SessionPrimer:
    """Session-opening summary shown instead of scored memories."""

    temporal_context: str
    current_datetime: str
    session_number: int
    personal_context: Optional[str] = None
    session_summary: Optional[str] = None
    project_status: Optional[str] = None


@dataclass(frozen=True)
class ContextRequest:
    session_id: str
    project_id: str
    current_message: str
    max_memories: Optional[int] = None
    mode: RetrievalMode = RetrievalMode.NORMAL


@dataclass(frozen=True)
class ContextResult:
    memories: list[ScoredCandidate]
    formatted_text: str
    primer: Optional[SessionPrimer] = None
    mode: RetrievalMode = RetrievalMode.NORMAL
