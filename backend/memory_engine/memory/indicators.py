from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

_TECHNICAL_WORDS = ("bug", "error", "fix", "implement", "code", "function")
_BREAKTHROUGH_WORDS = ("idea", "realized", "discovered", "insight", "solution")
_PROJECT_WORDS = ("project", "building", "architecture", "system")
_PERSONAL_WORDS = ("dear friend", "thank", "appreciate", "feel")
_UNRESOLVED_WORDS = ("todo", "need to", "should", "must", "problem")
_DECISION_WORDS = ("decided", "chose", "will use", "approach", "strategy")

_CONTEXT_INDICATORS: dict[str, tuple[str, ...]] = {
    "technical_state": _TECHNICAL_WORDS,
    "technical": _TECHNICAL_WORDS,
    "debug": _TECHNICAL_WORDS,
    "breakthrough": _BREAKTHROUGH_WORDS,
    "project_context": _PROJECT_WORDS,
    "architecture": _PROJECT_WORDS,
    "state": _PROJECT_WORDS,
    "personal": _PERSONAL_WORDS,
    "unresolved": _UNRESOLVED_WORDS,
    "decision": _DECISION_WORDS,
}

_EMOTION_PATTERNS: dict[str, tuple[str, ...]] = {
    "joy": ("happy", "excited", "love", "wonderful", "great", "awesome"),
    "frustration": ("stuck", "confused", "help", "issue", "problem", "why"),
    "discovery": ("realized", "found", "discovered", "aha", "insight"),
    "gratitude": ("thank", "appreciate", "grateful", "dear friend"),
}

_PROBLEM_WORDS = ("error", "issue", "problem", "stuck", "help", "fix", "solve", "debug")

_STOPWORDS = frozenset(
    {
        "the",
        "is",
        "are",
        "was",
        "were",
        "to",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "for",
        "with",
        "about",
        "when",
        "how",
        "what",
        "why",
    }
)

_SITUATIONAL_MARKERS = (
    "when",
    "during",
    "while",
    "asking about",
    "working on",
    "debugging",
    "trying to",
)

_QUESTION_WORDS = ("how", "why", "what", "when", "where")

_TEMPORAL_SCORES: dict[str, float] = {
    "persistent": 0.8,
    "session": 0.6,
    "temporary": 0.3,
    "archived": 0.1,
}


@dataclass(frozen=True)
class KeywordBanks:
    """Keyword heuristics consulted by the relevance scorer.

    Every bank is a plain lookup table; swap an instance into
    ``RelevanceScorer`` to change the heuristics without touching the gate or
    the selection tiers.
    """

    context_indicators: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(_CONTEXT_INDICATORS))
    )
    emotion_patterns: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(_EMOTION_PATTERNS))
    )
    problem_words: tuple[str, ...] = _PROBLEM_WORDS
    stopwords: frozenset[str] = _STOPWORDS
    situational_markers: tuple[str, ...] = _SITUATIONAL_MARKERS
    question_words: tuple[str, ...] = _QUESTION_WORDS
    temporal_scores: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(_TEMPORAL_SCORES))
    )
    temporal_default: float = 0.5

    def context_words(self, context_type: str) -> tuple[str, ...]:
        return self.context_indicators.get(context_type, ())

    def emotion_words(self, emotion: str) -> tuple[str, ...]:
        return self.emotion_patterns.get(emotion.strip().lower(), ())

    def temporal_score(self, temporal_relevance: str) -> float:
        return self.temporal_scores.get(temporal_relevance, self.temporal_default)


DEFAULT_BANKS = KeywordBanks()
