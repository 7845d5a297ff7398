from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from typing import Optional

from memory_engine.memory.indicators import DEFAULT_BANKS, KeywordBanks
from memory_engine.memory.types import (
    Memory,
    ScoredCandidate,
    ScoringComponents,
    SessionContext,
)

logger = logging.getLogger(__name__)

MIN_RELEVANCE_SCORE = 0.05
MIN_FINAL_SCORE = 0.30

_WORD_PATTERN = re.compile(r"[\w'-]+")
_COMPOUND_MIN_LEN = 4

_REASON_LABELS: tuple[tuple[str, str], ...] = (
    ("trigger", "trigger phrase match"),
    ("vector", "semantic similarity"),
    ("importance", "high importance"),
    ("question", "question type match"),
    ("context", "context alignment"),
    ("temporal", "temporal relevance"),
    ("tags", "tag match"),
    ("emotion", "emotional resonance"),
    ("problem", "problem-solution"),
    ("action", "action required"),
)


class RelevanceScorer:
    """Score memories against the current message along ten dimensions.

    The composite splits into a relevance part (trigger, vector, tags,
    question; max 0.30) and a value part (importance, temporal, context,
    confidence, emotion, problem, action; max 0.70). A memory is admitted
    only when the relevance part reaches ``MIN_RELEVANCE_SCORE`` and the
    total reaches ``MIN_FINAL_SCORE``.
    """

    def __init__(self, banks: KeywordBanks = DEFAULT_BANKS) -> None:
        self._banks = banks

    def score_all(
        self,
        memories: Iterable[Memory],
        message: str,
        query_embedding: Sequence[float],
        session: SessionContext,
    ) -> list[ScoredCandidate]:
        """Score every memory and return gate-passed candidates, best first."""

        scored: list[ScoredCandidate] = []
        total = 0
        for memory in memories:
            total += 1
            candidate = self.score(memory, message, query_embedding, session)
            if candidate is not None:
                scored.append(candidate)
        scored.sort(key=lambda item: item.score, reverse=True)
        logger.debug(
            "Scored %s memories for session %s: %s passed the gate",
            total,
            session.session_id,
            len(scored),
        )
        return scored

    def score(
        self,
        memory: Memory,
        message: str,
        query_embedding: Sequence[float],
        session: SessionContext,
    ) -> Optional[ScoredCandidate]:
        """Return the scored candidate, or ``None`` when the gate rejects it."""

        if memory.exclude_from_retrieval:
            return None

        message_lower = message.lower()
        components = ScoringComponents(
            trigger=self.score_trigger_phrases(message_lower, memory.trigger_phrases),
            vector=cosine_similarity(query_embedding, memory.embedding),
            importance=memory.importance_weight,
            temporal=self._banks.temporal_score(memory.temporal_relevance),
            context=self.score_context_alignment(message_lower, memory.context_type),
            tags=self.score_semantic_tags(message_lower, memory.semantic_tags),
            question=self.score_question_types(message_lower, memory.question_types),
            emotion=self.score_emotional_context(message_lower, memory.emotional_resonance),
            problem=self.score_problem_solution(message_lower, memory.problem_solution_pair),
            action=0.3 if memory.action_required else 0.0,
        )

        relevance_score = (
            components.trigger * 0.10
            + components.vector * 0.10
            + components.tags * 0.05
            + components.question * 0.05
        )
        value_score = (
            components.importance * 0.20
            + components.temporal * 0.10
            + components.context * 0.10
            + memory.confidence_score * 0.10
            + components.emotion * 0.10
            + components.problem * 0.05
            + components.action * 0.05
        )
        final_score = relevance_score + value_score

        if relevance_score < MIN_RELEVANCE_SCORE or final_score < MIN_FINAL_SCORE:
            return None

        return ScoredCandidate(
            memory=memory,
            score=final_score,
            relevance_score=relevance_score,
            value_score=value_score,
            reasoning=build_reasoning(components),
            components=components,
        )

    def score_context_alignment(self, message_lower: str, context_type: str) -> float:
        indicators = self._banks.context_words(context_type)
        matches = sum(1 for word in indicators if word in message_lower)
        if matches > 0:
            return min(0.3 + matches * 0.2, 1.0)
        return 0.1

    @staticmethod
    def score_semantic_tags(message_lower: str, tags: Sequence[str]) -> float:
        matches = 0
        for tag in tags:
            cleaned = tag.strip().lower()
            if cleaned and cleaned in message_lower:
                matches += 1
        if matches > 0:
            return min(0.3 + matches * 0.3, 1.0)
        return 0.0

    def score_trigger_phrases(self, message_lower: str, phrases: Sequence[str]) -> float:
        if not phrases:
            return 0.0

        message_words = [
            word
            for word in _WORD_PATTERN.findall(message_lower)
            if len(word) >= _COMPOUND_MIN_LEN and word not in self._banks.stopwords
        ]
        best = 0.0
        for phrase in phrases:
            phrase_lower = phrase.strip().lower()
            key_words = [
                word
                for word in phrase_lower.split()
                if word not in self._banks.stopwords and len(word) > 2
            ]
            if not key_words:
                continue

            credit = sum(
                self._word_credit(word, message_lower, message_words) for word in key_words
            )
            concept_score = credit / len(key_words)

            if any(marker in phrase_lower for marker in self._banks.situational_markers):
                if any(word in message_lower for word in key_words):
                    concept_score = max(concept_score, 0.7)

            best = max(best, concept_score)
        return min(best, 1.0)

    @staticmethod
    def _word_credit(word: str, message_lower: str, message_words: Sequence[str]) -> float:
        if word in message_lower:
            return 1.0
        singular = word[:-1] if word.endswith("s") else word
        if singular != word and singular in message_lower:
            return 0.9
        if f"{word}s" in message_lower:
            return 0.9
        # Compound pattern words ("hotreload") credited by a message word making up
        # more than half of them.
        if any(part in word and len(part) * 2 > len(word) for part in message_words):
            return 0.7
        return 0.0

    def score_question_types(self, message_lower: str, question_types: Sequence[str]) -> float:
        cleaned = [item.strip().lower() for item in question_types if item.strip()]
        if not cleaned:
            return 0.0
        if any(item in message_lower for item in cleaned):
            return 0.8

        question_words = self._banks.question_words
        message_has_question = any(word in message_lower for word in question_words)
        if message_has_question and any(
            word in item for item in cleaned for word in question_words
        ):
            return 0.5
        return 0.0

    def score_emotional_context(self, message_lower: str, emotion: str) -> float:
        if not emotion.strip():
            return 0.0
        patterns = self._banks.emotion_words(emotion)
        if any(pattern in message_lower for pattern in patterns):
            return 0.7
        return 0.0

    def score_problem_solution(self, message_lower: str, is_problem_solution: bool) -> float:
        if not is_problem_solution:
            return 0.0
        if any(word in message_lower for word in self._banks.problem_words):
            return 0.8
        return 0.0


def cosine_similarity(
    left: Optional[Sequence[float]], right: Optional[Sequence[float]]
) -> float:
    """Cosine similarity clamped to [0, 1]; 0 for absent or mismatched vectors."""

    if not left or not right or len(left) != len(right):
        return 0.0
    left_norm = math.sqrt(sum(value * value for value in left))
    right_norm = math.sqrt(sum(value * value for value in right))
    if left_norm <= 0 or right_norm <= 0:
        return 0.0
    dot = 0.0
    for l_value, r_value in zip(left, right):
        dot += l_value * r_value
    return min(max(dot / (left_norm * right_norm), 0.0), 1.0)


def build_reasoning(components: ScoringComponents) -> str:
    """Phrase the strongest one to three components as a short explanation."""

    values = components.as_dict()
    ranked = sorted(
        ((label, values[name]) for name, label in _REASON_LABELS),
        key=lambda item: item[1],
        reverse=True,
    )

    reasons: list[str] = []
    primary_label, primary_score = ranked[0]
    if primary_score > 0.5:
        reasons.append(f"Strong {primary_label} ({primary_score:.2f})")
    elif primary_score > 0.3:
        reasons.append(f"{primary_label} ({primary_score:.2f})")

    for label, score in ranked[1:3]:
        if score > 0.3:
            reasons.append(f"{label} ({score:.2f})")

    if not reasons:
        return "Selected based on combined factors"
    return "Selected due to: " + ", ".join(reasons)
