from __future__ import annotations

import pytest

from memory_engine.memory.scoring import (
    RelevanceScorer,
    build_reasoning,
    cosine_similarity,
)
from memory_engine.memory.types import Memory, ScoringComponents, SessionContext

SESSION = SessionContext(session_id="s1", project_id="p1", message_count=3)


def make_memory(**overrides) -> Memory:
    values = {"id": "mem-000001", "content": "Stored fact"}
    values.update(overrides)
    return Memory(**values)


def test_excluded_memory_is_never_scored():
    scorer = RelevanceScorer()
    memory = make_memory(
        trigger_phrases=("database migration",),
        importance_weight=1.0,
        exclude_from_retrieval=True,
    )

    assert scorer.score(memory, "database migration", [], SESSION) is None


def test_memory_without_relevance_signal_is_rejected():
    scorer = RelevanceScorer()
    memory = make_memory(importance_weight=1.0, confidence_score=1.0)

    assert scorer.score(memory, "hello there", [], SESSION) is None


def test_trigger_match_passes_gate_with_expected_weights():
    scorer = RelevanceScorer()
    memory = make_memory(trigger_phrases=("database migration",))

    candidate = scorer.score(
        memory, "I am working on the database migration today", [], SESSION
    )

    assert candidate is not None
    assert candidate.components.trigger == pytest.approx(1.0)
    assert candidate.relevance_score == pytest.approx(0.10)
    # importance 0.5*0.2 + persistent 0.8*0.1 + no context 0.1*0.1 + confidence 0.8*0.1
    assert candidate.value_score == pytest.approx(0.27)
    assert candidate.score == pytest.approx(0.37)
    assert candidate.reasoning == (
        "Selected due to: Strong trigger phrase match (1.00), "
        "temporal relevance (0.80), high importance (0.50)"
    )


def test_high_relevance_with_low_value_fails_final_threshold():
    scorer = RelevanceScorer()
    memory = make_memory(
        trigger_phrases=("database migration",),
        importance_weight=0.0,
        confidence_score=0.0,
        temporal_relevance="archived",
    )

    candidate = scorer.score(memory, "database migration", [], SESSION)

    assert candidate is None


def test_tag_matches_alone_stay_under_relevance_floor():
    scorer = RelevanceScorer()
    memory = make_memory(semantic_tags=("sqlite", "async"), importance_weight=1.0)

    assert scorer.score(memory, "sqlite async driver", [], SESSION) is None


def test_plural_and_compound_trigger_credit():
    scorer = RelevanceScorer()

    assert scorer.score_trigger_phrases(
        "the deploy script broke", ["deploy scripts"]
    ) == pytest.approx(0.95)
    assert scorer.score_trigger_phrases("hot reload broke again", ["hotreload"]) == pytest.approx(
        0.7
    )


def test_short_message_words_earn_no_compound_credit():
    scorer = RelevanceScorer()

    assert scorer.score_trigger_phrases("fill in the form", ["performance tuning"]) == 0.0
    assert scorer.score_trigger_phrases("that said", ["thatcher era policy"]) == 0.0


def test_situational_trigger_gets_floor_when_any_keyword_present():
    scorer = RelevanceScorer()

    score = scorer.score_trigger_phrases("auth keeps failing", ["when debugging auth"])

    assert score == pytest.approx(0.7)


def test_trigger_phrase_of_only_stopwords_scores_zero():
    scorer = RelevanceScorer()

    assert scorer.score_trigger_phrases("what is this", ["what is", "  "]) == 0.0
    assert scorer.score_trigger_phrases("anything", []) == 0.0


def test_semantic_tags_score_and_skip_empty_tags():
    assert RelevanceScorer.score_semantic_tags("sqlite is slow", ["SQLite", "async"]) == (
        pytest.approx(0.6)
    )
    assert RelevanceScorer.score_semantic_tags("anything", ["", "  "]) == 0.0


def test_question_types_literal_and_generic_match():
    scorer = RelevanceScorer()

    assert scorer.score_question_types("how to deploy this?", ["How to deploy"]) == 0.8
    assert scorer.score_question_types("why is it failing", ["how do we configure"]) == 0.5
    assert scorer.score_question_types("status update", ["how do we configure"]) == 0.0
    assert scorer.score_question_types("how", ["", " "]) == 0.0


def test_context_alignment_counts_indicator_words():
    scorer = RelevanceScorer()

    assert scorer.score_context_alignment("fix the bug in this function", "technical") == (
        pytest.approx(0.9)
    )
    assert scorer.score_context_alignment("nothing relevant", "technical") == 0.1
    assert scorer.score_context_alignment("fix the bug", "unknown-type") == 0.1


def test_emotion_and_problem_dimensions():
    scorer = RelevanceScorer()

    assert scorer.score_emotional_context("i'm stuck again", "Frustration") == 0.7
    assert scorer.score_emotional_context("i'm stuck again", "") == 0.0
    assert scorer.score_problem_solution("help me fix it", True) == 0.8
    assert scorer.score_problem_solution("help me fix it", False) == 0.0


def test_action_required_contributes_fixed_component():
    scorer = RelevanceScorer()
    memory = make_memory(trigger_phrases=("release checklist",), action_required=True)

    candidate = scorer.score(memory, "release checklist", [], SESSION)

    assert candidate is not None
    assert candidate.components.action == 0.3


def test_cosine_similarity_edge_cases():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0], None) == 0.0


def test_vector_similarity_feeds_relevance():
    scorer = RelevanceScorer()
    memory = make_memory(embedding=(1.0, 0.0, 0.0), importance_weight=0.8)

    candidate = scorer.score(memory, "unrelated words", [1.0, 0.0, 0.0], SESSION)

    assert candidate is not None
    assert candidate.components.vector == pytest.approx(1.0)
    assert candidate.relevance_score == pytest.approx(0.10)


def test_score_all_returns_passed_candidates_best_first():
    scorer = RelevanceScorer()
    memories = [
        make_memory(id="low", trigger_phrases=("database migration",), importance_weight=0.4),
        make_memory(id="none", importance_weight=1.0),
        make_memory(id="high", trigger_phrases=("database migration",), importance_weight=0.9),
    ]

    ranked = scorer.score_all(memories, "database migration plan", [], SESSION)

    assert [item.memory.id for item in ranked] == ["high", "low"]


def test_build_reasoning_falls_back_when_nothing_stands_out():
    assert build_reasoning(ScoringComponents(importance=0.2)) == (
        "Selected based on combined factors"
    )


def test_debugging_retrieval_message_admits_matching_memory():
    scorer = RelevanceScorer()
    memory = make_memory(
        trigger_phrases=("debugging retrieval",),
        semantic_tags=("retrieval", "scoring"),
        importance_weight=0.7,
    )

    candidate = scorer.score(memory, "I'm debugging the retrieval algorithm", [], SESSION)

    assert candidate is not None
    assert candidate.components.trigger == pytest.approx(1.0)
    assert candidate.components.tags == pytest.approx(0.6)
    assert candidate.relevance_score == pytest.approx(0.13)
    assert candidate.score == pytest.approx(0.44)
