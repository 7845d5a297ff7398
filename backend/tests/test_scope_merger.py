from __future__ import annotations

from memory_engine.memory.scope import ScopeMerger
from memory_engine.memory.types import SCOPE_GLOBAL, Memory, ScoredCandidate


def memory(memory_id: str, *, scope: str = "project", context_type: str = "general",
           importance: float = 0.5) -> Memory:
    return Memory(
        id=memory_id,
        content=memory_id,
        scope=scope,
        context_type=context_type,
        importance_weight=importance,
    )


def scored(item: Memory, score: float) -> ScoredCandidate:
    return ScoredCandidate(
        memory=item, score=score, relevance_score=0.1, value_score=score - 0.1, reasoning=""
    )


def test_merge_pools_keeps_first_record_per_id():
    project = [memory("a"), memory("b")]
    shared = [memory("b", scope=SCOPE_GLOBAL), memory("g", scope=SCOPE_GLOBAL)]

    merged = ScopeMerger.merge_pools(project, shared)

    assert [item.id for item in merged] == ["a", "b", "g"]
    assert merged[1].scope == "project"


def test_global_cap_drops_lowest_global_and_backfills_project():
    merger = ScopeMerger(max_global=2)
    g1 = scored(memory("g1", scope=SCOPE_GLOBAL), 0.7)
    g2 = scored(memory("g2", scope=SCOPE_GLOBAL), 0.6)
    g3 = scored(memory("g3", scope=SCOPE_GLOBAL), 0.5)
    p1 = scored(memory("p1"), 0.4)
    p2 = scored(memory("p2"), 0.35)

    result = merger.apply_global_cap([g1, g2, g3, p1], [g1, g2, g3, p1, p2], 4)

    assert [item.memory.id for item in result] == ["g1", "g2", "p1", "p2"]


def test_global_cap_leaves_selection_alone_when_under_cap():
    merger = ScopeMerger(max_global=2)
    selection = [scored(memory("g1", scope=SCOPE_GLOBAL), 0.7), scored(memory("p1"), 0.6)]

    assert merger.apply_global_cap(selection, selection, 5) == selection


def test_global_cap_ranks_personal_last_on_equal_score():
    merger = ScopeMerger(max_global=2)
    personal = scored(memory("personal", scope=SCOPE_GLOBAL, context_type="personal"), 0.6)
    technical = scored(memory("technical", scope=SCOPE_GLOBAL, context_type="technical"), 0.6)
    decision = scored(memory("decision", scope=SCOPE_GLOBAL, context_type="decision"), 0.6)
    selection = [personal, technical, decision]

    result = merger.apply_global_cap(selection, selection, 3)

    assert {item.memory.id for item in result} == {"technical", "decision"}


def test_cap_unscored_prefers_non_personal_then_importance():
    merger = ScopeMerger(max_global=2)
    items = [
        memory("personal", scope=SCOPE_GLOBAL, context_type="personal", importance=0.9),
        memory("technical", scope=SCOPE_GLOBAL, context_type="technical", importance=0.5),
        memory("project", importance=0.1),
        memory("decision", scope=SCOPE_GLOBAL, context_type="decision", importance=0.7),
    ]

    result = merger.cap_unscored(items)

    assert [item.id for item in result] == ["technical", "project", "decision"]


def test_zero_global_cap_removes_all_globals():
    merger = ScopeMerger(max_global=0)
    items = [memory("g", scope=SCOPE_GLOBAL), memory("p")]

    assert [item.id for item in merger.cap_unscored(items)] == ["p"]


def test_five_globals_capped_to_two_with_non_personal_winning_ties():
    merger = ScopeMerger(max_global=2)
    personal = scored(memory("personal", scope=SCOPE_GLOBAL, context_type="personal"), 0.7)
    technical = scored(memory("technical", scope=SCOPE_GLOBAL, context_type="technical"), 0.7)
    decision = scored(memory("decision", scope=SCOPE_GLOBAL, context_type="decision"), 0.7)
    debug = scored(memory("debug", scope=SCOPE_GLOBAL, context_type="debug"), 0.5)
    workflow = scored(memory("workflow", scope=SCOPE_GLOBAL, context_type="workflow"), 0.4)
    p1 = scored(memory("p1"), 0.3)
    p2 = scored(memory("p2"), 0.2)
    selection = [personal, technical, decision, debug, workflow]

    result = merger.apply_global_cap(selection, [*selection, p1, p2], 5)

    assert sum(item.memory.is_global for item in result) == 2
    assert [item.memory.id for item in result] == ["technical", "decision", "p1", "p2"]


def test_global_cap_keeps_selection_order_and_appends_backfill():
    merger = ScopeMerger(max_global=2)
    flagged = scored(memory("flagged"), 0.4)
    g1 = scored(memory("g1", scope=SCOPE_GLOBAL), 0.7)
    g2 = scored(memory("g2", scope=SCOPE_GLOBAL), 0.6)
    g3 = scored(memory("g3", scope=SCOPE_GLOBAL), 0.5)
    p2 = scored(memory("p2"), 0.3)

    result = merger.apply_global_cap([flagged, g1, g2, g3], [g1, g2, g3, flagged, p2], 4)

    assert [item.memory.id for item in result] == ["flagged", "g1", "g2", "p2"]
