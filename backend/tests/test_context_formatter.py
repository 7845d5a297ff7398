from __future__ import annotations

from datetime import datetime, timedelta, timezone

from memory_engine.memory.types import Memory, ScoredCandidate, SessionPrimer
from memory_engine.services.context_formatter import (
    ContextFormatter,
    format_age,
    memory_emoji,
    signal_count,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def scored(memory: Memory, score: float = 0.4) -> ScoredCandidate:
    return ScoredCandidate(
        memory=memory, score=score, relevance_score=0.1, value_score=score - 0.1, reasoning=""
    )


def test_format_age_buckets():
    assert format_age(NOW - timedelta(milliseconds=90_000_000), NOW) == "1d"
    assert format_age(NOW - timedelta(milliseconds=8 * 86_400_000), NOW) == "1w"
    assert format_age(NOW - timedelta(hours=3), NOW) == "today"
    assert format_age(NOW - timedelta(days=29), NOW) == "4w"
    assert format_age(NOW - timedelta(days=30), NOW) == "1mo"
    assert format_age(NOW - timedelta(days=400), NOW) == "1y"
    assert format_age(NOW + timedelta(days=2), NOW) == "today"
    assert format_age(None, NOW) == ""


def test_format_age_treats_naive_timestamps_as_utc():
    naive = (NOW - timedelta(days=3)).replace(tzinfo=None)

    assert format_age(naive, NOW) == "3d"


def test_emoji_lookup_falls_back():
    assert memory_emoji("Breakthrough") == "💡"
    assert memory_emoji("something-else") == "📝"


def test_signal_count_rounds_half_up():
    assert signal_count(0.5) == 4
    assert signal_count(0.72) == 5
    assert signal_count(0.64) == 4


def test_should_expand_rules():
    headline = {"id": "m1", "content": "body", "headline": "head"}

    assert not ContextFormatter.should_expand(scored(Memory(**headline), 0.64))
    assert ContextFormatter.should_expand(scored(Memory(**headline), 0.72))
    assert ContextFormatter.should_expand(scored(Memory(**headline, action_required=True)))
    assert ContextFormatter.should_expand(scored(Memory(**headline, awaiting_decision=True)))
    assert ContextFormatter.should_expand(scored(Memory(id="m2", content="legacy")))


def test_format_memories_two_tier_layout():
    formatter = ContextFormatter(public_base_url="http://memory.test/")
    collapsed = Memory(
        id="abcdef123456",
        content="Line one\n\nLine two",
        headline="Use SQLite WAL",
        context_type="technical",
        importance_weight=0.8,
        created_at=NOW - timedelta(days=1, hours=2),
    )
    legacy = Memory(id="legacy000001", content="Legacy fact", created_at=NOW)
    action = Memory(
        id="action999999",
        content="Step one\nStep two",
        headline="Ship the release",
        context_type="decision",
        importance_weight=0.9,
        action_required=True,
        awaiting_decision=True,
        created_at=NOW - timedelta(days=40),
        updated_at=NOW - timedelta(days=2),
    )

    text = formatter.format_memories(
        [scored(collapsed), scored(legacy), scored(action)], project_id="proj 1", now=NOW
    )
    lines = text.split("\n")

    assert lines[:3] == ["# Memory Context", "", "## Key Memories"]
    assert "[🔧 0.8 • 1d • #123456] Use SQLite WAL" in lines
    assert "Line one" not in text
    assert "[📝 0.5 • today] Legacy fact" in lines
    assert "[⚖️ 0.9 • 2d • #999999 ⚡ ❓] Ship the release" in lines
    assert "  Step one" in lines and "  Step two" in lines
    assert lines[-2:] == [
        "---",
        "Expand: curl http://memory.test/memory/expand?project_id=proj%201&ids=123456",
    ]


def test_format_memories_without_collapsed_items_has_no_footer():
    formatter = ContextFormatter()
    text = formatter.format_memories(
        [scored(Memory(id="m1", content="Only content"))], now=NOW
    )

    assert "Expand:" not in text
    assert formatter.format_memories([], now=NOW) == ""


def test_format_action_items_renders_labels_and_full_content():
    formatter = ContextFormatter()
    item = Memory(
        id="todo00abc123",
        content="Detail A\nDetail B",
        headline="Finish migration",
        context_type="unresolved",
        action_required=True,
        awaiting_implementation=True,
        importance_weight=0.7,
        created_at=NOW,
    )

    text = formatter.format_action_items([ScoredCandidate.unscored(item, "Action item")], now=NOW)
    lines = text.split("\n")

    assert lines[:4] == ["# Action Items", "", "*1 pending item*", ""]
    assert lines[4] == "[❓ 0.7 • today • #abc123] [⚡ACTION 🔨IMPL ❓UNRESOLVED]"
    assert lines[5:8] == ["Finish migration", "  Detail A", "  Detail B"]


def test_format_action_items_empty():
    assert ContextFormatter().format_action_items([]) == (
        "# Action Items\n\nNo pending action items found."
    )


def test_format_primer_orders_personal_context_first():
    primer = SessionPrimer(
        temporal_context="Last session: 2 hours ago",
        current_datetime="Monday, March 10, 2025 • 12:00 PM • UTC",
        session_number=4,
        personal_context="We pair on weekends.",
        session_summary="Wired the scorer.",
        project_status="Phase: beta",
    )

    text = ContextFormatter.format_primer(primer)

    assert text.startswith(
        "# Continuing Session\n*Session #4 • Last session: 2 hours ago*\n"
        "📅 Monday, March 10, 2025 • 12:00 PM • UTC\n\nWe pair on weekends."
    )
    assert text.index("We pair on weekends.") < text.index("**Previous session**: Wired")
    assert "**Project status**: Phase: beta" in text
    assert text.endswith("*Memories will surface naturally as we converse.*")


def test_format_primer_without_optional_parts():
    primer = SessionPrimer(temporal_context="", current_datetime="now", session_number=1)

    text = ContextFormatter.format_primer(primer)

    assert "*Session #1*" in text
    assert "Previous session" not in text
    assert "Project status" not in text
