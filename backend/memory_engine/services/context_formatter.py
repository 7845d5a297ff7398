from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from memory_engine.memory.types import Memory, ScoredCandidate, SessionPrimer
from memory_engine.utils.time_utils import ensure_utc, utc_now

MEMORY_TYPE_EMOJI = {
    "technical": "🔧",
    "debug": "🐛",
    "architecture": "🏗️",
    "decision": "⚖️",
    "personal": "💜",
    "philosophy": "🌀",
    "workflow": "🔄",
    "milestone": "🏆",
    "breakthrough": "💡",
    "unresolved": "❓",
    "state": "📍",
}
DEFAULT_EMOJI = "📝"

MEMORY_TYPE_LEGEND = (
    "**Memory types**: 💡breakthrough ⚖️decision 💜personal 🔧technical 📍state "
    "❓unresolved 🔄workflow 🏗️architecture 🐛debug 🌀philosophy 🏆milestone "
    "| ⚡ACTION = needs follow-up"
)

# score ~= signals / 7; this many signals means the full content is worth showing.
EXPAND_SIGNAL_THRESHOLD = 5
SIGNAL_SCALE = 7

MS_PER_DAY = 86_400_000


def memory_emoji(context_type: str) -> str:
    return MEMORY_TYPE_EMOJI.get((context_type or "").lower(), DEFAULT_EMOJI)


def format_age(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Compact age: ``today``, ``Nd``, ``Nw``, ``Nmo`` or ``Ny`` from whole days elapsed."""

    if timestamp is None:
        return ""
    current = ensure_utc(now) if now is not None else utc_now()
    elapsed_ms = (current - ensure_utc(timestamp)).total_seconds() * 1000
    days = max(0, math.floor(elapsed_ms / MS_PER_DAY))
    if days == 0:
        return "today"
    if days < 7:
        return f"{days}d"
    if days < 30:
        return f"{days // 7}w"
    if days < 365:
        return f"{days // 30}mo"
    return f"{days // 365}y"


def signal_count(score: float) -> int:
    """Approximate number of matching signals behind a composite score."""

    return math.floor(score * SIGNAL_SCALE + 0.5)


class ContextFormatter:
    """Render primers, selected memories and action items as injectable text."""

    def __init__(self, public_base_url: str = "http://localhost:8765") -> None:
        self._public_base_url = public_base_url.rstrip("/")

    @staticmethod
    def should_expand(candidate: ScoredCandidate) -> bool:
        memory = candidate.memory
        return (
            memory.action_required
            or memory.awaiting_decision
            or signal_count(candidate.score) >= EXPAND_SIGNAL_THRESHOLD
            or not memory.has_headline
        )

    def format_memories(
        self,
        candidates: Sequence[ScoredCandidate],
        *,
        project_id: str = "",
        now: Optional[datetime] = None,
    ) -> str:
        """Two-tier rendering: headlines by default, content when auto-expanded.

        Headlined memories that stay collapsed are listed by short id in a
        trailing expand command.
        """

        if not candidates:
            return ""

        parts = ["# Memory Context", "", "## Key Memories"]
        collapsed_ids: list[str] = []
        for candidate in candidates:
            memory = candidate.memory
            expand = self.should_expand(candidate)
            id_part = f" • #{memory.short_id}" if memory.has_headline else ""
            flags = (" ⚡" if memory.action_required else "") + (
                " ❓" if memory.awaiting_decision else ""
            )
            display = memory.headline if memory.has_headline else memory.content
            parts.append(f"{self._prefix(memory, now)}{id_part}{flags}] {display}")
            if memory.has_headline and expand:
                parts.extend(_indented(memory.content))
            elif memory.has_headline:
                collapsed_ids.append(memory.short_id)

        if collapsed_ids:
            parts.extend(["", "---", f"Expand: curl {self.expand_url(collapsed_ids, project_id)}"])
        return "\n".join(parts)

    def format_action_items(
        self, candidates: Sequence[ScoredCandidate], *, now: Optional[datetime] = None
    ) -> str:
        if not candidates:
            return "# Action Items\n\nNo pending action items found."

        count = len(candidates)
        parts = ["# Action Items", "", f"*{count} pending item{'' if count == 1 else 's'}*", ""]
        for candidate in candidates:
            memory = candidate.memory
            labels = _action_labels(memory)
            label_part = f" [{' '.join(labels)}]" if labels else ""
            parts.append(f"{self._prefix(memory, now)} • #{memory.short_id}]{label_part}")
            parts.append(memory.headline if memory.has_headline else memory.content)
            if memory.has_headline:
                parts.extend(_indented(memory.content))
            parts.append("")
        return "\n".join(parts)

    @staticmethod
    def format_primer(primer: SessionPrimer) -> str:
        session_line = f"*Session #{primer.session_number}"
        if primer.temporal_context:
            session_line += f" • {primer.temporal_context}"
        parts = ["# Continuing Session", session_line + "*", f"📅 {primer.current_datetime}"]
        if primer.personal_context:
            parts.append(f"\n{primer.personal_context}")
        if primer.session_summary:
            parts.append(f"\n**Previous session**: {primer.session_summary}")
        if primer.project_status:
            parts.append(f"\n**Project status**: {primer.project_status}")
        parts.append(f"\n{MEMORY_TYPE_LEGEND}")
        parts.append("\n*Memories will surface naturally as we converse.*")
        return "\n".join(parts)

    def expand_url(self, short_ids: Sequence[str], project_id: str = "") -> str:
        query = f"ids={','.join(short_ids)}"
        if project_id:
            query = f"project_id={quote(project_id, safe='')}&{query}"
        return f"{self._public_base_url}/memory/expand?{query}"

    @staticmethod
    def _prefix(memory: Memory, now: Optional[datetime]) -> str:
        age = format_age(memory.updated_at or memory.created_at, now)
        return f"[{memory_emoji(memory.context_type)} {memory.importance_weight:.1f} • {age}"


def _action_labels(memory: Memory) -> list[str]:
    labels: list[str] = []
    if memory.action_required:
        labels.append("⚡ACTION")
    if memory.awaiting_implementation:
        labels.append("🔨IMPL")
    if memory.awaiting_decision:
        labels.append("❓DECISION")
    if memory.context_type == "unresolved":
        labels.append("❓UNRESOLVED")
    return labels


def _indented(content: str) -> list[str]:
    return [f"  {line}" for line in content.split("\n") if line.strip()]
