from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from memory_engine.memory.types import Memory

ACTION_MARKER = "***"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def split_action_marker(message: str) -> tuple[str, bool]:
    """Strip a trailing ``***`` marker; return the cleaned message and whether it was present."""

    trimmed = message.rstrip()
    if not trimmed.endswith(ACTION_MARKER):
        return message, False
    return trimmed[: -len(ACTION_MARKER)].rstrip(), True


def select_action_items(memories: Iterable[Memory]) -> list[Memory]:
    """Return every flagged, retrievable memory, most important first.

    Flagged means action required, awaiting implementation, awaiting a
    decision, or typed ``unresolved``. No scoring and no gate.
    """

    items = [
        memory
        for memory in memories
        if not memory.exclude_from_retrieval and memory.is_action_item
    ]
    items.sort(
        key=lambda memory: (
            memory.importance_weight,
            memory.updated_at or memory.created_at or _EPOCH,
        ),
        reverse=True,
    )
    return items
