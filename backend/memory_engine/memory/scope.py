from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from memory_engine.memory.types import Memory, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_MAX_GLOBAL = 2


class ScopeMerger:
    """Merge project and global pools and cap global representation."""

    def __init__(self, max_global: int = DEFAULT_MAX_GLOBAL) -> None:
        self._max_global = max(0, max_global)

    @property
    def max_global(self) -> int:
        return self._max_global

    @staticmethod
    def merge_pools(
        project_memories: Iterable[Memory], global_memories: Iterable[Memory]
    ) -> list[Memory]:
        """Union both pools before scoring; a repeated id keeps its first record."""

        merged: list[Memory] = []
        seen: set[str] = set()
        for memory in [*project_memories, *global_memories]:
            if memory.id in seen:
                continue
            seen.add(memory.id)
            merged.append(memory)
        return merged

    def apply_global_cap(
        self,
        selected: Sequence[ScoredCandidate],
        ranked_candidates: Sequence[ScoredCandidate],
        max_memories: int,
    ) -> list[ScoredCandidate]:
        """Drop excess globals and backfill freed slots with project candidates.

        ``ranked_candidates`` is the gate-passed list the selection ran over,
        best first; backfill walks it in order and never re-runs the tiers.
        Surviving items keep their selection (tier) order and backfilled ones
        follow in ranked order, whether or not the cap fired.
        """

        kept, dropped = _split_globals(
            selected,
            self._max_global,
            lambda item: (-item.score, item.memory.context_type == "personal"),
        )
        if not dropped:
            return list(selected)

        taken = {item.memory.id for item in kept}
        result = list(kept)
        for item in ranked_candidates:
            if len(result) >= max_memories:
                break
            if item.memory.is_global or item.memory.id in taken:
                continue
            result.append(item)
            taken.add(item.memory.id)

        logger.debug(
            "Global cap %s dropped %s memories; %s backfilled",
            self._max_global,
            len(dropped),
            len(result) - len(kept),
        )
        return result

    def cap_unscored(self, memories: Sequence[Memory]) -> list[Memory]:
        """Cap globals in an unscored list, preferring non-personal then importance."""

        kept, _ = _split_globals(
            memories,
            self._max_global,
            lambda memory: (memory.context_type == "personal", -memory.importance_weight),
        )
        return kept


def _split_globals(
    items: Sequence[Any],
    max_global: int,
    rank_key: Callable[[Any], Any],
) -> tuple[list[Any], list[Any]]:
    def memory_of(item: Any) -> Memory:
        return item.memory if isinstance(item, ScoredCandidate) else item

    globals_ = [item for item in items if memory_of(item).is_global]
    if len(globals_) <= max_global:
        return list(items), []

    allowed = {id(item) for item in sorted(globals_, key=rank_key)[:max_global]}
    kept: list[Any] = []
    dropped: list[Any] = []
    for item in items:
        if memory_of(item).is_global and id(item) not in allowed:
            dropped.append(item)
        else:
            kept.append(item)
    return kept, dropped
