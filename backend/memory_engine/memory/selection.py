from __future__ import annotations

import logging
from collections.abc import Sequence

from memory_engine.memory.types import ScoredCandidate

logger = logging.getLogger(__name__)

MUST_INCLUDE_SCORE = 0.8
MUST_INCLUDE_IMPORTANCE = 0.9
PERFECT_MATCH = 0.9
SHOULD_INCLUDE_SCORE = 0.5


class SelectionPipeline:
    """Pick a bounded, diverse subset of gate-passed candidates.

    Candidates must arrive sorted by score, best first. Three tiers append to
    one running selection (must-include, should-include, context enrichment);
    the first ``max_memories`` entries of that selection are returned in the
    order they were added.
    """

    def select(
        self, candidates: Sequence[ScoredCandidate], max_memories: int
    ) -> list[ScoredCandidate]:
        if max_memories <= 0 or not candidates:
            return []

        selected: list[ScoredCandidate] = []
        selected_ids: set[str] = set()

        def add(item: ScoredCandidate) -> None:
            selected.append(item)
            selected_ids.add(item.memory.id)

        must_include = [item for item in candidates if self.is_must_include(item)]
        for item in must_include[:max_memories]:
            if item.memory.id not in selected_ids:
                add(item)
        tier_one = len(selected)

        should_limit = max_memories * 1.5
        if len(selected) < max_memories and len(selected) < should_limit:
            types_seen = {item.memory.context_type for item in selected}
            for item in candidates:
                if len(selected) >= should_limit:
                    break
                if item.memory.id in selected_ids:
                    continue
                context_type = item.memory.context_type
                if (
                    item.score > SHOULD_INCLUDE_SCORE
                    or context_type not in types_seen
                    or item.memory.emotional_resonance.strip()
                ):
                    add(item)
                    types_seen.add(context_type)
        tier_two = len(selected) - tier_one

        enrich_limit = max_memories * 2
        if len(selected) < enrich_limit:
            tags_seen: set[str] = set()
            domains_seen: set[str] = set()
            for item in selected:
                tags_seen.update(_normalized_tags(item))
                if item.memory.knowledge_domain:
                    domains_seen.add(item.memory.knowledge_domain)

            for item in candidates:
                if len(selected) >= enrich_limit:
                    break
                if item.memory.id in selected_ids:
                    continue
                shares_tag = bool(_normalized_tags(item) & tags_seen)
                shares_domain = bool(item.memory.knowledge_domain) and (
                    item.memory.knowledge_domain in domains_seen
                )
                if shares_tag or shares_domain:
                    add(item)

        logger.debug(
            "Selection tiers: must=%s should=%s enrich=%s of %s candidates (limit %s)",
            tier_one,
            tier_two,
            len(selected) - tier_one - tier_two,
            len(candidates),
            max_memories,
        )
        return selected[:max_memories]

    @staticmethod
    def is_must_include(item: ScoredCandidate) -> bool:
        return (
            item.score > MUST_INCLUDE_SCORE
            or item.components.importance > MUST_INCLUDE_IMPORTANCE
            or item.components.action > 0
            or item.components.max_value() > PERFECT_MATCH
        )


def _normalized_tags(item: ScoredCandidate) -> set[str]:
    return {tag.strip().lower() for tag in item.memory.semantic_tags if tag.strip()}
