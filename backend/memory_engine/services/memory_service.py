from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memory_engine.core.config import Settings
from memory_engine.memory.action_items import select_action_items, split_action_marker
from memory_engine.memory.embedder import (
    DeterministicEmbedder,
    Embedder,
    EmbeddingError,
    OpenAIEmbedder,
)
from memory_engine.memory.scope import ScopeMerger
from memory_engine.memory.scoring import RelevanceScorer
from memory_engine.memory.selection import SelectionPipeline
from memory_engine.memory.sessions import SessionDeduplicator, SessionRegistry
from memory_engine.memory.store import MemoryStore, SQLMemoryStore
from memory_engine.memory.types import (
    ContextRequest,
    ContextResult,
    Memory,
    ProjectStats,
    RetrievalMode,
    ScoredCandidate,
    SessionContext,
)
from memory_engine.services.context_formatter import ContextFormatter
from memory_engine.services.primer_service import PrimerComposer

logger = logging.getLogger(__name__)

DEFAULT_EMBED_DIM = 384
ACTION_ITEM_REASONING = "Action item"


class MemoryEngine:
    """Per-request retrieval orchestration plus the curation write paths.

    ``get_context`` resolves the session, returns a primer on the first
    message, and otherwise dedups, merges, scores, selects, caps and renders.
    Retrieval never raises for scoring or pool-read problems; only session
    resolution errors reach the caller.
    """

    def __init__(
        self,
        *,
        store: MemoryStore,
        embedder: Optional[Embedder],
        registry: Optional[SessionRegistry] = None,
        scorer: Optional[RelevanceScorer] = None,
        selection: Optional[SelectionPipeline] = None,
        scope_merger: Optional[ScopeMerger] = None,
        primer: Optional[PrimerComposer] = None,
        formatter: Optional[ContextFormatter] = None,
        max_memories: int = 5,
        embed_dim: int = DEFAULT_EMBED_DIM,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._registry = registry or SessionRegistry()
        self._dedup = SessionDeduplicator(self._registry)
        self._scorer = scorer or RelevanceScorer()
        self._selection = selection or SelectionPipeline()
        self._scope = scope_merger or ScopeMerger()
        self._primer = primer or PrimerComposer(store)
        self._formatter = formatter or ContextFormatter()
        self._max_memories = max(1, max_memories)
        self._embed_dim = embedder.dimension if embedder else embed_dim

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def get_context(self, request: ContextRequest) -> ContextResult:
        message, marker_found = split_action_marker(request.current_message or "")
        mode = (
            RetrievalMode.ACTION_ITEMS
            if marker_found or request.mode == RetrievalMode.ACTION_ITEMS
            else RetrievalMode.NORMAL
        )

        handle = await self._store.get_or_create_session(
            request.project_id, request.session_id
        )
        self._registry.get_or_create(request.session_id, request.project_id)

        if handle.message_count == 0:
            primer = await self._primer.compose(request.project_id)
            logger.info(
                "Primer for session %s (project %s, session #%s)",
                request.session_id,
                request.project_id,
                primer.session_number,
            )
            return ContextResult(
                memories=[],
                formatted_text=self._formatter.format_primer(primer),
                primer=primer,
                mode=mode,
            )

        if mode == RetrievalMode.NORMAL and not message.strip():
            return ContextResult(memories=[], formatted_text="", mode=mode)

        pool = self._dedup.filter(
            request.session_id, await self._load_pool(request.project_id)
        )

        if mode == RetrievalMode.ACTION_ITEMS:
            items = self._scope.cap_unscored(select_action_items(pool))
            self._dedup.record(request.session_id, [memory.id for memory in items])
            candidates = [
                ScoredCandidate.unscored(memory, ACTION_ITEM_REASONING) for memory in items
            ]
            logger.info(
                "Action items for session %s: %s pending", request.session_id, len(items)
            )
            return ContextResult(
                memories=candidates,
                formatted_text=self._formatter.format_action_items(candidates),
                mode=mode,
            )

        if not pool:
            return ContextResult(memories=[], formatted_text="", mode=mode)

        max_memories = (
            request.max_memories if request.max_memories is not None else self._max_memories
        )
        query_embedding = await self._embed_query(message)
        session = SessionContext(
            session_id=request.session_id,
            project_id=request.project_id,
            message_count=handle.message_count,
        )
        ranked = self._scorer.score_all(pool, message, query_embedding, session)
        selected = self._selection.select(ranked, max_memories)
        selected = self._scope.apply_global_cap(selected, ranked, max_memories)
        self._dedup.record(request.session_id, [item.memory.id for item in selected])

        for item in selected:
            logger.debug("Selected %s (%.2f): %s", item.memory.id, item.score, item.reasoning)
        logger.info(
            "Context for session %s: %s of %s candidates selected",
            request.session_id,
            len(selected),
            len(pool),
        )
        return ContextResult(
            memories=selected,
            formatted_text=self._formatter.format_memories(
                selected, project_id=request.project_id
            ),
            mode=mode,
        )

    async def track_message(self, project_id: str, session_id: str) -> int:
        """Increment the persisted message counter; raises ``SessionNotFoundError``."""

        count = await self._store.increment_message_count(project_id, session_id)
        state = self._registry.get(session_id)
        if state is not None:
            state.message_count = count
        return count

    async def store_curation_result(
        self,
        *,
        project_id: str,
        session_id: str,
        memories: Sequence[Mapping[str, Any]],
        session_summary: str = "",
        interaction_tone: str = "",
        project_snapshot: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Persist curated memories, the session summary and the project snapshot."""

        stored = 0
        for raw in memories:
            content = str(raw.get("content") or "").strip()
            if not content:
                continue
            embedding = await self._embed_content(content)
            await self._store.store_memory(project_id, session_id, raw, embedding)
            stored += 1

        if session_summary.strip():
            await self._store.store_session_summary(
                project_id, session_id, session_summary.strip(), interaction_tone
            )
        if project_snapshot:
            await self._store.store_project_snapshot(project_id, session_id, project_snapshot)
        await self._store.mark_first_session_completed(project_id, session_id)

        logger.info(
            "Stored %s curated memories for project %s (session %s)",
            stored,
            project_id,
            session_id,
        )
        return stored

    async def get_stats(self, project_id: str) -> ProjectStats:
        return await self._store.get_project_stats(project_id)

    async def expand_memories(self, project_id: str, short_ids: Sequence[str]) -> list[Memory]:
        """Look up memories by id suffix across the project and global pools."""

        wanted = [item.strip() for item in short_ids if item.strip()]
        if not wanted:
            return []
        pool = await self._load_pool(project_id)
        expanded: list[Memory] = []
        for short_id in wanted:
            match = next((memory for memory in pool if memory.id.endswith(short_id)), None)
            if match is not None and all(item.id != match.id for item in expanded):
                expanded.append(match)
        return expanded

    async def update_memory(
        self, project_id: str, memory_id: str, updates: Mapping[str, Any]
    ) -> Optional[list[str]]:
        """Apply curation actions to one memory visible from ``project_id``."""

        memory = await self._store.get_memory(memory_id)
        if memory is None or (not memory.is_global and memory.project_id != project_id):
            return None
        return await self._store.update_memory(memory_id, updates)

    async def set_personal_primer(self, content: str) -> None:
        await self._store.set_personal_primer(content)

    async def _load_pool(self, project_id: str) -> list[Memory]:
        try:
            project_memories = await self._store.get_all_memories(project_id)
        except Exception:  # noqa: BLE001
            logger.exception("Project memory read failed for %s; using empty pool", project_id)
            project_memories = []
        try:
            global_memories = await self._store.get_global_memories()
        except Exception:  # noqa: BLE001
            logger.exception("Global memory read failed; using empty pool")
            global_memories = []
        return ScopeMerger.merge_pools(project_memories, global_memories)

    async def _embed_query(self, message: str) -> list[float]:
        if self._embedder is None:
            return [0.0] * self._embed_dim
        try:
            return await self._embedder.embed(message)
        except EmbeddingError as exc:
            logger.warning("Query embedding failed; scoring without vectors: %s", exc)
        except Exception:  # noqa: BLE001
            logger.exception("Query embedding failed unexpectedly")
        return self._embedder.zero_vector()

    async def _embed_content(self, content: str) -> Optional[list[float]]:
        if self._embedder is None:
            return None
        try:
            return await self._embedder.embed(content)
        except EmbeddingError as exc:
            logger.warning("Storing memory without embedding: %s", exc)
        except Exception:  # noqa: BLE001
            logger.exception("Memory embedding failed unexpectedly")
        return None


def create_memory_engine(
    *,
    sessionmaker: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> MemoryEngine:
    """Wire the engine and its collaborators from settings."""

    store = SQLMemoryStore(sessionmaker)
    embedder = _create_embedder(settings)
    return MemoryEngine(
        store=store,
        embedder=embedder,
        registry=SessionRegistry(
            ttl_sec=settings.session_ttl_sec, max_entries=settings.session_max_entries
        ),
        scope_merger=ScopeMerger(max_global=settings.memory_max_global),
        primer=PrimerComposer(
            store, personal_memories_enabled=settings.personal_memories_enabled
        ),
        formatter=ContextFormatter(public_base_url=settings.public_base_url),
        max_memories=settings.memory_max_memories,
        embed_dim=settings.embed_dim,
    )


def _create_embedder(settings: Settings) -> Optional[Embedder]:
    provider = settings.embed_provider.strip().lower()
    if provider == "off":
        return None

    if provider == "deterministic":
        model_name = settings.embed_model.strip() or "deterministic-v1"
        return DeterministicEmbedder(dimension=settings.embed_dim, model_name=model_name)

    if provider == "openai":
        api_key = settings.embed_openai_api_key.strip()
        if not api_key:
            logger.warning(
                "EMBED_PROVIDER=openai but EMBED_OPENAI_API_KEY is missing; fallback to deterministic"
            )
            return DeterministicEmbedder(dimension=settings.embed_dim)
        model_name = settings.embed_model.strip() or "text-embedding-3-small"
        if model_name == "deterministic-v1":
            model_name = "text-embedding-3-small"
        return OpenAIEmbedder(
            base_url=settings.openai_base_url,
            api_key=api_key,
            model_name=model_name,
            dimension=settings.embed_dim,
        )

    logger.warning("Unknown EMBED_PROVIDER=%s; fallback to deterministic", provider)
    return DeterministicEmbedder(dimension=settings.embed_dim)
