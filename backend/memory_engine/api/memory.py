from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from memory_engine.core.security import sanitize_text
from memory_engine.memory.store import SessionNotFoundError
from memory_engine.memory.types import ContextRequest
from memory_engine.schemas.common import SuccessResponse
from memory_engine.schemas.memory import (
    ContextMemoryItem,
    ContextRequestPayload,
    ContextResponse,
    CurationRequest,
    CurationResponse,
    ExpandedMemoryItem,
    ExpandResponse,
    MemoryUpdatePayload,
    MemoryUpdateResponse,
    PersonalPrimerRequest,
    ProcessRequest,
    ProcessResponse,
    StatsResponse,
)
from memory_engine.services.memory_service import MemoryEngine

router = APIRouter(prefix="/memory", tags=["memory"])
primer_router = APIRouter(tags=["memory"])
health_router = APIRouter(tags=["health"])

MAX_SUMMARY_LEN = 20000
MAX_PRIMER_LEN = 20000


def get_memory_engine(request: Request) -> MemoryEngine:
    """Return the engine stored on app state."""

    return request.app.state.memory_engine


@health_router.get("/health")
async def health() -> dict:
    return {"status": "healthy", "engine": "python"}


@router.post("/context", response_model=ContextResponse)
async def get_context(
    payload: ContextRequestPayload,
    engine: MemoryEngine = Depends(get_memory_engine),
) -> ContextResponse:
    """Return the primer or the relevant memories for the current message."""

    result = await engine.get_context(
        ContextRequest(
            session_id=payload.session_id,
            project_id=payload.project_id,
            current_message=payload.current_message,
            max_memories=payload.max_memories,
            mode=payload.mode,
        )
    )
    items = [
        ContextMemoryItem(
            id=item.memory.id,
            short_id=item.memory.short_id,
            headline=item.memory.headline,
            content=item.memory.content,
            context_type=item.memory.context_type,
            scope=item.memory.scope,
            score=item.score,
            relevance_score=item.relevance_score,
            value_score=item.value_score,
            reasoning=item.reasoning,
        )
        for item in result.memories
    ]
    return ContextResponse(
        session_id=payload.session_id,
        context_text=result.formatted_text,
        has_memories=bool(items),
        memories_count=len(items),
        has_primer=result.primer is not None,
        mode=result.mode,
        memories=items,
    )


@router.post("/process", response_model=ProcessResponse)
async def process_message(
    payload: ProcessRequest,
    engine: MemoryEngine = Depends(get_memory_engine),
) -> ProcessResponse:
    """Count one processed message for the session."""

    try:
        count = await engine.track_message(payload.project_id, payload.session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ProcessResponse(message_count=count)


@router.post("/curation", response_model=CurationResponse)
async def store_curation(
    payload: CurationRequest,
    engine: MemoryEngine = Depends(get_memory_engine),
) -> CurationResponse:
    """Persist an already-curated session result."""

    stored = await engine.store_curation_result(
        project_id=payload.project_id,
        session_id=payload.session_id,
        memories=[item.model_dump() for item in payload.memories],
        session_summary=sanitize_text(payload.session_summary, MAX_SUMMARY_LEN),
        interaction_tone=payload.interaction_tone,
        project_snapshot=(
            payload.project_snapshot.model_dump() if payload.project_snapshot else None
        ),
    )
    return CurationResponse(memories_stored=stored)


@router.get("/expand", response_model=ExpandResponse)
async def expand_memories(
    project_id: str = Query(min_length=1),
    ids: str = Query(min_length=1),
    engine: MemoryEngine = Depends(get_memory_engine),
) -> ExpandResponse:
    """Return full content for memories referenced by short id."""

    # Accept the "<a,b>" form some clients paste verbatim.
    short_ids = ids.strip().strip("<>").split(",")
    memories = await engine.expand_memories(project_id, short_ids)
    return ExpandResponse(
        memories=[
            ExpandedMemoryItem(
                id=memory.id,
                short_id=memory.short_id,
                headline=memory.headline,
                content=memory.content,
                context_type=memory.context_type,
                scope=memory.scope,
                importance_weight=memory.importance_weight,
            )
            for memory in memories
        ]
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    project_id: str = Query(min_length=1),
    engine: MemoryEngine = Depends(get_memory_engine),
) -> StatsResponse:
    stats = await engine.get_stats(project_id)
    return StatsResponse(
        total_memories=stats.total_memories,
        total_sessions=stats.total_sessions,
        stale_memories=stats.stale_memories,
        latest_session=stats.latest_session,
    )


@router.patch("/{project_id}/{memory_id}", response_model=MemoryUpdateResponse)
async def update_memory(
    project_id: str,
    memory_id: str,
    payload: MemoryUpdatePayload,
    engine: MemoryEngine = Depends(get_memory_engine),
) -> MemoryUpdateResponse:
    """Apply curation actions (promote, demote, bury, flag, retag)."""

    updated = await engine.update_memory(
        project_id, memory_id, payload.model_dump(exclude_none=True)
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Memory not found")
    return MemoryUpdateResponse(updated_fields=updated)


@primer_router.post("/personal-primer", response_model=SuccessResponse)
async def set_personal_primer(
    payload: PersonalPrimerRequest,
    engine: MemoryEngine = Depends(get_memory_engine),
) -> SuccessResponse:
    await engine.set_personal_primer(sanitize_text(payload.content, MAX_PRIMER_LEN))
    return SuccessResponse()
