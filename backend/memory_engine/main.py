from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from memory_engine.api import memory as memory_api
from memory_engine.core.config import get_settings
from memory_engine.core.logging import setup_logging
from memory_engine.db.base import create_engine, create_sessionmaker, init_db
from memory_engine.services.memory_service import create_memory_engine


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    setup_logging(settings.log_level)

    engine = create_engine(settings.db_url)
    sessionmaker = create_sessionmaker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        yield
        await engine.dispose()

    app = FastAPI(lifespan=lifespan)
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.memory_engine = create_memory_engine(sessionmaker=sessionmaker, settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(memory_api.health_router)
    app.include_router(memory_api.router)
    app.include_router(memory_api.primer_router)

    return app


app = create_app()
