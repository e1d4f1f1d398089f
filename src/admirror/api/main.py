"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlmodel import SQLModel

from admirror.api.routes import entities, sync as sync_routes
from admirror.config import get_settings
from admirror.db.engine import get_engine
from admirror.sync.service import MirrorSyncService, build_sync_service


def create_app(engine=None, sync_service: Optional[MirrorSyncService] = None) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        engine: Mirror engine; defaults to get_engine() at startup.
        sync_service: Process-wide sync service; built from the engine and
            settings at startup when not given.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = engine if engine is not None else get_engine()
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(db_engine)
        app.state.sync_service = sync_service or build_sync_service(
            db_engine, get_settings()
        )
        yield

    app = FastAPI(
        title="Broadstreet Mirror API",
        description="Local mirror of Broadstreet advertising inventory",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(entities.router, prefix="/entities", tags=["entities"])

    return app


# Module-level app instance for uvicorn
app = create_app()
