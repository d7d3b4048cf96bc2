"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import SQLModel

from agencysync.api import deps
from agencysync.api.routes import entities, sync as sync_routes
from agencysync.db.engine import get_engine, import_models
from agencysync.sync.engine import SyncEngine


def create_app(engine=None) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        engine: Database engine to serve from. Defaults to the application
                engine from settings; tests pass an in-memory one.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        if engine is None:
            get_engine()
        else:
            import_models()
            SQLModel.metadata.create_all(engine)
        yield

    app = FastAPI(
        title="Agency Sync API",
        description="Provider sync jobs and entity resolution",
        version="0.1.0",
        lifespan=lifespan,
    )

    if engine is not None:
        runner = SyncEngine(engine)
        app.dependency_overrides[deps.get_db_engine] = lambda: engine
        app.dependency_overrides[deps.get_runner] = lambda: runner

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(entities.router, prefix="/entities", tags=["entities"])

    return app


# Module-level app instance for uvicorn
app = create_app()
