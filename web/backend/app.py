import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.entry_repository import EntryRepository
from web.backend.routers import entries

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api")


def create_app(repository: Optional[EntryRepository] = None) -> FastAPI:
    app = FastAPI(title="Daily Forge API", version="1.0")
    app.state.entry_repository = repository if repository is not None else EntryRepository()

    raw_origins = os.getenv("DAILY_FORGE_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "Daily Forge"}

    app.include_router(entries.router, prefix="/api/entries", tags=["entries"])

    logger.info("Entries stored at: %s", app.state.entry_repository.path)
    return app


app = create_app()
