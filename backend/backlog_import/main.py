"""Backlog Import API — main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backlog_import.api.routes import config, health, imports, work_items
from backlog_import.core.config import settings
from backlog_import.core.database import create_tables
from backlog_import.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(level=settings.LOG_LEVEL)
    if settings.DATABASE_AUTO_CREATE:
        await create_tables()
        logger.info("Database tables ensured")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Bulk import of work items from CSV/JSON exports into a "
        "hierarchical, dependency-linked backlog."
    ),
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router, tags=["health"])
app.include_router(config.router, prefix="/api/v1/config", tags=["config"])
app.include_router(imports.router, prefix="/api/v1", tags=["import"])
app.include_router(work_items.router, prefix="/api/v1", tags=["work-items"])
