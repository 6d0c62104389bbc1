"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from platformcore.access import AccessRelationResolver, Identity, SqlRelationProvider
from platformcore.api.endpoints import create_listing_router
from platformcore.cache import CountCache, RelationCache
from platformcore.config import Settings
from platformcore.dispatch import ListingDispatcher
from platformcore.entities import EntityLoader, EntityRegistry
from platformcore.persistence import Database
from platformcore.security import AntiForgeryTokenService

logger = logging.getLogger(__name__)

# Global instances (initialized on startup)
settings: Settings | None = None
db: Database | None = None
resolver: AccessRelationResolver | None = None
token_service: AntiForgeryTokenService | None = None
dispatcher: ListingDispatcher | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global settings, db, resolver, token_service, dispatcher

    # Find base path (relative to cwd, which should be /backend)
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd

    settings = Settings.from_env(base_path)

    if settings.entities_path is not None:
        names = EntityLoader(settings.entities_path).register_all()
        logger.info("Registered %d entities from %s", len(names), settings.entities_path)

    db = Database.from_config(settings.database)
    resolver = AccessRelationResolver(
        SqlRelationProvider(db),
        RelationCache(ttl=settings.relation_cache_ttl, maxsize=settings.relation_cache_size),
    )
    token_service = AntiForgeryTokenService(settings.secret_key, settings.nonce_ttl_seconds)
    dispatcher = ListingDispatcher(
        db,
        resolver,
        token_service,
        settings=settings,
        count_cache=CountCache(settings.count_cache_ttl),
    )

    yield

    # Cleanup
    if db:
        db.dispose()


app = FastAPI(title="Platform Core API", lifespan=lifespan)

# CORS for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def identity_middleware(request: Request, call_next):
    """Set request.state.identity from trusted X-Identity-* headers.

    Only active when PLATFORMCORE_TRUST_IDENTITY_HEADERS is set; otherwise
    the host's own auth middleware is expected to set the identity.
    """
    if not hasattr(request.state, "identity"):
        request.state.identity = None

    if settings and settings.trust_identity_headers:
        user_id = request.headers.get("X-Identity-Id")
        if user_id:
            request.state.identity = Identity(
                user_id=user_id,
                capabilities=frozenset(_split(request.headers.get("X-Identity-Capabilities"))),
                roles=tuple(_split(request.headers.get("X-Identity-Roles"))),
            )

    return await call_next(request)


def _split(raw: str | None) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


app.include_router(
    create_listing_router(
        get_dispatcher=lambda: dispatcher,
        get_token_service=lambda: token_service,
    )
)


@app.get("/api/entities")
async def list_entities() -> dict[str, Any]:
    """List registered entities."""
    entities = []
    for name in EntityRegistry.list_registered():
        descriptor = EntityRegistry.get(name)
        if descriptor:
            entities.append({
                "name": descriptor.name,
                "displayName": descriptor.display_name,
                "columns": [column.alias for column in descriptor.columns],
            })
    return {"data": entities}


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
