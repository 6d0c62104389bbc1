"""Listing API endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from platformcore.access.types import Identity
from platformcore.dispatch.listing import ListingDispatcher
from platformcore.errors import (
    DataAccessError,
    PermissionDeniedError,
    PlatformCoreError,
    SecurityError,
    UnknownEntityError,
)
from platformcore.security.tokens import AntiForgeryTokenService

logger = logging.getLogger(__name__)

NONCE_HEADER = "X-Platform-Nonce"


class NonceResponse(BaseModel):
    """Response body for the nonce endpoint."""

    nonce: str
    expiresIn: int


class ListingResponse(BaseModel):
    """Response body for a listing request."""

    draw: int
    recordsTotal: int
    recordsFiltered: int
    data: list[dict[str, Any]]


# Most specific first.
ERROR_STATUS: list[tuple[type[PlatformCoreError], int]] = [
    (SecurityError, 403),
    (PermissionDeniedError, 403),
    (UnknownEntityError, 404),
    (DataAccessError, 503),
]


def error_response(error: PlatformCoreError) -> JSONResponse:
    """Render a platform error as ``{"error": {"code", "message"}}``."""
    status = next((code for cls, code in ERROR_STATUS if isinstance(error, cls)), 500)
    return JSONResponse(status_code=status, content={"error": error.to_dict()})


def get_request_identity(request: Request) -> Identity:
    """Identity set on the request by the host's auth middleware.

    Raises:
        HTTPException 401 if the request is unauthenticated
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
        )
    return identity


def create_listing_router(
    get_dispatcher: Callable[[], ListingDispatcher | None],
    get_token_service: Callable[[], AntiForgeryTokenService | None],
) -> APIRouter:
    """Create the listing router with injected dependencies."""
    router = APIRouter(prefix="/api/datatable", tags=["datatable"])

    @router.get("/nonce", response_model=NonceResponse)
    async def issue_nonce(http_request: Request) -> NonceResponse:
        """Issue an anti-forgery token for the current identity."""
        token_service = get_token_service()
        if not token_service:
            raise HTTPException(500, "Service not initialized")

        identity = get_request_identity(http_request)
        return NonceResponse(
            nonce=token_service.generate(identity.user_id),
            expiresIn=token_service.ttl_seconds,
        )

    @router.post("/{entity}", response_model=ListingResponse)
    async def list_entity(entity: str, http_request: Request):
        """Serve one listing request (DataTables server-side protocol)."""
        dispatcher = get_dispatcher()
        if not dispatcher:
            raise HTTPException(500, "Service not initialized")

        identity = get_request_identity(http_request)
        try:
            payload = await http_request.json()
        except ValueError:
            raise HTTPException(400, "Invalid request body") from None
        if not isinstance(payload, dict):
            raise HTTPException(400, "Invalid request body")

        token = payload.get("nonce") or http_request.headers.get(NONCE_HEADER)
        try:
            envelope = await dispatcher.dispatch(entity, payload, identity, token)
        except PlatformCoreError as e:
            return error_response(e)
        return envelope.to_dict()

    return router
