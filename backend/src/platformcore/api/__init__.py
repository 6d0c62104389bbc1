"""HTTP surface - listing router and FastAPI application."""

from platformcore.api.endpoints import (
    NONCE_HEADER,
    create_listing_router,
    error_response,
    get_request_identity,
)

__all__ = ["NONCE_HEADER", "create_listing_router", "error_response", "get_request_identity"]
