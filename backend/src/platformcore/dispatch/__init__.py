"""Listing request dispatch."""

from platformcore.dispatch.listing import (
    ALL_STATUSES,
    DispatchState,
    ListingDispatcher,
    ResultEnvelope,
    status_clauses,
)

__all__ = [
    "ALL_STATUSES",
    "DispatchState",
    "ListingDispatcher",
    "ResultEnvelope",
    "status_clauses",
]
