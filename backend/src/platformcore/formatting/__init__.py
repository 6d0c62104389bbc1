"""Listing row formatting."""

from platformcore.formatting.row import DEFAULT_PLACEHOLDER, RowFormatter, row_identity

__all__ = ["DEFAULT_PLACEHOLDER", "RowFormatter", "row_identity"]
