"""Runtime settings for the platform core."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from platformcore.persistence.config import DatabaseConfig

DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    """Settings for the listing engine.

    Attributes:
        database: Database connection configuration
        secret_key: Key used to sign anti-forgery tokens
        nonce_ttl_seconds: Lifetime of an anti-forgery token
        query_timeout: Upper bound (seconds) for the queries of one listing
        slow_query_ms: Listings slower than this are logged as warnings
        max_page_length: Positive page lengths are clamped to this value;
            None (the default) serves the requested length
        relation_cache_ttl: Seconds a resolved relation stays memoized
        relation_cache_size: Maximum number of memoized relations
        count_cache_ttl: Seconds a total count is reused (0 disables)
        placeholder: Rendered in place of missing optional values
        entities_path: Directory holding entity descriptor YAML files
        trust_identity_headers: Build the caller identity from X-Identity-*
            headers (development and tests; production hosts set
            request.state.identity in their own auth middleware)
    """

    database: DatabaseConfig = field(
        default_factory=lambda: DatabaseConfig(url="sqlite:///:memory:")
    )
    secret_key: str = DEFAULT_SECRET_KEY
    nonce_ttl_seconds: int = 12 * 60 * 60
    query_timeout: float = 10.0
    slow_query_ms: float = 500.0
    max_page_length: int | None = None
    relation_cache_ttl: float = 300.0
    relation_cache_size: int = 10_000
    count_cache_ttl: float = 0.0
    placeholder: str = "-"
    entities_path: Path | None = None
    trust_identity_headers: bool = False

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> Settings:
        """Create settings from environment variables.

        Database resolution follows DatabaseConfig.from_env. The entity
        descriptor directory defaults to ``{base_path}/entities``.
        """
        entities_path: Path | None = None
        raw_path = os.environ.get("PLATFORMCORE_ENTITIES_PATH")
        if raw_path:
            entities_path = Path(raw_path)
        elif base_path:
            entities_path = base_path / "entities"

        return cls(
            database=DatabaseConfig.from_env(base_path),
            secret_key=os.environ.get("PLATFORMCORE_SECRET_KEY", DEFAULT_SECRET_KEY),
            nonce_ttl_seconds=_env_int("PLATFORMCORE_NONCE_TTL", 12 * 60 * 60),
            query_timeout=_env_float("PLATFORMCORE_QUERY_TIMEOUT", 10.0),
            slow_query_ms=_env_float("PLATFORMCORE_SLOW_QUERY_MS", 500.0),
            max_page_length=_env_int("PLATFORMCORE_MAX_PAGE_LENGTH", 0) or None,
            relation_cache_ttl=_env_float("PLATFORMCORE_RELATION_CACHE_TTL", 300.0),
            count_cache_ttl=_env_float("PLATFORMCORE_COUNT_CACHE_TTL", 0.0),
            entities_path=entities_path,
            trust_identity_headers=os.environ.get(
                "PLATFORMCORE_TRUST_IDENTITY_HEADERS", ""
            ).lower() in ("1", "true", "yes"),
        )
