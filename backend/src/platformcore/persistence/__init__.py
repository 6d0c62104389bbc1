"""Persistence layer - engine configuration and read-side query execution."""

from platformcore.persistence.config import DatabaseConfig, create_db_engine
from platformcore.persistence.database import Database

__all__ = ["Database", "DatabaseConfig", "create_db_engine"]
