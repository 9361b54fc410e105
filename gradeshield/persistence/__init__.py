"""
Data persistence layer.

Provides the abstract repository and its JSON-file and PostgreSQL
implementations, plus the verification audit log.
"""

from __future__ import annotations

from typing import Optional

from ..config import Config, get_config
from ..exceptions import ConfigurationError
from .audit import AuditLog
from .json_store import JSONStore
from .repository import JSONRepository, StoredGrades, VerificationRepository


def create_repository(config: Optional[Config] = None) -> VerificationRepository:
    """Repository selected by STORAGE_BACKEND (json | postgres)."""
    config = config or get_config()
    backend = config.storage_backend
    if backend == "json":
        return JSONRepository(config.data_dir / "store")
    if backend == "postgres":
        if not config.db.is_configured:
            raise ConfigurationError("STORAGE_BACKEND=postgres requires DB_HOST, DB_NAME and DB_USER", "DB_HOST")
        from .postgres import PostgresRepository
        repository = PostgresRepository(config.db)
        repository.init_db()
        return repository
    raise ConfigurationError(f"Unknown storage backend: {backend}", "STORAGE_BACKEND")


__all__ = [
    "AuditLog",
    "JSONStore",
    "JSONRepository",
    "StoredGrades",
    "VerificationRepository",
    "create_repository",
]
