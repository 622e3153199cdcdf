"""Persistence layer for fedlink setup progress."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FedlinkConfig, load_config
from .inmemory import InMemoryProgressRepository
from .models import ProgressSnapshot
from .repository import ProgressRepository
from .sqlite import SQLiteProgressRepository

_repository_instance: ProgressRepository | None = None
_repository_url: str | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[FedlinkConfig] = None
) -> ProgressRepository:
    """Factory function to obtain a progress repository.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via the ``FEDLINK_DATABASE_URL`` environment variable, or
    from loaded configuration. When no database is configured, an in-memory
    repository is returned. Repeated calls resolving to the same backend
    share one instance.
    """

    global _repository_instance, _repository_url
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("FEDLINK_DATABASE_URL")
        or getattr(config, "database_url", None)
        or ""
    )
    if _repository_instance is not None and database_url == _repository_url:
        return _repository_instance

    if not database_url:
        repository: ProgressRepository = InMemoryProgressRepository()
    elif database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        repository = SQLiteProgressRepository(path)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    _repository_instance = repository
    _repository_url = database_url
    return repository


def reset_repository() -> None:
    """Drop the cached repository so the next lookup builds a fresh one."""

    global _repository_instance, _repository_url
    if isinstance(_repository_instance, SQLiteProgressRepository):
        _repository_instance.close()
    _repository_instance = None
    _repository_url = None


__all__ = [
    "InMemoryProgressRepository",
    "ProgressRepository",
    "ProgressSnapshot",
    "SQLiteProgressRepository",
    "get_repository",
    "reset_repository",
]
