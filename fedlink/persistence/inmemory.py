"""In-memory implementation of the progress repository."""

from __future__ import annotations

from typing import Dict

from .models import ProgressSnapshot
from .repository import ProgressRepository


class InMemoryProgressRepository(ProgressRepository):
    """Store progress in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, ProgressSnapshot] = {}

    async def save_progress(self, snapshot: ProgressSnapshot) -> None:
        self._snapshots[snapshot.domain] = snapshot.model_copy(deep=True)

    async def load_progress(self, domain: str) -> ProgressSnapshot | None:
        snapshot = self._snapshots.get(domain)
        return snapshot.model_copy(deep=True) if snapshot else None

    async def delete_progress(self, domain: str) -> None:
        self._snapshots.pop(domain, None)

    async def list_progress(self) -> list[ProgressSnapshot]:
        return [s.model_copy(deep=True) for s in self._snapshots.values()]
