"""Repository abstraction for setup progress persistence."""

from __future__ import annotations

from typing import Protocol

from .models import ProgressSnapshot


class ProgressRepository(Protocol):
    """Protocol for progress persistence backends."""

    async def save_progress(self, snapshot: ProgressSnapshot) -> None:
        """Persist the snapshot, replacing any earlier one for its domain."""

    async def load_progress(self, domain: str) -> ProgressSnapshot | None:
        """Retrieve saved progress for a domain."""

    async def delete_progress(self, domain: str) -> None:
        """Forget saved progress for a domain."""

    async def list_progress(self) -> list[ProgressSnapshot]:
        """Return all saved snapshots."""
