"""SQLite implementation of the progress repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

from .models import ProgressSnapshot
from .repository import ProgressRepository


class SQLiteProgressRepository(ProgressRepository):
    """Persist setup progress using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS progress (
                domain TEXT PRIMARY KEY,
                tenant_id TEXT,
                snapshot TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def save_progress(self, snapshot: ProgressSnapshot) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO progress (domain, tenant_id, snapshot, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(domain) DO UPDATE SET
                tenant_id = excluded.tenant_id,
                snapshot = excluded.snapshot,
                updated_at = excluded.updated_at
            """,
            snapshot.domain,
            snapshot.tenant_id,
            snapshot.model_dump_json(),
            snapshot.updated_at.isoformat(),
        )

    async def load_progress(self, domain: str) -> ProgressSnapshot | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT snapshot FROM progress WHERE domain = ?",
            domain,
        )
        if not row:
            return None
        return ProgressSnapshot.model_validate_json(row["snapshot"])

    async def delete_progress(self, domain: str) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM progress WHERE domain = ?", domain)

    async def list_progress(self) -> list[ProgressSnapshot]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT snapshot FROM progress ORDER BY domain"
        )
        return [ProgressSnapshot.model_validate_json(r["snapshot"]) for r in rows]
