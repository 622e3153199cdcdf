"""Data models used by progress persistence backends."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..contracts import StepStatusInfo


class ProgressSnapshot(BaseModel):
    """Saved state of one federation setup, keyed by domain."""

    domain: str
    tenant_id: Optional[str] = None
    steps: Dict[str, StepStatusInfo] = Field(default_factory=dict)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
