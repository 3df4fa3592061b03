"""Pydantic models for startup probing and reconciliation bookkeeping."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionProbeResult(BaseModel):
    backend: str
    attempt_count: int = 0
    succeeded: bool = False
    error: Optional[str] = None


class Decision(str, Enum):
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    EXCLUDED = "excluded"
    ALREADY_HANDLED = "already_handled"
    SATISFIED = "satisfied"
    FUTURE_SEASONS = "future_seasons"
    REQUESTED_EPISODES = "requested_episodes"
    REQUESTED_SEASON = "requested_season"
    FAILED = "failed"


class ReconcileResult(BaseModel):
    """Outcome of reconciling one playback session."""

    decision: Decision
    series_id: Optional[int] = None
    seasons: list[int] = Field(default_factory=list)
    detail: str = ""


class DedupKind(str, Enum):
    """What was done for a season: searched for it, or switched the series to monitor new seasons."""

    SEASON = "season"
    FUTURE_SEASONS = "future_seasons"


class DedupEntry(BaseModel):
    series_id: int
    season_number: int
    kind: DedupKind = DedupKind.SEASON
    recorded_at: float


class CycleReport(BaseModel):
    """Summary of one poll cycle, exposed on the status API."""

    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    sessions: int = 0
    decisions: dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None

    def count(self, decision: Decision) -> None:
        self.decisions[decision.value] = self.decisions.get(decision.value, 0) + 1
