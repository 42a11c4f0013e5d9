"""
Work Session Schemas

Pydantic snapshots of the lifecycle state. The controller keeps these
instead of live ORM objects so its state never depends on an open
database session.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Any
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator

from timeclock.models.work_session import SessionStatus
from timeclock.services.time_accounting import ensure_utc


class LifecycleState(str, Enum):
    """Controller states. Completed/abandoned sessions leave the machine."""
    NO_SESSION = "no_session"
    ACTIVE = "active"
    PAUSED = "paused"


class WorkPauseSnapshot(BaseModel):
    """Schema for a pause window."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    pause_start: datetime
    pause_end: Optional[datetime] = None

    @field_validator('pause_start', 'pause_end')
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class WorkSessionSnapshot(BaseModel):
    """Schema for a work session together with its pauses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus
    total_duration: Optional[str] = None
    notes: Optional[str] = None
    device_info: Optional[dict[str, Any]] = None
    pauses: List[WorkPauseSnapshot] = Field(default_factory=list)

    @field_validator('start_time', 'end_time')
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def open_pause(self) -> Optional[WorkPauseSnapshot]:
        return next((p for p in self.pauses if p.pause_end is None), None)


class AbandonedSession(BaseModel):
    """An open session left beyond the staleness threshold, awaiting recover/discard."""
    id: UUID
    start_time: datetime
    time_message: str


class SessionState(BaseModel):
    """Read model exposed to the presentation layer."""
    state: LifecycleState
    active_session: Optional[WorkSessionSnapshot] = None
    elapsed_seconds: int = 0
    elapsed_time: str = "00:00:00"
    is_paused: bool = False
    pause_count: int = 0
    loading: bool = False
    abandoned_session: Optional[AbandonedSession] = None


class WorkSessionStart(BaseModel):
    """Schema for starting a work session (clock-in)."""
    notes: Optional[str] = Field(None, max_length=2000, description="Optional note about the work")

    @field_validator('notes')
    @classmethod
    def trim_notes(cls, v: Optional[str]) -> Optional[str]:
        if v:
            v = v.strip()
        return v if v else None


class WorkSessionNotesUpdate(BaseModel):
    """Schema for editing a completed session. Only notes are editable."""
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('notes')
    @classmethod
    def trim_notes(cls, v: Optional[str]) -> Optional[str]:
        if v:
            v = v.strip()
        return v if v else None


class WorkSessionHistoryItem(BaseModel):
    """Schema for one completed session in the history list."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus
    total_duration: Optional[str] = None
    notes: Optional[str] = None
    pause_count: int = 0

    @field_validator('start_time', 'end_time')
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class WorkSessionHistoryResponse(BaseModel):
    """Schema for the history list response."""
    sessions: List[WorkSessionHistoryItem]
    total: int


class WeeklyStatsResponse(BaseModel):
    """Schema for the weekly worked-time summary."""
    week_start: datetime
    completed_seconds: int
    live_seconds: int
    total_seconds: int
    total_time: str
