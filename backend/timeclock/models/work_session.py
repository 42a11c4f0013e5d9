"""
Work Session Models

SQLAlchemy models for the clock-in lifecycle: one WorkSession per worked
period, with zero or more WorkPause windows inside it.
"""
import uuid
from datetime import datetime
from typing import Optional, List, Any
from enum import Enum
from sqlalchemy import String, DateTime, Text, Index, func, text, ForeignKey, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeclock.core.database import Base


class SessionStatus(str, Enum):
    """Work session status values."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


OPEN_STATUSES = (SessionStatus.ACTIVE, SessionStatus.PAUSED)


class WorkSession(Base):
    """
    One worked period of a single owner.

    Fields:
    - start_time (required): Instant the period began
    - end_time: Instant the period ended, NULL while open
    - status: active | paused | completed | abandoned
    - total_duration: Net worked time as "HH:MM:SS", set on completion
    - notes: Optional free text
    - device_info: Opaque metadata captured at start

    Only ONE session per owner may be active or paused; the partial unique
    index below enforces it in the database.
    """
    __tablename__ = "work_sessions"
    __table_args__ = (
        Index("ix_work_sessions_user_created", "user_id", "created_at"),
        Index(
            "ix_work_sessions_active_unique",
            "user_id",
            unique=True,
            postgresql_where=text("status IN ('active', 'paused')"),
            sqlite_where=text("status IN ('active', 'paused')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    # Session timestamps
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[SessionStatus] = mapped_column(
        SQLEnum(
            SessionStatus,
            name="work_session_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )
    total_duration: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    device_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    pauses: Mapped[List["WorkPause"]] = relationship(
        "WorkPause",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="WorkPause.pause_start",
    )

    @property
    def open_pause(self) -> Optional["WorkPause"]:
        for pause in self.pauses:
            if pause.pause_end is None:
                return pause
        return None


class WorkPause(Base):
    """
    One pause window inside a work session.

    pause_end is NULL while the pause is open; at most one open pause per
    session is allowed (partial unique index).
    """
    __tablename__ = "work_pauses"
    __table_args__ = (
        Index(
            "ix_work_pauses_open_unique",
            "session_id",
            unique=True,
            postgresql_where=text("pause_end IS NULL"),
            sqlite_where=text("pause_end IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("work_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    pause_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    pause_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    session = relationship("WorkSession", back_populates="pauses")
