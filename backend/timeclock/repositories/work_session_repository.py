"""
Work Session Repository

Persistence collaborator for the session lifecycle. Every public method is
one transaction, like a single call to a remote store. Compound lifecycle
writes (pause, resume, complete, recover, abandon) commit atomically so a
failure never leaves a half-applied transition behind.

Store-side rules enforced here:
- One active/paused session per owner (partial unique index)
- One open pause per session (partial unique index)
- end_time / pause_end strictly after their start
- Completed sessions may not exceed the maximum duration
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional, Any, AsyncIterator

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from timeclock.core.config import settings
from timeclock.core.database import async_session_maker
from timeclock.core.exceptions import (
    WorkSessionError,
    ConstraintViolation,
    NotFoundError,
    TransientPersistenceError,
)
from timeclock.models.work_session import WorkSession, WorkPause, SessionStatus, OPEN_STATUSES
from timeclock.services.time_accounting import ensure_utc

logger = logging.getLogger(__name__)

# Columns the lifecycle may write through update_session()
UPDATABLE_FIELDS = {"status", "end_time", "total_duration", "notes"}


def constraint_from_integrity_error(exc: IntegrityError) -> ConstraintViolation:
    """Translate a database integrity error into a business constraint violation."""
    text = str(exc.orig) if exc.orig is not None else str(exc)
    if "ix_work_sessions_active_unique" in text or "work_sessions.user_id" in text:
        return ConstraintViolation(
            "Ya existe una sesión activa para este usuario.",
            code="ACTIVE_SESSION_EXISTS",
        )
    if "ix_work_pauses_open_unique" in text or "work_pauses.session_id" in text:
        return ConstraintViolation(
            "La sesión ya tiene una pausa abierta.",
            code="OPEN_PAUSE_EXISTS",
        )
    return ConstraintViolation(code="INTEGRITY_ERROR")


class WorkSessionRepository:
    def __init__(
        self,
        session_maker: Optional[async_sessionmaker] = None,
        max_session_duration: Optional[timedelta] = None,
    ):
        self.session_maker = session_maker or async_session_maker
        self.max_session_duration = max_session_duration or settings.max_session_duration

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as db:
            try:
                yield db
                await db.commit()
            except WorkSessionError:
                await db.rollback()
                raise
            except IntegrityError as e:
                await db.rollback()
                logger.warning(f"Work session write rejected by store: {e.orig}")
                raise constraint_from_integrity_error(e) from e
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Work session store failure: {e}")
                raise TransientPersistenceError() from e

    # ------------------------------------------------------------------
    # Policy checks
    # ------------------------------------------------------------------

    def _check_session(self, session: WorkSession) -> None:
        if session.end_time is None:
            return
        start = ensure_utc(session.start_time)
        end = ensure_utc(session.end_time)
        if end <= start:
            raise ConstraintViolation(
                "La hora de fin debe ser posterior a la hora de inicio.",
                code="INVALID_TIME_RANGE",
            )
        # Abandoned sessions record the discard instant, not worked time
        if session.status == SessionStatus.COMPLETED and end - start > self.max_session_duration:
            hours = self.max_session_duration.total_seconds() / 3600
            raise ConstraintViolation(
                f"Una sesión no puede durar más de {hours:g} horas.",
                code="MAX_DURATION_EXCEEDED",
            )

    @staticmethod
    def _check_pause(pause: WorkPause) -> None:
        if pause.pause_end is not None and ensure_utc(pause.pause_end) <= ensure_utc(pause.pause_start):
            raise ConstraintViolation(
                "El fin de la pausa debe ser posterior a su inicio.",
                code="INVALID_TIME_RANGE",
            )

    # ------------------------------------------------------------------
    # Loading helpers (run inside an open transaction)
    # ------------------------------------------------------------------

    async def _load_session(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> WorkSession:
        query = (
            select(WorkSession)
            .options(selectinload(WorkSession.pauses))
            .where(WorkSession.id == session_id)
        )
        if user_id is not None:
            query = query.where(WorkSession.user_id == user_id)
        result = await db.execute(query)
        session = result.scalar_one_or_none()
        if not session:
            raise NotFoundError(f"Sesión {session_id} no encontrada.", code="SESSION_NOT_FOUND")
        return session

    def _close_open_pause(self, session: WorkSession, at: datetime) -> Optional[WorkPause]:
        """
        Close the session's open pause at `at`.

        A pause closed at the instant it began is removed instead: it holds no
        time, and pause_end must stay strictly after pause_start.
        """
        pause = session.open_pause
        if pause is None:
            return None
        if ensure_utc(at) == ensure_utc(pause.pause_start):
            session.pauses.remove(pause)
            return pause
        pause.pause_end = at
        self._check_pause(pause)
        return pause

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_open_session(self, user_id: uuid.UUID) -> Optional[WorkSession]:
        """Most recent active/paused session of the owner, with its pauses."""
        async with self._transaction() as db:
            result = await db.execute(
                select(WorkSession)
                .options(selectinload(WorkSession.pauses))
                .where(WorkSession.user_id == user_id)
                .where(WorkSession.status.in_(OPEN_STATUSES))
                .order_by(WorkSession.created_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def get_session(self, session_id: uuid.UUID) -> WorkSession:
        async with self._transaction() as db:
            return await self._load_session(db, session_id)

    async def list_pauses(self, session_id: uuid.UUID) -> list[WorkPause]:
        async with self._transaction() as db:
            result = await db.execute(
                select(WorkPause)
                .where(WorkPause.session_id == session_id)
                .order_by(WorkPause.pause_start)
            )
            return list(result.scalars().all())

    async def list_completed_sessions(
        self,
        user_id: uuid.UUID,
        started_from: Optional[datetime] = None,
        started_until: Optional[datetime] = None,
    ) -> list[tuple[WorkSession, int]]:
        """Completed sessions, newest first, each with its pause count."""
        async with self._transaction() as db:
            query = (
                select(WorkSession, func.count(WorkPause.id))
                .outerjoin(WorkPause, WorkPause.session_id == WorkSession.id)
                .where(WorkSession.user_id == user_id)
                .where(WorkSession.status == SessionStatus.COMPLETED)
                .group_by(WorkSession.id)
                .order_by(WorkSession.start_time.desc())
            )
            if started_from is not None:
                query = query.where(WorkSession.start_time >= started_from)
            if started_until is not None:
                query = query.where(WorkSession.start_time <= started_until)
            result = await db.execute(query)
            return [(session, count) for session, count in result.all()]

    async def list_completed_durations(self, user_id: uuid.UUID, started_from: datetime) -> list[str]:
        async with self._transaction() as db:
            result = await db.execute(
                select(WorkSession.total_duration)
                .where(WorkSession.user_id == user_id)
                .where(WorkSession.status == SessionStatus.COMPLETED)
                .where(WorkSession.start_time >= started_from)
            )
            return [value for value in result.scalars().all() if value]

    # ------------------------------------------------------------------
    # Single-row writes
    # ------------------------------------------------------------------

    async def create_session(
        self,
        user_id: uuid.UUID,
        start_time: datetime,
        notes: Optional[str] = None,
        device_info: Optional[dict[str, Any]] = None,
    ) -> WorkSession:
        async with self._transaction() as db:
            session = WorkSession(
                user_id=user_id,
                start_time=start_time,
                status=SessionStatus.ACTIVE,
                notes=notes,
                device_info=device_info,
                pauses=[],
            )
            db.add(session)
            await db.flush()
            return session

    async def update_session(
        self,
        session_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        **values,
    ) -> WorkSession:
        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update work session fields: {sorted(unknown)}")
        async with self._transaction() as db:
            session = await self._load_session(db, session_id, user_id)
            for field, value in values.items():
                setattr(session, field, value)
            self._check_session(session)
            await db.flush()
            return session

    async def create_pause(self, session_id: uuid.UUID, pause_start: datetime) -> WorkPause:
        async with self._transaction() as db:
            await self._load_session(db, session_id)
            pause = WorkPause(session_id=session_id, pause_start=pause_start)
            db.add(pause)
            await db.flush()
            return pause

    async def close_open_pause(self, session_id: uuid.UUID, pause_end: datetime) -> WorkPause:
        """Set pause_end on the session's only open pause."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            pause = self._close_open_pause(session, pause_end)
            if pause is None:
                raise NotFoundError(
                    "No hay ninguna pausa abierta para esta sesión.",
                    code="OPEN_PAUSE_NOT_FOUND",
                )
            await db.flush()
            return pause

    async def delete_session(self, session_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete a session; its pauses go with it."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id, user_id)
            await db.delete(session)

    # ------------------------------------------------------------------
    # Atomic lifecycle writes
    # ------------------------------------------------------------------

    async def begin_pause(self, session_id: uuid.UUID, at: datetime) -> WorkPause:
        """Open a pause and flip the session to paused."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            if session.status != SessionStatus.ACTIVE:
                raise ConstraintViolation(
                    "Solo se puede pausar una sesión activa.",
                    code="SESSION_NOT_ACTIVE",
                )
            pause = WorkPause(session_id=session_id, pause_start=at)
            db.add(pause)
            session.status = SessionStatus.PAUSED
            await db.flush()
            return pause

    async def end_pause(self, session_id: uuid.UUID, at: datetime) -> WorkPause:
        """Close the open pause and flip the session back to active."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            pause = self._close_open_pause(session, at)
            if pause is None:
                raise NotFoundError(
                    "No hay ninguna pausa abierta para esta sesión.",
                    code="OPEN_PAUSE_NOT_FOUND",
                )
            session.status = SessionStatus.ACTIVE
            await db.flush()
            return pause

    async def complete_session(
        self,
        session_id: uuid.UUID,
        end_time: datetime,
        total_duration: str,
    ) -> WorkSession:
        """Close any open pause at end_time and mark the session completed."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            self._close_open_pause(session, end_time)
            session.end_time = end_time
            session.status = SessionStatus.COMPLETED
            session.total_duration = total_duration
            self._check_session(session)
            await db.flush()
            return session

    async def recover_session(self, session_id: uuid.UUID, at: datetime) -> WorkSession:
        """Reactivate a stale session; a pause left open is closed at `at`."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            self._close_open_pause(session, at)
            session.status = SessionStatus.ACTIVE
            await db.flush()
            return session

    async def abandon_session(self, session_id: uuid.UUID, at: datetime) -> WorkSession:
        """Mark a stale session abandoned, ending it at `at`."""
        async with self._transaction() as db:
            session = await self._load_session(db, session_id)
            self._close_open_pause(session, at)
            session.status = SessionStatus.ABANDONED
            session.end_time = at
            self._check_session(session)
            await db.flush()
            return session
