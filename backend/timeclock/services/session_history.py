"""
Session History Service

History management for finished sessions: listing, editing notes and
deleting. This sits outside the lifecycle state machine; open sessions
cannot be edited or deleted from here.
"""
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from timeclock.core.exceptions import NotFoundError, ValidationError
from timeclock.models.work_session import OPEN_STATUSES
from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.schemas.work_session import WorkSessionHistoryItem


class SessionHistoryService:
    def __init__(self, repository: WorkSessionRepository):
        self.repository = repository

    async def list_sessions(
        self,
        user_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[WorkSessionHistoryItem]:
        """
        Completed sessions of the owner, newest first.

        end_date is inclusive: sessions starting any time that day are kept.
        """
        started_from = None
        started_until = None
        if start_date is not None:
            started_from = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        if end_date is not None:
            started_until = datetime.combine(end_date, time.max, tzinfo=timezone.utc)
        if started_from and started_until and started_until < started_from:
            raise ValidationError(
                "La fecha final debe ser posterior a la fecha inicial.",
                code="INVALID_DATE_RANGE",
            )

        rows = await self.repository.list_completed_sessions(user_id, started_from, started_until)
        items = []
        for session, pause_count in rows:
            item = WorkSessionHistoryItem.model_validate(session)
            item.pause_count = pause_count
            items.append(item)
        return items

    async def _get_owned_closed_session(self, session_id: uuid.UUID, user_id: uuid.UUID):
        session = await self.repository.get_session(session_id)
        if session.user_id != user_id:
            raise NotFoundError(f"Sesión {session_id} no encontrada.", code="SESSION_NOT_FOUND")
        if session.status in OPEN_STATUSES:
            raise ValidationError(
                "La sesión sigue abierta. Finalízala antes de editarla.",
                code="SESSION_STILL_OPEN",
            )
        return session

    async def update_notes(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
        notes: Optional[str],
    ) -> WorkSessionHistoryItem:
        """Edit the notes of a finished session. Durations stay untouched."""
        session = await self._get_owned_closed_session(session_id, user_id)
        updated = await self.repository.update_session(session.id, user_id=user_id, notes=notes)
        item = WorkSessionHistoryItem.model_validate(updated)
        item.pause_count = len(updated.pauses)
        return item

    async def delete_session(self, session_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete a finished session together with its pauses."""
        session = await self._get_owned_closed_session(session_id, user_id)
        await self.repository.delete_session(session.id, user_id)
