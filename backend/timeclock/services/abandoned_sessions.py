"""
Abandoned Session Detection

On start-up the owner may still have a session open from an earlier run.
A recent one is simply resumed; one older than the staleness threshold is
held back and surfaced for an explicit recover/discard decision.

The effective threshold never exceeds the maximum session duration: an
open session past that limit can no longer be completed, so it is always
surfaced instead of being loaded as active.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from timeclock.core.clock import Clock
from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.schemas.work_session import AbandonedSession
from timeclock.services.logging import session_logger
from timeclock.services.time_accounting import ensure_utc, describe_elapsed

logger = logging.getLogger(__name__)


class AbandonedSessionDetector:
    def __init__(self, repository: WorkSessionRepository, clock: Clock, threshold: timedelta):
        self.repository = repository
        self.clock = clock
        self.threshold = min(threshold, repository.max_session_duration)

    def flag(self, session_id: uuid.UUID, start_time: datetime, user_id: Optional[uuid.UUID]) -> AbandonedSession:
        """Build the pending AbandonedSession for an open session and log it."""
        start_time = ensure_utc(start_time)
        abandoned = AbandonedSession(
            id=session_id,
            start_time=start_time,
            time_message=describe_elapsed(self.clock.now() - start_time),
        )
        session_logger.abandoned_detected(session_id, user_id, start_time, abandoned.time_message)
        return abandoned

    async def detect(self, user_id: uuid.UUID) -> Optional[AbandonedSession]:
        """
        Look for a stale open session of the owner.

        Returns:
            The pending AbandonedSession when the owner's open session is older
            than the threshold, otherwise None (no open session, or a fresh one
            that can be loaded normally).
        """
        session = await self.repository.get_open_session(user_id)
        if session is None:
            return None

        age = self.clock.now() - ensure_utc(session.start_time)
        if age <= self.threshold:
            logger.debug(f"Open session {session.id} is {age} old, resuming normally")
            return None

        return self.flag(session.id, session.start_time, user_id)
