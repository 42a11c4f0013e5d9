"""
Weekly Statistics

Worked time of the current week: the stored durations of completed
sessions that started this week, plus the live elapsed time of the
session that is still running.
"""
import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.schemas.work_session import WeeklyStatsResponse
from timeclock.services.time_accounting import format_duration, parse_duration


def start_of_week(now: datetime, tz_name: str = "UTC") -> datetime:
    """Monday 00:00 of the week containing `now`, in tz_name, returned in UTC."""
    local = now.astimezone(ZoneInfo(tz_name))
    monday = (local - timedelta(days=local.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return monday.astimezone(timezone.utc)


class WeeklyStatsService:
    def __init__(self, repository: WorkSessionRepository, tz_name: str = "UTC"):
        self.repository = repository
        self.tz_name = tz_name

    async def summary(
        self,
        user_id: uuid.UUID,
        now: datetime,
        live_elapsed_seconds: int = 0,
        has_active_session: bool = False,
    ) -> WeeklyStatsResponse:
        week_start = start_of_week(now, self.tz_name)
        durations = await self.repository.list_completed_durations(user_id, week_start)
        completed_seconds = sum(parse_duration(value) for value in durations)
        live_seconds = live_elapsed_seconds if has_active_session else 0
        total = completed_seconds + live_seconds
        return WeeklyStatsResponse(
            week_start=week_start,
            completed_seconds=completed_seconds,
            live_seconds=live_seconds,
            total_seconds=total,
            total_time=format_duration(total),
        )
