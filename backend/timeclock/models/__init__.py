# Models module
from timeclock.models.work_session import WorkSession, WorkPause, SessionStatus, OPEN_STATUSES

__all__ = [
    "WorkSession",
    "WorkPause",
    "SessionStatus",
    "OPEN_STATUSES",
]
