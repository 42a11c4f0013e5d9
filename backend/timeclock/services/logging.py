"""
Structured Logging Service

Provides session-aware structured logging for lifecycle events:
- Session started / paused / resumed / ended
- Abandoned session detected / recovered / discarded
- Optimistic transition rolled back
- Store constraint rejections
- Ticker recomputation failures

Each log entry includes:
- event
- severity (INFO/WARN/ERROR)
- entity_type (session, ticker)
- entity_id / user_id (if applicable)
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Any
from uuid import UUID
from enum import Enum


class LogSeverity(str, Enum):
    """Log severity levels."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntityType(str, Enum):
    """Entity types for structured logging."""
    SESSION = "session"
    TICKER = "ticker"


class StructuredLogger:
    """
    Structured logging service for work session events.

    Logs are emitted as one JSON document per line.
    """

    def __init__(self, logger_name: str = "timeclock.events"):
        self.logger = logging.getLogger(logger_name)
        self._ensure_handler()

    def _ensure_handler(self):
        """Ensure logger has a proper handler configured."""
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _serialize(self, value: Any) -> Any:
        """Serialize UUID and datetime values to strings."""
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        return value

    def _create_log_entry(
        self,
        event: str,
        severity: LogSeverity,
        entity_type: LogEntityType,
        entity_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        message: Optional[str] = None,
        **extra
    ) -> dict:
        """Create a structured log entry."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "severity": severity.value,
            "entity_type": entity_type.value,
        }

        if entity_id:
            entry["entity_id"] = str(entity_id)
        if user_id:
            entry["user_id"] = str(user_id)
        if message:
            entry["message"] = message

        for key, value in extra.items():
            entry[key] = self._serialize(value)

        return entry

    def _log(self, entry: dict, severity: LogSeverity):
        """Emit the log entry at the appropriate level."""
        log_str = json.dumps(entry)
        if severity == LogSeverity.ERROR:
            self.logger.error(log_str)
        elif severity == LogSeverity.WARN:
            self.logger.warning(log_str)
        else:
            self.logger.info(log_str)

    def _session_event(
        self,
        event: str,
        session_id: UUID,
        user_id: Optional[UUID],
        message: str,
        severity: LogSeverity = LogSeverity.INFO,
        **extra
    ):
        entry = self._create_log_entry(
            event=event,
            severity=severity,
            entity_type=LogEntityType.SESSION,
            entity_id=session_id,
            user_id=user_id,
            message=message,
            **extra
        )
        self._log(entry, severity)

    # Lifecycle events
    def session_started(self, session_id: UUID, user_id: UUID, start_time: datetime):
        """Log session start (clock-in)."""
        self._session_event(
            "session.started", session_id, user_id,
            "Work session started", start_time=start_time
        )

    def session_paused(self, session_id: UUID, user_id: Optional[UUID], pause_start: datetime):
        self._session_event(
            "session.paused", session_id, user_id,
            "Work session paused", pause_start=pause_start
        )

    def session_resumed(self, session_id: UUID, user_id: Optional[UUID], pause_end: datetime):
        self._session_event(
            "session.resumed", session_id, user_id,
            "Work session resumed", pause_end=pause_end
        )

    def session_ended(
        self,
        session_id: UUID,
        user_id: Optional[UUID],
        end_time: datetime,
        total_duration: str,
        pause_count: int,
    ):
        """Log session completion with its net duration."""
        self._session_event(
            "session.ended", session_id, user_id,
            f"Work session ended: {total_duration}",
            end_time=end_time, total_duration=total_duration, pause_count=pause_count
        )

    # Recovery events
    def abandoned_detected(self, session_id: UUID, user_id: UUID, start_time: datetime, time_message: str):
        self._session_event(
            "session.abandoned_detected", session_id, user_id,
            f"Open session left for {time_message}",
            severity=LogSeverity.WARN, start_time=start_time
        )

    def session_recovered(self, session_id: UUID, user_id: Optional[UUID]):
        self._session_event("session.recovered", session_id, user_id, "Abandoned session recovered")

    def session_discarded(self, session_id: UUID, user_id: Optional[UUID], end_time: datetime):
        self._session_event(
            "session.discarded", session_id, user_id,
            "Abandoned session discarded", end_time=end_time
        )

    # Failure events
    def transition_rolled_back(self, session_id: UUID, user_id: Optional[UUID], operation: str, error: str):
        """Log an optimistic transition that had to be undone."""
        self._session_event(
            "session.transition_rolled_back", session_id, user_id,
            f"Optimistic {operation} rolled back",
            severity=LogSeverity.WARN, operation=operation, error=error
        )

    def constraint_rejected(
        self,
        session_id: Optional[UUID],
        user_id: Optional[UUID],
        operation: str,
        code: str,
        error: str,
    ):
        """Log a write the store refused for business reasons."""
        entry = self._create_log_entry(
            event="session.constraint_rejected",
            severity=LogSeverity.WARN,
            entity_type=LogEntityType.SESSION,
            entity_id=session_id,
            user_id=user_id,
            message=f"Store rejected {operation}: {code}",
            operation=operation,
            code=code,
            error=error
        )
        self._log(entry, LogSeverity.WARN)

    def tick_failed(self, ticker: str, error: str):
        entry = self._create_log_entry(
            event="ticker.tick_failed",
            severity=LogSeverity.ERROR,
            entity_type=LogEntityType.TICKER,
            message="Elapsed time recomputation failed",
            ticker=ticker,
            error=error
        )
        self._log(entry, LogSeverity.ERROR)


# Global logger instance
session_logger = StructuredLogger()
