"""
Session Lifecycle Controller

State machine for one owner's work session:

    NO_SESSION --start--> ACTIVE --pause--> PAUSED --resume--> ACTIVE
    ACTIVE/PAUSED --end--> NO_SESSION (session completed)

Stale sessions found at start-up are parked as a pending abandoned session
until recover_session() or discard_session() is called. A session whose
end() is refused for exceeding the maximum duration is parked the same way.

Pause and resume are optimistic: the local flag flips first, the store is
written, and the flip is rolled back if the write fails. Start and end only
change local state after the store confirmed the write.

Only one state-changing operation runs at a time per controller. pause()
and resume() quietly ignore calls while another operation is in flight;
the other operations raise OperationInProgressError.
"""
import logging
import platform
import uuid
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Any

from timeclock.core.clock import Clock, system_clock
from timeclock.core.config import settings
from timeclock.core.exceptions import (
    AlreadyActiveError,
    ConstraintViolation,
    NoActiveSessionError,
    OperationInProgressError,
    RecoveryWindowExceededError,
    UnauthenticatedError,
)
from timeclock.core.identity import IdentityProvider
from timeclock.models.work_session import WorkSession, SessionStatus
from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.schemas.work_session import (
    AbandonedSession,
    LifecycleState,
    SessionState,
    WorkSessionSnapshot,
)
from timeclock.services.abandoned_sessions import AbandonedSessionDetector
from timeclock.services.logging import session_logger
from timeclock.services.ticker import Ticker
from timeclock.services.time_accounting import net_elapsed, format_duration

logger = logging.getLogger(__name__)


class TransitionPhase(str, Enum):
    """Phases of an optimistic transition."""
    INTENT = "intent"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class OptimisticTransition:
    """
    A local pause/resume flip that is not yet confirmed by the store.

    Starts in INTENT and ends in exactly one of COMMITTED or ROLLED_BACK.
    """
    operation: str
    session_id: uuid.UUID
    was_paused: bool
    paused: bool
    phase: TransitionPhase = TransitionPhase.INTENT
    error: Optional[str] = None


def default_device_info() -> dict[str, Any]:
    """Describe the host this session was started from."""
    return {
        "platform": platform.platform(),
        "hostname": platform.node(),
        "python": platform.python_version(),
    }


class SessionLifecycleController:
    def __init__(
        self,
        repository: WorkSessionRepository,
        identity: IdentityProvider,
        clock: Optional[Clock] = None,
        abandoned_threshold: Optional[timedelta] = None,
        tick_interval: Optional[float] = None,
    ):
        self.repository = repository
        self.identity = identity
        self.clock = clock or system_clock
        self.detector = AbandonedSessionDetector(
            repository,
            self.clock,
            abandoned_threshold or settings.abandoned_session_threshold,
        )
        self._ticker = Ticker(
            self.refresh_elapsed,
            interval=tick_interval or settings.TICK_INTERVAL_SECONDS,
            name="elapsed-time",
        )

        self._session: Optional[WorkSessionSnapshot] = None
        self._paused = False
        self._elapsed_seconds = 0
        self._loading = False
        self._abandoned: Optional[AbandonedSession] = None
        self._initialized = False
        self._user_id: Optional[uuid.UUID] = None
        # Bumped on every local state change; load results from an older
        # generation are dropped instead of applied.
        self._generation = 0
        self.last_transition: Optional[OptimisticTransition] = None

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        if self._session is None:
            return LifecycleState.NO_SESSION
        return LifecycleState.PAUSED if self._paused else LifecycleState.ACTIVE

    @property
    def active_session(self) -> Optional[WorkSessionSnapshot]:
        return self._session

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed_seconds

    @property
    def elapsed_time(self) -> str:
        return format_duration(self._elapsed_seconds)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def pause_count(self) -> int:
        return len(self._session.pauses) if self._session else 0

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def abandoned_session(self) -> Optional[AbandonedSession]:
        return self._abandoned

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def idle(self) -> bool:
        """Initialized with no session, nothing pending and nothing in flight."""
        return (
            self._initialized
            and self._session is None
            and self._abandoned is None
            and not self._loading
        )

    @property
    def ticker_running(self) -> bool:
        return self._ticker.running

    def snapshot(self) -> SessionState:
        return SessionState(
            state=self.state,
            active_session=self._session,
            elapsed_seconds=self._elapsed_seconds,
            elapsed_time=self.elapsed_time,
            is_paused=self._paused,
            pause_count=self.pause_count,
            loading=self._loading,
            abandoned_session=self._abandoned,
        )

    def refresh_elapsed(self) -> int:
        """Re-derive elapsed time from the session snapshot and the clock."""
        if self._session is None:
            self._elapsed_seconds = 0
        else:
            self._elapsed_seconds = net_elapsed(self._session, self._session.pauses, self.clock.now())
        return self._elapsed_seconds

    # ------------------------------------------------------------------
    # Internal state handling
    # ------------------------------------------------------------------

    def _sync_ticker(self) -> None:
        self._ticker.stop()
        if self.state == LifecycleState.ACTIVE:
            self._ticker.start()

    def _apply_session(self, session: Optional[WorkSession]) -> None:
        if session is None:
            self._session = None
            self._paused = False
            self._elapsed_seconds = 0
        else:
            self._session = WorkSessionSnapshot.model_validate(session)
            self._paused = self._session.status == SessionStatus.PAUSED
            self.refresh_elapsed()
        self._sync_ticker()

    async def _require_user_id(self) -> uuid.UUID:
        user_id = await self.identity.current_user_id()
        if user_id is None:
            raise UnauthenticatedError()
        self._user_id = user_id
        return user_id

    async def _load(self) -> None:
        generation = self._generation
        user_id = await self._require_user_id()
        session = await self.repository.get_open_session(user_id)
        if generation != self._generation:
            logger.debug(f"Dropping stale load result (generation {generation} != {self._generation})")
            return
        self._apply_session(session)

    def _report_failure(self, operation: str, session_id: Optional[uuid.UUID], error: Exception) -> None:
        if isinstance(error, ConstraintViolation):
            session_logger.constraint_rejected(session_id, self._user_id, operation, error.code, error.message)
        else:
            logger.warning(f"Work session {operation} failed: {error}")

    def _begin_transition(self, operation: str, paused: bool) -> OptimisticTransition:
        transition = OptimisticTransition(
            operation=operation,
            session_id=self._session.id,
            was_paused=self._paused,
            paused=paused,
        )
        self.last_transition = transition
        self._generation += 1
        self._paused = paused
        return transition

    def _commit_transition(self, transition: OptimisticTransition) -> None:
        transition.phase = TransitionPhase.COMMITTED
        self._sync_ticker()

    def _rollback_transition(self, transition: OptimisticTransition, error: Exception) -> None:
        transition.phase = TransitionPhase.ROLLED_BACK
        transition.error = str(error)
        self._generation += 1
        self._paused = transition.was_paused
        self.refresh_elapsed()
        self._sync_ticker()
        self._report_failure(transition.operation, transition.session_id, error)
        session_logger.transition_rolled_back(
            transition.session_id, self._user_id, transition.operation, str(error)
        )

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Check for an abandoned session, then load the current one.

        Runs once per controller: later calls, and calls made while the
        first one is still running, do nothing. A failed attempt leaves the
        controller uninitialized so the next call retries it.
        """
        if self._initialized or self._loading:
            return
        self._loading = True
        try:
            user_id = await self._require_user_id()
            abandoned = await self.detector.detect(user_id)
            if abandoned is not None:
                self._abandoned = abandoned
            else:
                await self._load()
            self._initialized = True
        finally:
            self._loading = False

    async def reload(self) -> None:
        """Re-read the authoritative session state from the store."""
        if self._loading:
            raise OperationInProgressError()
        self._loading = True
        try:
            await self._load()
        finally:
            self._loading = False

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def start(
        self,
        notes: Optional[str] = None,
        device_info: Optional[dict[str, Any]] = None,
    ) -> WorkSessionSnapshot:
        """
        Start a new session (clock-in).

        Raises:
            AlreadyActiveError: A session is already tracked; nothing is written
            OperationInProgressError: Another operation is still running
            UnauthenticatedError: No owner identity
            ConstraintViolation: The store refused, e.g. another client already
                has an open session for this owner
        """
        if self._session is not None:
            raise AlreadyActiveError()
        if self._loading:
            raise OperationInProgressError()

        self._loading = True
        try:
            user_id = await self._require_user_id()
            now = self.clock.now()
            created = await self.repository.create_session(
                user_id,
                start_time=now,
                notes=notes,
                device_info=device_info if device_info is not None else default_device_info(),
            )
        except Exception as e:
            self._report_failure("start", None, e)
            raise
        finally:
            self._loading = False

        self._generation += 1
        self._apply_session(created)
        session_logger.session_started(created.id, user_id, now)
        return self._session

    async def pause(self) -> None:
        """Pause the active session. No-op unless ACTIVE and idle."""
        if self._session is None or self._paused or self._loading:
            return

        # Freeze the displayed value before the ticker goes away
        self.refresh_elapsed()
        self._ticker.stop()
        session_id = self._session.id
        transition = self._begin_transition("pause", paused=True)
        self._loading = True
        try:
            now = self.clock.now()
            try:
                await self.repository.begin_pause(session_id, now)
            except Exception as e:
                self._rollback_transition(transition, e)
                raise
            self._commit_transition(transition)
            session_logger.session_paused(session_id, self._user_id, now)
            await self._load()
        finally:
            self._loading = False

    async def resume(self) -> None:
        """Resume the paused session. No-op unless PAUSED and idle."""
        if self._session is None or not self._paused or self._loading:
            return

        session_id = self._session.id
        transition = self._begin_transition("resume", paused=False)
        self._loading = True
        try:
            now = self.clock.now()
            try:
                await self.repository.end_pause(session_id, now)
            except Exception as e:
                self._rollback_transition(transition, e)
                raise
            self._commit_transition(transition)
            session_logger.session_resumed(session_id, self._user_id, now)
            await self._load()
        finally:
            self._loading = False

    async def end(self) -> WorkSessionSnapshot:
        """
        End the tracked session (clock-out).

        Net time is (now - start_time) minus every pause, an open pause
        counting up to now. Local state is only cleared once the store
        accepted the completion; on failure it stays as it was.

        Returns:
            Snapshot of the completed session
        """
        if self._loading:
            raise OperationInProgressError()
        if self._session is None:
            raise NoActiveSessionError()

        session = self._session
        self._ticker.stop()
        self._loading = True
        try:
            pauses = await self.repository.list_pauses(session.id)
            now = self.clock.now()
            total_duration = format_duration(net_elapsed(session, pauses, now))
            completed = await self.repository.complete_session(
                session.id,
                end_time=now,
                total_duration=total_duration,
            )
        except Exception as e:
            self._report_failure("end", session.id, e)
            if isinstance(e, ConstraintViolation) and e.code == "MAX_DURATION_EXCEEDED":
                # Can never be completed: hand it to the recover/discard flow
                self._generation += 1
                self._abandoned = self.detector.flag(session.id, session.start_time, self._user_id)
                self._apply_session(None)
            else:
                self._sync_ticker()
            raise
        finally:
            self._loading = False

        self._generation += 1
        result = WorkSessionSnapshot.model_validate(completed)
        self._apply_session(None)
        session_logger.session_ended(session.id, self._user_id, now, total_duration, len(pauses))
        return result

    async def recover_session(self) -> None:
        """
        Reactivate the pending abandoned session and load it.

        Raises:
            RecoveryWindowExceededError: The session is already older than the
                maximum duration and could never be ended; it stays pending
                so it can be discarded
        """
        pending = self._abandoned
        if pending is None:
            return
        if self._loading:
            raise OperationInProgressError()
        if self.clock.now() - pending.start_time > self.repository.max_session_duration:
            raise RecoveryWindowExceededError()

        self._loading = True
        try:
            try:
                await self.repository.recover_session(pending.id, self.clock.now())
            except Exception as e:
                self._report_failure("recover", pending.id, e)
                raise
            finally:
                self._abandoned = None
            session_logger.session_recovered(pending.id, self._user_id)
            await self._load()
        finally:
            self._loading = False

    async def discard_session(self) -> None:
        """Mark the pending abandoned session abandoned, ending it now."""
        pending = self._abandoned
        if pending is None:
            return
        if self._loading:
            raise OperationInProgressError()

        self._loading = True
        try:
            now = self.clock.now()
            try:
                await self.repository.abandon_session(pending.id, now)
            except Exception as e:
                self._report_failure("discard", pending.id, e)
                raise
            finally:
                self._abandoned = None
            session_logger.session_discarded(pending.id, self._user_id, now)
            await self._load()
        finally:
            self._loading = False

    async def close(self) -> None:
        """Tear down: stop the ticker and ignore any late load results."""
        self._generation += 1
        await self._ticker.shutdown()
