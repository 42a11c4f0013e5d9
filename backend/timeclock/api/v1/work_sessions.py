"""
Work Sessions API Endpoints (Clock-in/out functionality)

Thin HTTP layer over the per-owner SessionLifecycleController:
start / pause / resume / end, abandoned session recover / discard,
history management and weekly totals.
"""
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response

from timeclock.core.config import settings
from timeclock.core.exceptions import WorkSessionError
from timeclock.schemas.work_session import (
    SessionState,
    WorkSessionStart,
    WorkSessionSnapshot,
    WorkSessionNotesUpdate,
    WorkSessionHistoryItem,
    WorkSessionHistoryResponse,
    WeeklyStatsResponse,
)
from timeclock.services.session_history import SessionHistoryService
from timeclock.services.weekly_stats import WeeklyStatsService
from timeclock.api.v1.deps import CurrentUserId, Registry, SessionController, to_http_exception

router = APIRouter()


def current_state(controller) -> SessionState:
    controller.refresh_elapsed()
    return controller.snapshot()


@router.get("/work-sessions/state", response_model=SessionState)
async def get_session_state(controller: SessionController):
    """
    Current lifecycle state of the caller.

    Used by the frontend to restore the timer on page load/refresh, and to
    show the recover/discard prompt for an abandoned session.
    """
    return current_state(controller)


@router.post("/work-sessions/start", response_model=SessionState, status_code=201)
async def start_work_session(
    session_in: WorkSessionStart,
    request: Request,
    controller: SessionController,
):
    """
    Start a new work session (clock-in).

    Errors:
    - 409 Conflict: A session is already active (locally or in the store)
    """
    device_info = None
    user_agent = request.headers.get("user-agent")
    if user_agent:
        device_info = {"userAgent": user_agent}
    try:
        await controller.start(notes=session_in.notes, device_info=device_info)
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return current_state(controller)


@router.post("/work-sessions/pause", response_model=SessionState)
async def pause_work_session(controller: SessionController):
    """Pause the active session. Pausing an already paused session changes nothing."""
    try:
        await controller.pause()
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return current_state(controller)


@router.post("/work-sessions/resume", response_model=SessionState)
async def resume_work_session(controller: SessionController):
    """Resume the paused session. Resuming an active session changes nothing."""
    try:
        await controller.resume()
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return current_state(controller)


@router.post("/work-sessions/end", response_model=WorkSessionSnapshot)
async def end_work_session(controller: SessionController):
    """
    End the session (clock-out) and store its net duration.

    Errors:
    - 404 Not Found: No session to end
    - 409 Conflict: The session exceeds the maximum duration
    """
    try:
        return await controller.end()
    except WorkSessionError as e:
        raise to_http_exception(e) from e


@router.post("/work-sessions/abandoned/recover", response_model=SessionState)
async def recover_abandoned_session(controller: SessionController):
    """Continue tracking the abandoned session."""
    try:
        await controller.recover_session()
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return current_state(controller)


@router.post("/work-sessions/abandoned/discard", response_model=SessionState)
async def discard_abandoned_session(controller: SessionController):
    """Close the abandoned session without counting it as worked time."""
    try:
        await controller.discard_session()
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return current_state(controller)


@router.get("/work-sessions/history", response_model=WorkSessionHistoryResponse)
async def list_session_history(
    user_id: CurrentUserId,
    registry: Registry,
    start_date: Annotated[Optional[date], Query()] = None,
    end_date: Annotated[Optional[date], Query()] = None,
):
    """Completed sessions, newest first, optionally limited to a date range."""
    service = SessionHistoryService(registry.repository)
    try:
        sessions = await service.list_sessions(user_id, start_date, end_date)
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return WorkSessionHistoryResponse(sessions=sessions, total=len(sessions))


@router.get("/work-sessions/weekly-stats", response_model=WeeklyStatsResponse)
async def get_weekly_stats(user_id: CurrentUserId, controller: SessionController, registry: Registry):
    """Worked time this week, including the running session."""
    service = WeeklyStatsService(registry.repository, settings.WEEK_TIMEZONE)
    state = current_state(controller)
    try:
        return await service.summary(
            user_id,
            now=controller.clock.now(),
            live_elapsed_seconds=state.elapsed_seconds,
            has_active_session=state.active_session is not None,
        )
    except WorkSessionError as e:
        raise to_http_exception(e) from e


@router.patch("/work-sessions/{session_id}", response_model=WorkSessionHistoryItem)
async def update_session_notes(
    session_id: UUID,
    session_in: WorkSessionNotesUpdate,
    user_id: CurrentUserId,
    registry: Registry,
):
    """Edit the notes of a finished session."""
    service = SessionHistoryService(registry.repository)
    try:
        return await service.update_notes(session_id, user_id, session_in.notes)
    except WorkSessionError as e:
        raise to_http_exception(e) from e


@router.delete("/work-sessions/{session_id}", status_code=204)
async def delete_session(session_id: UUID, user_id: CurrentUserId, registry: Registry):
    """Delete a finished session and its pauses."""
    service = SessionHistoryService(registry.repository)
    try:
        await service.delete_session(session_id, user_id)
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    return Response(status_code=204)
