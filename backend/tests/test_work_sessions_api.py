"""
Tests for the work sessions HTTP endpoints.

The controller registry is overridden with one bound to a frozen clock and
a temporary database, so the full request path runs without a server.
"""
import uuid
import pytest
from datetime import datetime, timedelta, timezone

from timeclock.models import SessionStatus


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
BASE = "/api/v1/work-sessions"


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_user_header(self, async_client):
        response = await async_client.get(f"{BASE}/state")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHENTICATED"

    @pytest.mark.asyncio
    async def test_invalid_user_header(self, async_client):
        response = await async_client.get(f"{BASE}/state", headers={"X-User-Id": "nobody"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_USER_ID"


class TestLifecycleEndpoints:

    @pytest.mark.asyncio
    async def test_state_without_session(self, async_client, auth_headers):
        response = await async_client.get(f"{BASE}/state", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "no_session"
        assert data["active_session"] is None
        assert data["elapsed_time"] == "00:00:00"

    @pytest.mark.asyncio
    async def test_start_pause_resume_end(self, async_client, auth_headers, clock):
        response = await async_client.post(
            f"{BASE}/start",
            json={"notes": "  Cierre mensual  "},
            headers={**auth_headers, "User-Agent": "pytest-client"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "active"
        assert data["active_session"]["notes"] == "Cierre mensual"
        assert data["active_session"]["device_info"] == {"userAgent": "pytest-client"}

        clock.advance(hours=2)
        response = await async_client.post(f"{BASE}/pause", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["state"] == "paused"
        assert response.json()["pause_count"] == 1

        clock.advance(minutes=30)
        response = await async_client.post(f"{BASE}/resume", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["state"] == "active"
        assert response.json()["elapsed_time"] == "02:00:00"

        clock.advance(hours=1)
        response = await async_client.post(f"{BASE}/end", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["total_duration"] == "03:00:00"

        response = await async_client.get(f"{BASE}/state", headers=auth_headers)
        assert response.json()["state"] == "no_session"

    @pytest.mark.asyncio
    async def test_start_twice_conflicts(self, async_client, auth_headers):
        await async_client.post(f"{BASE}/start", json={}, headers=auth_headers)

        response = await async_client.post(f"{BASE}/start", json={}, headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ACTIVE_SESSION_EXISTS"

    @pytest.mark.asyncio
    async def test_end_without_session(self, async_client, auth_headers):
        response = await async_client.post(f"{BASE}/end", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NO_ACTIVE_SESSION"

    @pytest.mark.asyncio
    async def test_end_beyond_max_duration(self, async_client, auth_headers, clock):
        await async_client.post(f"{BASE}/start", json={}, headers=auth_headers)
        clock.advance(hours=20)

        response = await async_client.post(f"{BASE}/end", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "MAX_DURATION_EXCEEDED"

        state = (await async_client.get(f"{BASE}/state", headers=auth_headers)).json()
        assert state["state"] == "no_session"
        assert state["abandoned_session"]["time_message"] == "20 horas"

        response = await async_client.post(f"{BASE}/abandoned/discard", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["abandoned_session"] is None

    @pytest.mark.asyncio
    async def test_pause_without_session_is_noop(self, async_client, auth_headers):
        response = await async_client.post(f"{BASE}/pause", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["state"] == "no_session"


class TestAbandonedEndpoints:

    @pytest.mark.asyncio
    async def test_state_reports_abandoned_session(self, async_client, auth_headers, make_session):
        session = await make_session(START - timedelta(hours=30))

        response = await async_client.get(f"{BASE}/state", headers=auth_headers)

        data = response.json()
        assert data["state"] == "no_session"
        assert data["abandoned_session"]["id"] == str(session.id)
        assert data["abandoned_session"]["time_message"] == "30 horas"

    @pytest.mark.asyncio
    async def test_recover(self, async_client, auth_headers, make_session):
        await make_session(START - timedelta(hours=13))
        state = (await async_client.get(f"{BASE}/state", headers=auth_headers)).json()
        assert state["abandoned_session"]["time_message"] == "13 horas"

        response = await async_client.post(f"{BASE}/abandoned/recover", headers=auth_headers)

        data = response.json()
        assert response.status_code == 200
        assert data["state"] == "active"
        assert data["abandoned_session"] is None
        assert data["elapsed_time"] == "13:00:00"

    @pytest.mark.asyncio
    async def test_recover_past_max_duration(self, async_client, auth_headers, make_session):
        await make_session(START - timedelta(hours=30))
        await async_client.get(f"{BASE}/state", headers=auth_headers)

        response = await async_client.post(f"{BASE}/abandoned/recover", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "RECOVERY_WINDOW_EXCEEDED"

        response = await async_client.post(f"{BASE}/abandoned/discard", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["state"] == "no_session"

    @pytest.mark.asyncio
    async def test_discard(self, async_client, auth_headers, make_session, repository):
        session = await make_session(START - timedelta(hours=30))
        await async_client.get(f"{BASE}/state", headers=auth_headers)

        response = await async_client.post(f"{BASE}/abandoned/discard", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["state"] == "no_session"
        stored = await repository.get_session(session.id)
        assert stored.status == SessionStatus.ABANDONED


class TestHistoryEndpoints:

    @pytest.mark.asyncio
    async def test_history_and_notes_edit(self, async_client, auth_headers, make_session):
        session = await make_session(
            START,
            status=SessionStatus.COMPLETED,
            end_time=START + timedelta(hours=4),
            total_duration="04:00:00",
        )

        response = await async_client.get(
            f"{BASE}/history",
            params={"start_date": "2026-03-02", "end_date": "2026-03-02"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = await async_client.patch(
            f"{BASE}/{session.id}",
            json={"notes": "Auditoría"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["notes"] == "Auditoría"

    @pytest.mark.asyncio
    async def test_history_rejects_reversed_range(self, async_client, auth_headers):
        response = await async_client.get(
            f"{BASE}/history",
            params={"start_date": "2026-03-05", "end_date": "2026-03-01"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"

    @pytest.mark.asyncio
    async def test_delete_session(self, async_client, auth_headers, make_session):
        session = await make_session(
            START,
            status=SessionStatus.COMPLETED,
            end_time=START + timedelta(hours=1),
            total_duration="01:00:00",
        )

        response = await async_client.delete(f"{BASE}/{session.id}", headers=auth_headers)
        assert response.status_code == 204

        response = await async_client.delete(f"{BASE}/{session.id}", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_delete_open_session(self, async_client, auth_headers, make_session):
        session = await make_session(START)

        response = await async_client.delete(f"{BASE}/{session.id}", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "SESSION_STILL_OPEN"

    @pytest.mark.asyncio
    async def test_cannot_touch_other_owners_session(self, async_client, make_session):
        session = await make_session(
            START,
            status=SessionStatus.COMPLETED,
            end_time=START + timedelta(hours=1),
        )

        response = await async_client.patch(
            f"{BASE}/{session.id}",
            json={"notes": "x"},
            headers={"X-User-Id": str(uuid.uuid4())},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_weekly_stats_include_running_session(self, async_client, auth_headers, make_session, clock):
        await make_session(
            START - timedelta(hours=5),
            status=SessionStatus.COMPLETED,
            end_time=START - timedelta(hours=3),
            total_duration="02:00:00",
        )
        await async_client.post(f"{BASE}/start", json={}, headers=auth_headers)
        clock.advance(minutes=30)

        response = await async_client.get(f"{BASE}/weekly-stats", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["completed_seconds"] == 7200
        assert data["live_seconds"] == 1800
        assert data["total_time"] == "02:30:00"
