"""Integration tests for API endpoints.

These tests verify the availability endpoints work end-to-end against an
in-memory database.
"""

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient

from calavail.auth.jwt import create_access_token
from calavail.database.identity_repository import IdentityAdapter
from calavail.database.models import BookingDB


WEEKDAYS_NINE_TO_FIVE = [{"days": [1, 2, 3, 4, 5], "startTime": "09:00", "endTime": "17:00"}]


def _create(test_client: TestClient, name: str = "Work", **extra) -> dict:
    response = test_client.post("/availability/schedules", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestScheduleEndpoints:
    """Test schedule CRUD API endpoints."""

    def test_create_schedule(self, test_client):
        data = _create(test_client, availability=WEEKDAYS_NINE_TO_FIVE, timeZone="America/New_York")

        schedule = data["schedule"]
        assert schedule["name"] == "Work"
        assert schedule["isDefault"] is True
        assert schedule["ownerId"] == "test-user-123"
        assert data["timeZone"] == "America/New_York"
        block = schedule["availability"][0]
        assert block["startTime"] == "09:00"
        assert block["endTime"] == "17:00"
        assert block["summary"] == "Monday - Friday, 9:00 AM – 5:00 PM"

    def test_weekly_view_is_day_indexed(self, test_client):
        data = _create(test_client, availability=WEEKDAYS_NINE_TO_FIVE)

        weekly = data["availability"]
        assert len(weekly) == 7
        assert weekly[0] == []
        assert weekly[6] == []
        assert weekly[1] == [{"start": "09:00", "end": "17:00"}]

    def test_create_without_name_is_rejected(self, test_client):
        response = test_client.post("/availability/schedules", json={"availability": []})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "validation_error"

    def test_create_with_blank_name_is_rejected(self, test_client):
        response = test_client.post("/availability/schedules", json={"name": "   "})

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "validation_error"
        assert any(problem.startswith("name:") for problem in detail["errors"])
        assert test_client.get("/availability/schedules").json()["count"] == 0

    def test_create_strips_name(self, test_client):
        assert _create(test_client, "  Work  ")["schedule"]["name"] == "Work"

    def test_malformed_block_has_structured_error(self, test_client):
        schedule_id = _create(test_client)["schedule"]["id"]

        response = test_client.put(
            f"/availability/schedules/{schedule_id}",
            json={"availability": [{"days": ["monday"], "startTime": "25:00", "endTime": "17:00"}]},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "validation_error"
        assert detail["message"] == "Invalid request"
        assert any(problem.startswith("availability.0.startTime") for problem in detail["errors"])
        assert any(problem.startswith("availability.0.days.0") for problem in detail["errors"])

    def test_list_schedules(self, test_client):
        _create(test_client, "Work")
        _create(test_client, "Evenings")

        response = test_client.get("/availability/schedules")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert [s["name"] for s in data["schedules"]] == ["Work", "Evenings"]

    def test_get_schedule(self, test_client):
        created = _create(test_client)
        schedule_id = created["schedule"]["id"]

        response = test_client.get(f"/availability/schedules/{schedule_id}")
        assert response.status_code == 200
        assert response.json()["schedule"]["id"] == schedule_id

    def test_get_missing_schedule(self, test_client):
        response = test_client.get("/availability/schedules/nonexistent-id")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_foreign_schedule_looks_missing(self, test_client, db_session, other_user_id):
        from calavail.availability.manager import ScheduleManager
        from calavail.models.schedule import ScheduleCreate

        foreign = ScheduleManager(db_session).create_schedule(other_user_id, ScheduleCreate(name="Theirs"))

        response = test_client.get(f"/availability/schedules/{foreign.id}")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_default_fallback_template(self, test_client):
        response = test_client.get("/availability/schedules/default")

        assert response.status_code == 200
        data = response.json()
        assert data["schedule"]["id"] is None
        assert data["schedule"]["name"] == "Working Hours"
        assert data["isDefault"] is True
        assert data["timeZone"] == "America/New_York"
        assert data["availability"][3] == [{"start": "09:00", "end": "17:00"}]

        # The template is not saved
        assert test_client.get("/availability/schedules").json()["count"] == 0

    def test_default_returns_stored_default(self, test_client):
        created = _create(test_client)
        response = test_client.get("/availability/schedules/default")
        assert response.json()["schedule"]["id"] == created["schedule"]["id"]

    def test_update_schedule(self, test_client):
        schedule_id = _create(test_client)["schedule"]["id"]

        response = test_client.put(
            f"/availability/schedules/{schedule_id}",
            json={
                "name": "Weekends",
                "timeZone": "Europe/Paris",
                "availability": [{"days": [0, 6], "startTime": "10:00", "endTime": "14:30"}],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["schedule"]["name"] == "Weekends"
        assert data["timeZone"] == "Europe/Paris"
        assert data["availability"][0] == [{"start": "10:00", "end": "14:30"}]
        assert data["availability"][1] == []

    def test_update_with_weekly_form(self, test_client):
        schedule_id = _create(test_client)["schedule"]["id"]
        evening = {"start": "18:00", "end": "21:00"}

        response = test_client.put(
            f"/availability/schedules/{schedule_id}",
            json={"schedule": [[], [evening], [], [evening], [], [], []]},
        )

        assert response.status_code == 200
        blocks = response.json()["schedule"]["availability"]
        assert [b["days"] for b in blocks] == [[1, 3]]
        assert blocks[0]["summary"] == "Monday, Wednesday, 6:00 PM – 9:00 PM"

    def test_invalid_update_returns_structured_error(self, test_client):
        schedule_id = _create(test_client, availability=WEEKDAYS_NINE_TO_FIVE)["schedule"]["id"]

        response = test_client.put(
            f"/availability/schedules/{schedule_id}",
            json={"availability": [{"days": [1], "startTime": "17:00", "endTime": "09:00"}]},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "validation_error"
        assert detail["message"]
        assert any("startTime must be before endTime" in problem for problem in detail["errors"])

        unchanged = test_client.get(f"/availability/schedules/{schedule_id}").json()
        assert unchanged["availability"][1] == [{"start": "09:00", "end": "17:00"}]

    def test_overlapping_blocks_rejected(self, test_client):
        schedule_id = _create(test_client)["schedule"]["id"]

        response = test_client.put(
            f"/availability/schedules/{schedule_id}",
            json={
                "availability": [
                    {"days": [2], "startTime": "09:00", "endTime": "12:00"},
                    {"days": [2, 4], "startTime": "11:00", "endTime": "13:00"},
                ]
            },
        )
        assert response.status_code == 422

    def test_switch_default(self, test_client):
        first = _create(test_client, "First")["schedule"]["id"]
        second = _create(test_client, "Second")["schedule"]["id"]

        response = test_client.put(
            f"/availability/schedules/{second}", json={"availability": [], "isDefault": True}
        )
        assert response.status_code == 200
        assert response.json()["isDefault"] is True

        schedules = test_client.get("/availability/schedules").json()["schedules"]
        defaults = [s["id"] for s in schedules if s["isDefault"]]
        assert defaults == [second]
        assert first in [s["id"] for s in schedules]

    def test_update_missing_schedule(self, test_client):
        response = test_client.put("/availability/schedules/nonexistent-id", json={"availability": []})
        assert response.status_code == 404

    def test_delete_schedule(self, test_client):
        schedule_id = _create(test_client)["schedule"]["id"]

        response = test_client.delete(f"/availability/schedules/{schedule_id}")
        assert response.status_code == 204
        assert test_client.get(f"/availability/schedules/{schedule_id}").status_code == 404

    def test_delete_schedule_in_use(self, test_client, db_session, test_user_id):
        schedule_id = _create(test_client)["schedule"]["id"]
        start = datetime.utcnow() + timedelta(days=2)
        db_session.add(BookingDB(
            user_id=test_user_id, schedule_id=schedule_id, title="Intro call",
            start_time=start, end_time=start + timedelta(minutes=30),
        ))
        db_session.commit()

        response = test_client.delete(f"/availability/schedules/{schedule_id}")

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "dependency_in_use"
        assert test_client.get(f"/availability/schedules/{schedule_id}").status_code == 200


class TestAuthentication:
    """Requests through the real get_current_user dependency."""

    def test_missing_token(self, api_client):
        response = api_client.get("/availability/schedules")
        assert response.status_code == 401

    def test_garbage_token(self, api_client):
        response = api_client.get("/availability/schedules", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_jwt_access_token(self, api_client, test_user_id):
        token = create_access_token(test_user_id)
        response = api_client.get("/availability/schedules", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["count"] == 0

    def test_jwt_for_deleted_user(self, api_client, db_session, test_user_id):
        token = create_access_token(test_user_id)
        IdentityAdapter(db_session).delete_user(test_user_id)

        response = api_client.get("/availability/schedules", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_jwt(self, api_client, test_user_id):
        token = create_access_token(test_user_id, expires_delta=timedelta(seconds=-10))
        response = api_client.get("/availability/schedules", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_session_token(self, api_client, db_session, test_user_id):
        session = IdentityAdapter(db_session).create_session(test_user_id)

        response = api_client.get(
            "/availability/schedules/default", headers={"Authorization": f"Bearer {session.session_token}"}
        )
        assert response.status_code == 200
        assert response.json()["schedule"]["ownerId"] == test_user_id

    def test_expired_session_token(self, api_client, db_session, test_user_id):
        session = IdentityAdapter(db_session).create_session(
            test_user_id, expires=datetime.utcnow() - timedelta(minutes=5)
        )

        response = api_client.get(
            "/availability/schedules", headers={"Authorization": f"Bearer {session.session_token}"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Session expired"
