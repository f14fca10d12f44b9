from __future__ import annotations

from medibot.core.config import settings
from medibot.reminders.models import Channel
from reminder_utils import make_medication

BASE = "/api/v1/reminders"


def _medication_payload(**overrides) -> dict:
    payload = {
        "user_id": "user-1",
        "name": "Metformin",
        "dosage": "500mg",
        "frequency": "twice daily",
        "reminder_times": ["09:00", "21:00"],
        "timezone": "UTC",
    }
    payload.update(overrides)
    return payload


def _schedules(client, medication_id: str) -> list[dict]:
    response = client.get(f"{BASE}/schedules", params={"medication_id": medication_id})
    assert response.status_code == 200
    return response.json()


def test_health(client) -> None:
    response = client.get(f"{BASE}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_medication_arms_one_wakeup_per_time(client, repository) -> None:
    repository.put_user("user-1", {"email": "pat@example.com", "fcmToken": "token-abc"})

    response = client.post(f"{BASE}/medications", json=_medication_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["reminder_times"] == ["09:00", "21:00"]
    schedules = _schedules(client, body["id"])
    assert [s["reminder_time"] for s in schedules] == ["09:00", "21:00"]
    assert schedules[0]["channels"] == ["email", "push"]


def test_create_with_empty_times_is_rejected(client, repository) -> None:
    response = client.post(f"{BASE}/medications", json=_medication_payload(reminder_times=[]))
    assert response.status_code == 400
    assert repository.list_active_medications("user-1") == []


def test_create_with_malformed_time_is_rejected(client, repository) -> None:
    response = client.post(f"{BASE}/medications", json=_medication_payload(reminder_times=["25:00"]))
    assert response.status_code == 400
    assert "25:00" in response.json()["detail"]
    assert repository.list_active_medications("user-1") == []


def test_phone_channels_follow_opt_in(client, repository) -> None:
    repository.put_user("user-1", {"email": "pat@example.com"})
    response = client.post(
        f"{BASE}/medications",
        json=_medication_payload(enable_whatsapp=True, enable_sms=True, phone_number="+15551234567"),
    )
    schedules = _schedules(client, response.json()["id"])
    assert schedules[0]["channels"] == ["email", "push", "sms", "whatsapp"]


def test_user_with_reminders_off_gets_nothing_armed(client, repository) -> None:
    repository.put_user("user-1", {"preferences": {"medicationReminders": False}})
    response = client.post(f"{BASE}/medications", json=_medication_payload())
    assert response.status_code == 201
    assert _schedules(client, response.json()["id"]) == []


def test_list_and_get_medications(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    listed = client.get(f"{BASE}/medications", params={"user_id": "user-1"})
    assert [m["id"] for m in listed.json()] == [created["id"]]

    fetched = client.get(f"{BASE}/medications/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Metformin"
    assert client.get(f"{BASE}/medications/missing").status_code == 404


def test_patch_times_reschedules(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    response = client.patch(f"{BASE}/medications/{created['id']}", json={"reminder_times": ["8:30"]})

    assert response.status_code == 200
    assert [s["reminder_time"] for s in _schedules(client, created["id"])] == ["08:30"]


def test_patch_inactive_cancels(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    response = client.patch(f"{BASE}/medications/{created['id']}", json={"is_active": False})

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert _schedules(client, created["id"]) == []


def test_patch_rejects_bad_times_and_keeps_schedule(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    response = client.patch(f"{BASE}/medications/{created['id']}", json={"reminder_times": ["7pm"]})

    assert response.status_code == 400
    assert len(_schedules(client, created["id"])) == 2


def test_patch_rejects_empty_times_and_keeps_schedule(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    response = client.patch(f"{BASE}/medications/{created['id']}", json={"reminder_times": []})

    assert response.status_code == 400
    assert client.get(f"{BASE}/medications/{created['id']}").json()["reminder_times"] == ["09:00", "21:00"]
    assert len(_schedules(client, created["id"])) == 2


def test_patch_rejects_null_for_required_fields(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    for field in ["name", "dosage", "reminder_times", "is_active", "enable_sms"]:
        response = client.patch(f"{BASE}/medications/{created['id']}", json={field: None})
        assert response.status_code == 422, field

    stored = client.get(f"{BASE}/medications/{created['id']}")
    assert stored.status_code == 200
    assert stored.json()["name"] == "Metformin"
    assert len(_schedules(client, created["id"])) == 2


def test_patch_can_clear_end_date(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload(end_date="2026-04-01")).json()

    response = client.patch(f"{BASE}/medications/{created['id']}", json={"end_date": None})

    assert response.status_code == 200
    assert response.json()["end_date"] is None


def test_unknown_timezone_is_rejected(client, repository) -> None:
    response = client.post(f"{BASE}/medications", json=_medication_payload(timezone="Mars/Olympus"))
    assert response.status_code == 422
    assert repository.list_active_medications("user-1") == []

    created = client.post(f"{BASE}/medications", json=_medication_payload(timezone="Europe/Berlin")).json()
    assert created["timezone"] == "Europe/Berlin"
    bad = client.patch(f"{BASE}/medications/{created['id']}", json={"timezone": "Not/AZone"})
    assert bad.status_code == 422


def test_patch_missing_medication(client) -> None:
    assert client.patch(f"{BASE}/medications/missing", json={"name": "x"}).status_code == 404


def test_delete_cancels_wakeups(client) -> None:
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    assert client.delete(f"{BASE}/medications/{created['id']}").status_code == 204
    assert _schedules(client, created["id"]) == []
    assert client.get(f"{BASE}/medications/{created['id']}").status_code == 404
    assert client.delete(f"{BASE}/medications/{created['id']}").status_code == 404


def test_send_test_reminder_reports_per_channel(client, repository, senders) -> None:
    repository.put_user("user-1", {"email": "pat@example.com", "fcmToken": "token-abc"})
    created = client.post(f"{BASE}/medications", json=_medication_payload()).json()

    response = client.post(f"{BASE}/medications/{created['id']}/test")

    assert response.status_code == 200
    report = response.json()
    assert report["success"] is True
    assert report["title"] == "Test Reminder"
    assert "Metformin (500mg)" in report["body"]
    assert {r["channel"]: r["status"] for r in report["results"]} == {"email": "sent", "push": "sent"}
    assert senders[Channel.EMAIL].calls[0][0] == "pat@example.com"
    assert client.post(f"{BASE}/medications/missing/test").status_code == 404


def test_register_device_token(client, repository) -> None:
    response = client.post(
        f"{BASE}/devices",
        json={"user_id": "user-1", "platform": "ios", "fcm_token": "token-abc"},
    )
    assert response.status_code == 200
    assert repository.get_device_token("user-1") == "token-abc"

    bad = client.post(f"{BASE}/devices", json={"user_id": "user-1", "platform": "fax", "fcm_token": "t"})
    assert bad.status_code == 422


def test_startup_replays_active_medications(repository, app) -> None:
    from fastapi.testclient import TestClient

    repository.add_medication(make_medication(id="med-1"))
    repository.add_medication(make_medication(id="med-2", is_active=False))
    repository.add_medication(make_medication(id="med-3", reminder_times=["bogus"]))

    with TestClient(app) as client:
        assert len(_schedules(client, "med-1")) == 2
        assert _schedules(client, "med-2") == []
        assert _schedules(client, "med-3") == []


def test_watch_user_follows_store_changes(client, repository) -> None:
    response = client.post(f"{BASE}/users/user-1/watch")
    assert response.json() == {"user_id": "user-1", "watching": True, "already_watching": False}
    assert client.post(f"{BASE}/users/user-1/watch").json()["already_watching"] is True

    # Written straight to the store, as another client of it would
    repository.add_medication(make_medication(id="med-9", timezone=None))
    assert len(_schedules(client, "med-9")) == 2

    repository.update_medication("med-9", {"isActive": False})
    assert _schedules(client, "med-9") == []


def test_api_key_required_when_enabled(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "REQUIRE_API_KEY", True)
    monkeypatch.setattr(settings, "VALID_API_KEYS", ["key-1"])

    assert client.get(f"{BASE}/health").status_code == 401
    assert client.get(f"{BASE}/health", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get(f"{BASE}/health", headers={"X-API-Key": "key-1"}).status_code == 200
    assert client.get(f"{BASE}/health", headers={"Authorization": "Bearer key-1"}).status_code == 200
    assert client.get(f"{BASE}/health", headers={"Authorization": "Basic key-1"}).status_code == 401
