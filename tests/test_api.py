"""End-to-end tests for the vehicle and reservation routes."""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fleet import main
from fleet.main import app, history_repo, reservation_repo, vehicle_repo
from fleet.services.conflicts import check_availability


@pytest.fixture(autouse=True)
def _clear_repos():
    """Reset in-memory repos before each test."""
    vehicle_repo._store.clear()
    reservation_repo._store.clear()
    history_repo._entries.clear()
    yield
    vehicle_repo._store.clear()
    reservation_repo._store.clear()
    history_repo._entries.clear()


@pytest.fixture()
def client():
    return TestClient(app)


# ---------------------------------------------------------------------------
# Stub data helpers
# ---------------------------------------------------------------------------

_START = datetime(2024, 10, 20, 8, 0, tzinfo=timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat()


def _vehicle_payload(**overrides) -> dict:
    payload = {
        "license_plate": "ABC-123",
        "make": "Volkswagen",
        "model": "Golf",
        "year": 2020,
        "consumption": 5.5,
        "tank_size": 50,
        "mileage": 45000,
        "inspection_due": "2025-03-15",
        "insurance_due": "2025-12-31",
        "location": "Hauptstandort",
    }
    payload.update(overrides)
    return payload


def _create_vehicle(client: TestClient, **overrides) -> dict:
    resp = client.post("/vehicles", json=_vehicle_payload(**overrides))
    assert resp.status_code == 201
    return resp.json()


def _reservation_payload(vehicle_id: str, start: datetime, end: datetime, **overrides) -> dict:
    payload = {
        "vehicle_id": vehicle_id,
        "employee_name": "Max Mustermann",
        "start": _iso(start),
        "end": _iso(end),
        "purpose": "Kundenbesuch",
    }
    payload.update(overrides)
    return payload


def _reserve(client: TestClient, vehicle_id: str, start: datetime, end: datetime):
    return client.post("/reservations", json=_reservation_payload(vehicle_id, start, end))


# ---------------------------------------------------------------------------
# Vehicles
# ---------------------------------------------------------------------------


def test_vehicle_crud(client):
    vehicle = _create_vehicle(client)
    vid = vehicle["id"]
    assert vehicle["status"] == "available"

    assert client.get(f"/vehicles/{vid}").json()["license_plate"] == "ABC-123"

    resp = client.put(f"/vehicles/{vid}", json=_vehicle_payload(mileage=46000))
    assert resp.status_code == 200
    assert resp.json()["mileage"] == 46000
    assert resp.json()["id"] == vid

    assert client.delete(f"/vehicles/{vid}").json() == {"status": "deleted"}
    assert client.get(f"/vehicles/{vid}").status_code == 404


def test_invalid_vehicle_payload_is_rejected(client):
    resp = client.post("/vehicles", json=_vehicle_payload(tank_size=1))

    assert resp.status_code == 422


def test_unknown_vehicle_returns_404(client):
    assert client.get("/vehicles/nope").status_code == 404
    assert client.put("/vehicles/nope", json=_vehicle_payload()).status_code == 404
    assert client.delete("/vehicles/nope").status_code == 404


def test_vehicle_search_and_inspection_filter(client):
    _create_vehicle(client, inspection_due="2026-11-01")
    _create_vehicle(
        client, license_plate="DEF-456", make="Mercedes", model="Sprinter",
        vehicle_type="van", inspection_due="2027-06-01",
    )

    resp = client.get("/vehicles", params={"search": "sprinter"})
    assert [v["license_plate"] for v in resp.json()] == ["DEF-456"]

    resp = client.get("/vehicles", params={"inspection_warning": True, "today": "2026-10-19"})
    assert [v["license_plate"] for v in resp.json()] == ["ABC-123"]

    resp = client.get("/vehicles", params={"vehicle_type": "van"})
    assert len(resp.json()) == 1


def test_statistics_and_inspection_warnings(client):
    _create_vehicle(client, inspection_due="2026-10-01")
    _create_vehicle(client, license_plate="DEF-456", status="maintenance",
                    inspection_due="2027-10-01")

    stats = client.get("/vehicles/statistics", params={"today": "2026-10-19"}).json()
    assert stats["total_vehicles"] == 2
    assert stats["available_vehicles"] == 1
    assert stats["maintenance_vehicles"] == 1
    assert stats["inspection_warnings"] == 1

    warnings = client.get(
        "/vehicles/inspection-warnings", params={"today": "2026-10-19"}
    ).json()
    assert len(warnings) == 1
    assert warnings[0]["license_plate"] == "ABC-123"
    assert warnings[0]["overdue"] is True
    assert warnings[0]["days_remaining"] == -18

    wide = client.get(
        "/vehicles/inspection-warnings", params={"today": "2026-10-19", "warning_days": 400}
    ).json()
    assert len(wide) == 2


# ---------------------------------------------------------------------------
# Availability and booking
# ---------------------------------------------------------------------------


def test_create_reservation_reserves_vehicle(client):
    vid = _create_vehicle(client)["id"]

    resp = _reserve(client, vid, _START, _START + timedelta(hours=8))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "active"
    assert client.get(f"/vehicles/{vid}").json()["status"] == "reserved"

    history = client.get(f"/reservations/{body['id']}/history").json()
    assert [e["type"] for e in history] == ["created"]


def test_overlapping_reservation_is_refused_with_conflicts(client):
    vid = _create_vehicle(client)["id"]
    existing = _reserve(client, vid, _START, _START + timedelta(hours=8)).json()

    resp = _reserve(client, vid, _START + timedelta(hours=2), _START + timedelta(hours=4))

    assert resp.status_code == 409
    body = resp.json()
    assert [c["id"] for c in body["conflicts"]] == [existing["id"]]
    assert len(client.get("/reservations").json()) == 1


def test_back_to_back_reservation_is_accepted(client):
    vid = _create_vehicle(client)["id"]
    _reserve(client, vid, _START, _START + timedelta(hours=8))

    resp = _reserve(client, vid, _START + timedelta(hours=8), _START + timedelta(hours=10))

    assert resp.status_code == 201


def test_same_span_on_other_vehicle_is_accepted(client):
    first = _create_vehicle(client)["id"]
    second = _create_vehicle(client, license_plate="DEF-456")["id"]
    _reserve(client, first, _START, _START + timedelta(hours=8))

    resp = _reserve(client, second, _START, _START + timedelta(hours=8))

    assert resp.status_code == 201


def test_reservation_for_unknown_vehicle_returns_404(client):
    resp = _reserve(client, "nope", _START, _START + timedelta(hours=1))

    assert resp.status_code == 404


def test_reversed_reservation_span_returns_422(client):
    vid = _create_vehicle(client)["id"]

    resp = _reserve(client, vid, _START, _START)

    assert resp.status_code == 422
    assert "must be after start" in resp.json()["detail"]


def test_check_availability(client):
    vid = _create_vehicle(client)["id"]
    existing = _reserve(client, vid, _START, _START + timedelta(hours=8)).json()

    busy = client.post(
        "/reservations/check-availability",
        json={"vehicle_id": vid, "start": _iso(_START + timedelta(hours=2)),
              "end": _iso(_START + timedelta(hours=3))},
    ).json()
    assert busy["available"] is False
    assert busy["conflicts"][0]["id"] == existing["id"]

    free = client.post(
        "/reservations/check-availability",
        json={"vehicle_id": vid, "start": _iso(_START + timedelta(hours=8)),
              "end": _iso(_START + timedelta(hours=9))},
    ).json()
    assert free == {"available": True, "conflicts": []}

    own = client.post(
        "/reservations/check-availability",
        json={"vehicle_id": vid, "start": _iso(_START), "end": _iso(_START + timedelta(hours=8)),
              "exclude_reservation_id": existing["id"]},
    ).json()
    assert own["available"] is True


def test_check_availability_rejects_zero_length(client):
    resp = client.post(
        "/reservations/check-availability",
        json={"vehicle_id": "v", "start": _iso(_START), "end": _iso(_START)},
    )

    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Editing and closing
# ---------------------------------------------------------------------------


def test_reschedule_skips_own_span_but_not_others(client):
    vid = _create_vehicle(client)["id"]
    first = _reserve(client, vid, _START, _START + timedelta(hours=2)).json()
    _reserve(client, vid, _START + timedelta(hours=4), _START + timedelta(hours=6))

    # Extend into its own former span only
    ok = client.put(
        f"/reservations/{first['id']}",
        json={"employee_name": "Max Mustermann", "purpose": "Kundenbesuch",
              "start": _iso(_START + timedelta(hours=1)), "end": _iso(_START + timedelta(hours=4))},
    )
    assert ok.status_code == 200
    assert ok.json()["end"].startswith("2024-10-20T12:00")

    clash = client.put(
        f"/reservations/{first['id']}",
        json={"employee_name": "Max Mustermann", "purpose": "Kundenbesuch",
              "start": _iso(_START), "end": _iso(_START + timedelta(hours=5))},
    )
    assert clash.status_code == 409

    history = client.get(f"/reservations/{first['id']}/history").json()
    assert [e["type"] for e in history] == ["created", "rescheduled"]


def test_cancel_releases_vehicle_and_is_final(client):
    vid = _create_vehicle(client)["id"]
    reservation = _reserve(client, vid, _START, _START + timedelta(hours=8)).json()

    resp = client.post(f"/reservations/{reservation['id']}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert client.get(f"/vehicles/{vid}").json()["status"] == "available"

    assert client.post(f"/reservations/{reservation['id']}/complete").status_code == 409
    edit = client.put(
        f"/reservations/{reservation['id']}",
        json={"employee_name": "Max Mustermann", "purpose": "Kundenbesuch",
              "start": _iso(_START), "end": _iso(_START + timedelta(hours=1))},
    )
    assert edit.status_code == 409

    # The cancelled span is free again
    assert _reserve(client, vid, _START, _START + timedelta(hours=8)).status_code == 201


def test_complete_reservation(client):
    vid = _create_vehicle(client)["id"]
    reservation = _reserve(client, vid, _START, _START + timedelta(hours=8)).json()

    resp = client.post(f"/reservations/{reservation['id']}/complete")

    assert resp.json()["status"] == "completed"
    history = client.get(f"/reservations/{reservation['id']}/history").json()
    assert [e["type"] for e in history] == ["created", "completed"]


def test_close_holds_the_booking_lock(client, monkeypatch):
    vid = _create_vehicle(client)["id"]
    reservation = _reserve(client, vid, _START, _START + timedelta(hours=8)).json()
    held = []
    store = reservation_repo.update

    def update(updated):
        held.append(main._booking_lock.locked())
        return store(updated)

    monkeypatch.setattr(reservation_repo, "update", update)

    assert client.post(f"/reservations/{reservation['id']}/cancel").status_code == 200
    assert held == [True]


def test_cancel_waits_for_an_edit_in_progress(client, monkeypatch):
    vid = _create_vehicle(client)["id"]
    reservation = _reserve(client, vid, _START, _START + timedelta(hours=2)).json()
    checking = threading.Event()
    proceed = threading.Event()

    def slow_check(query, existing):
        checking.set()
        proceed.wait(timeout=5)
        return check_availability(query, existing)

    monkeypatch.setattr(main, "check_availability", slow_check)
    responses = {}

    def edit():
        responses["edit"] = TestClient(app).put(
            f"/reservations/{reservation['id']}",
            json={"employee_name": "Max Mustermann", "purpose": "Kundenbesuch",
                  "start": _iso(_START + timedelta(hours=1)),
                  "end": _iso(_START + timedelta(hours=3))},
        )

    def cancel():
        responses["cancel"] = TestClient(app).post(f"/reservations/{reservation['id']}/cancel")

    editor = threading.Thread(target=edit)
    editor.start()
    assert checking.wait(timeout=5)
    canceller = threading.Thread(target=cancel)
    canceller.start()
    canceller.join(timeout=0.2)
    assert canceller.is_alive()

    proceed.set()
    editor.join(timeout=5)
    canceller.join(timeout=5)

    assert responses["edit"].status_code == 200
    assert responses["cancel"].status_code == 200
    stored = client.get(f"/reservations/{reservation['id']}").json()
    assert stored["status"] == "cancelled"
    assert stored["end"].startswith("2024-10-20T11:00")
    history = client.get(f"/reservations/{reservation['id']}/history").json()
    assert [e["type"] for e in history] == ["created", "rescheduled", "cancelled"]


def test_unknown_reservation_returns_404(client):
    assert client.get("/reservations/nope").status_code == 404
    assert client.post("/reservations/nope/cancel").status_code == 404
    assert client.get("/reservations/nope/history").status_code == 404


# ---------------------------------------------------------------------------
# Listing and export
# ---------------------------------------------------------------------------


def test_list_reservations_filters(client):
    first = _create_vehicle(client)["id"]
    second = _create_vehicle(client, license_plate="DEF-456")["id"]
    r1 = _reserve(client, first, _START, _START + timedelta(hours=1)).json()
    _reserve(client, second, _START, _START + timedelta(hours=1))
    client.post(f"/reservations/{r1['id']}/cancel")

    assert len(client.get("/reservations").json()) == 2
    assert len(client.get("/reservations", params={"vehicle_id": first}).json()) == 1
    active = client.get("/reservations", params={"status": "active"}).json()
    assert [r["vehicle_id"] for r in active] == [second]
    assert len(client.get(f"/vehicles/{first}/reservations").json()) == 1


def test_export_csv(client):
    vid = _create_vehicle(client)["id"]
    _reserve(client, vid, _START, _START + timedelta(hours=8))

    resp = client.get("/reservations/export.csv")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "reservierungen_" in resp.headers["content-disposition"]
    lines = resp.text.splitlines()
    assert lines[0].startswith("Fahrzeug,Mitarbeiter,Start,Ende")
    assert lines[1].startswith("ABC-123 - Volkswagen Golf,Max Mustermann,")


def test_export_csv_without_reservations_is_empty(client):
    resp = client.get("/reservations/export.csv")

    assert resp.status_code == 200
    assert resp.text == ""


# ---------------------------------------------------------------------------
# Application lifecycle
# ---------------------------------------------------------------------------


def test_shutdown_closes_the_strapi_client(monkeypatch):
    class _Client:
        closed = False

        def close(self):
            self.closed = True

    cms = _Client()
    monkeypatch.setattr(main, "strapi_client", cms)

    with TestClient(app):
        assert not cms.closed
    assert cms.closed


def test_shutdown_without_strapi_client(monkeypatch):
    monkeypatch.setattr(main, "strapi_client", None)

    with TestClient(app) as client:
        assert client.get("/vehicles").status_code == 200
