# tests/test_api.py
"""HTTP surface: routing, response shapes and engine-error mapping."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient

from conftest import FACILITY, add_spots
from plaza_engine.clock import facility_clock
from plaza_engine.database import get_db
from plaza_engine.main import app


@pytest.fixture
def client(session_factory):
    session = session_factory()
    add_spots(session, range(1, 6))
    session.close()

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _iso(value):
    return value.replace(microsecond=0).isoformat()


class TestSpotsAPI:
    def test_facility_view(self, client):
        r = client.get(f"/api/v1/facilities/{FACILITY}/spots")
        assert r.status_code == 200
        body = r.json()
        assert body["summary"]["Free"] == 5
        assert [s["spot_number"] for s in body["spots"]] == [1, 2, 3, 4, 5]

    def test_missing_spot_is_404(self, client):
        r = client.get(f"/api/v1/facilities/{FACILITY}/spots/99")
        assert r.status_code == 404
        assert r.json()["error"] == "not_found"
        assert r.json()["detail"] == {"facility_id": FACILITY, "spot_number": 99}

    def test_maintenance_round_trip(self, client):
        url = f"/api/v1/facilities/{FACILITY}/spots/2/maintenance"
        assert client.put(url, json={"enabled": True, "reason": "Paint"}).json()["status"] == "Maintenance"

        r = client.put(url, json={"enabled": True})
        assert r.status_code == 409
        assert r.json()["error"] == "invalid_transition"
        assert r.json()["detail"]["current"] == "Maintenance"

        assert client.put(url, json={"enabled": False}).json()["status"] == "Free"
        changes = client.get(f"/api/v1/facilities/{FACILITY}/status-changes?spot_number=2").json()
        assert [c["event"] for c in changes] == ["unblock", "block"]

    def test_provision_zone(self, client):
        r = client.post(f"/api/v1/facilities/{FACILITY}/zones",
                        json={"zone": "Roof", "count": 2, "vehicle_category": "Van"})
        assert r.status_code == 200
        assert [(s["spot_number"], s["zone"], s["vehicle_category"]) for s in r.json()] == [
            (6, "Roof", "Van"), (7, "Roof", "Van"),
        ]

    def test_capacity_reset(self, client):
        r = client.post(f"/api/v1/facilities/{FACILITY}/capacity/reset", json={"cars": 1, "motorcycles": 2})
        assert r.status_code == 200
        assert [s["vehicle_category"] for s in r.json()] == ["Car", "Motorcycle", "Motorcycle"]


class TestOccupancyAPI:
    def test_entry_exit_and_replay(self, client):
        r = client.post("/api/v1/occupancies",
                        json={"facility_id": FACILITY, "spot_number": 3, "vehicle_plate": "xyz999",
                              "entry_time": "2025-03-10T09:00:00"})
        assert r.status_code == 201
        occupancy = r.json()
        assert occupancy["vehicle_plate"] == "XYZ999"

        r = client.post("/api/v1/occupancies",
                        json={"facility_id": FACILITY, "spot_number": 3, "vehicle_plate": "OTHER1"})
        assert r.status_code == 409
        assert r.json()["error"] == "spot_unavailable"

        exit_url = f"/api/v1/occupancies/{occupancy['id']}/exit"
        r = client.post(exit_url, json={"exit_time": "2025-03-10T10:00:00"})
        assert r.status_code == 200
        assert r.json()["status"] == "closed"
        assert r.json()["occupancy"]["exit_time"] == "2025-03-10T10:00:00"

        r = client.post(exit_url, json={})
        assert r.status_code == 200
        assert r.json()["status"] == "already_closed"

    def test_duplicate_plate(self, client):
        client.post("/api/v1/occupancies", json={"facility_id": FACILITY, "vehicle_plate": "XYZ999"})
        r = client.post("/api/v1/occupancies",
                        json={"facility_id": FACILITY, "spot_number": 1, "vehicle_plate": "XYZ999"})
        assert r.status_code == 409
        assert r.json()["error"] == "duplicate_active_occupancy"

    def test_relocate_and_history(self, client):
        occupancy = client.post("/api/v1/occupancies",
                                json={"facility_id": FACILITY, "spot_number": 1, "vehicle_plate": "XYZ999",
                                      "entry_time": "2025-03-10T09:00:00"}).json()
        r = client.post(f"/api/v1/occupancies/{occupancy['id']}/relocate",
                        json={"to_spot": 4, "operator_id": "op-1", "move_time": "2025-03-10T09:10:00"})
        assert r.status_code == 200
        assert r.json()["occupancy"]["spot_number"] == 4
        assert r.json()["movement"]["origin_zone"] == "A"

        history = client.get(f"/api/v1/occupancies/{occupancy['id']}/movements").json()
        assert [(m["origin_spot"], m["destination_spot"]) for m in history] == [(1, 4)]

        active = client.get(f"/api/v1/facilities/{FACILITY}/occupancies/active?plate=xyz999").json()
        assert active["spot_number"] == 4
        feed = client.get(f"/api/v1/facilities/{FACILITY}/movements").json()
        assert len(feed) == 1

    def test_active_lookup_needs_a_key(self, client):
        assert client.get(f"/api/v1/facilities/{FACILITY}/occupancies/active").status_code == 400
        assert client.get(f"/api/v1/facilities/{FACILITY}/occupancies/active?spot_number=1").status_code == 404

    def test_validation_failure_is_422(self, client):
        r = client.post("/api/v1/occupancies", json={"facility_id": FACILITY, "vehicle_plate": "  "})
        assert r.status_code == 422
        assert r.json()["error"] == "validation_failed"


class TestReservationAPI:
    def _book(self, client, spot=5, plate="ABC123", driver="driver-1"):
        start = facility_clock.now() + timedelta(days=1)
        return client.post("/api/v1/reservations", json={
            "facility_id": FACILITY, "spot_number": spot, "vehicle_plate": plate, "driver_id": driver,
            "hold_start": _iso(start), "hold_end": _iso(start + timedelta(hours=2)), "amount": "1200.50",
        })

    def test_booking_flow(self, client):
        r = self._book(client)
        assert r.status_code == 201
        code = r.json()["code"]
        assert r.json()["status"] == "PendingPayment"

        assert client.post(f"/api/v1/reservations/{code}/await-operator").json()["status"] == "pending_operator"
        assert client.post(f"/api/v1/reservations/{code}/confirm", json={"payment_ref": "TR-9"}).json() == \
            {"code": code, "status": "confirmed"}
        assert client.post(f"/api/v1/reservations/{code}/confirm", json={}).json()["status"] == "already_confirmed"

        holder = client.get(f"/api/v1/facilities/{FACILITY}/spots/5/reservation").json()
        assert holder["code"] == code
        assert holder["payment_ref"] == "TR-9"

        r = client.post(f"/api/v1/reservations/{code}/arrival", json={"vehicle_plate": "ZZZ000"})
        assert r.status_code == 409
        assert r.json()["error"] == "vehicle_mismatch"

        assert client.post(f"/api/v1/reservations/{code}/cancel", json={"reason": "Plans changed"}).json()["status"] \
            == "cancelled"
        assert client.post(f"/api/v1/reservations/{code}/cancel", json={}).json()["status"] == "already_closed"
        assert client.get(f"/api/v1/reservations/{code}").json()["status"] == "Cancelled"

    def test_second_booking_conflicts(self, client):
        self._book(client)
        r = self._book(client, plate="OTHER1", driver="driver-2")
        assert r.status_code == 409
        assert r.json()["error"] == "spot_unavailable"

    def test_overlap_for_same_driver(self, client):
        self._book(client, spot=4)
        r = self._book(client, spot=5, plate="ABC124")
        assert r.status_code == 409
        assert r.json()["error"] == "overlapping_reservation"

    def test_driver_reservations(self, client):
        first = self._book(client, spot=4).json()["code"]
        client.post(f"/api/v1/reservations/{first}/cancel", json={"reason": "Wrong day"})
        second = self._book(client, spot=5).json()["code"]

        open_holds = client.get("/api/v1/drivers/driver-1/reservations").json()
        assert [r["code"] for r in open_holds] == [second]

        everything = client.get("/api/v1/drivers/driver-1/reservations?include_closed=true").json()
        assert {r["code"] for r in everything} == {first, second}
        assert client.get("/api/v1/drivers/nobody/reservations").json() == []

    def test_unknown_reservation(self, client):
        assert client.get("/api/v1/reservations/RES-20250310-XXXXXX").status_code == 404

    def test_expire_endpoint(self, client):
        r = client.post("/api/v1/reservations/expire")
        assert r.status_code == 200
        assert r.json()["expired"] == 0


class TestHealthAPI:
    def test_health(self, client):
        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["facility_timezone"] == "America/Argentina/Buenos_Aires"
