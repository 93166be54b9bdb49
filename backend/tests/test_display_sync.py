# Overview: Pytest coverage for the customer display sync hub and its routes.

import threading

import pytest

from oropos.errors import NotFound, ValidationFailed
from oropos.services.display_sync_service import DisplaySyncHub, display_key, normalize_cart


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _cart(status="ACTIVE", items=None, **extra):
    cart = {"status": status, "items": items if items is not None else [{"name": "Shampoo", "qty": 1}],
            "subtotal": 1000, "tax": 80, "total": 1080}
    cart.update(extra)
    return cart


class TestDisplayKey:
    def test_station_wins(self):
        assert display_key(7, "front", 3) == "7:station:front"

    def test_location_fallback(self, db_session, tenant, location):
        assert display_key(tenant.id, None, location.id) == f"{tenant.id}:location:{location.id}"

    def test_other_tenant_location(self, db_session, other_tenant, location):
        with pytest.raises(NotFound):
            display_key(other_tenant.id, None, location.id)

    def test_requires_one(self):
        with pytest.raises(ValidationFailed):
            display_key(7, None, None)


class TestNormalizeCart:
    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationFailed):
            normalize_cart({"status": "DANCING"})

    def test_drops_unknown_fields(self):
        cart = normalize_cart({"status": "active", "secret": "x"})
        assert cart["status"] == "ACTIVE"
        assert "secret" not in cart

    def test_rejects_non_numeric_total(self):
        with pytest.raises(ValidationFailed):
            normalize_cart({"status": "ACTIVE", "total": "ten"})


class TestDisplaySyncHub:
    def test_unknown_key_is_idle(self):
        state = DisplaySyncHub().read("station:x")
        assert state["status"] == "IDLE"
        assert state["version"] == 0

    def test_last_write_wins(self):
        hub = DisplaySyncHub()
        hub.publish("station:a", _cart(items=[{"name": "A"}]))
        hub.publish("station:a", _cart(items=[{"name": "B"}]))

        state = hub.read("station:a")
        assert state["items"] == [{"name": "B"}]
        assert state["version"] == 2

    def test_keys_are_independent(self):
        hub = DisplaySyncHub()
        hub.publish("station:a", _cart())
        assert hub.read("station:b")["status"] == "IDLE"

    def test_completed_expires_to_idle(self):
        clock = FakeClock()
        hub = DisplaySyncHub(terminal_ttl_seconds=60, clock=clock)
        hub.publish("station:a", _cart(status="COMPLETED"))

        clock.now += 30
        assert hub.read("station:a")["status"] == "COMPLETED"
        clock.now += 31
        assert hub.read("station:a")["status"] == "IDLE"

    def test_stale_state_reads_idle(self):
        clock = FakeClock()
        hub = DisplaySyncHub(stale_seconds=100, clock=clock)
        hub.publish("station:a", _cart())
        clock.now += 101
        assert hub.read("station:a")["status"] == "IDLE"

    def test_long_poll_returns_immediately_when_version_moved(self):
        hub = DisplaySyncHub()
        hub.publish("station:a", _cart())
        state = hub.read("station:a", since=0, wait=5)
        assert state["version"] == 1

    def test_long_poll_wakes_on_publish(self):
        hub = DisplaySyncHub()
        hub.publish("station:a", _cart())
        results = []

        reader = threading.Thread(target=lambda: results.append(hub.read("station:a", since=1, wait=5)))
        reader.start()
        hub.publish("station:a", _cart(status="AWAITING_TIP", showTipPrompt=True))
        reader.join(timeout=5)

        assert results and results[0]["version"] == 2
        assert results[0]["showTipPrompt"] is True

    def test_long_poll_times_out_with_current_state(self):
        hub = DisplaySyncHub()
        hub.publish("station:a", _cart())
        state = hub.read("station:a", since=1, wait=0.05)
        assert state["version"] == 1


class TestDisplaySyncRoutes:
    def test_publish_then_read(self, client, db_session, cashier_headers):
        response = client.post("/api/pos/display-sync", json={
            "stationId": "front",
            "cart": _cart(),
        }, headers=cashier_headers)
        assert response.status_code == 200
        assert response.get_json()["state"]["version"] == 1

        # the customer screen reads without a login
        state = client.get("/api/pos/display-sync?stationId=front&tenantCode=ACME").get_json()
        assert state["status"] == "ACTIVE"
        assert state["total"] == 1080

    def test_publish_requires_auth(self, client, db_session):
        response = client.post("/api/pos/display-sync", json={"stationId": "front", "cart": _cart()})
        assert response.status_code == 401

    def test_invalid_status_rejected(self, client, db_session, cashier_headers):
        response = client.post("/api/pos/display-sync", json={
            "stationId": "front",
            "cart": {"status": "BOGUS"},
        }, headers=cashier_headers)
        assert response.status_code == 400

    def test_location_key_defaults_to_employee_location(self, client, db_session, location, cashier_headers):
        client.post("/api/pos/display-sync", json={"cart": _cart()}, headers=cashier_headers)
        state = client.get(f"/api/pos/display-sync?locationId={location.id}&tenantCode=ACME").get_json()
        assert state["status"] == "ACTIVE"

    def test_read_requires_key(self, client, db_session, tenant):
        assert client.get("/api/pos/display-sync?tenantCode=ACME").status_code == 400

    def test_read_requires_business(self, client, db_session, tenant):
        assert client.get("/api/pos/display-sync?stationId=front").status_code == 400
        assert client.get("/api/pos/display-sync?stationId=front&tenantCode=NOPE").status_code == 404

    def test_bad_since(self, client, db_session, tenant):
        assert client.get("/api/pos/display-sync?stationId=x&tenantCode=ACME&since=abc").status_code == 400

    def test_same_station_id_in_two_businesses(self, client, db_session, tenant, other_tenant,
                                               cashier_headers, other_headers):
        client.post("/api/pos/display-sync", json={
            "stationId": "1", "cart": _cart(items=[{"name": "A"}]),
        }, headers=cashier_headers)
        client.post("/api/pos/display-sync", json={
            "stationId": "1", "cart": _cart(items=[{"name": "B"}]),
        }, headers=other_headers)

        mine = client.get("/api/pos/display-sync?stationId=1&tenantCode=ACME").get_json()
        theirs = client.get("/api/pos/display-sync?stationId=1&tenantCode=BETA").get_json()
        assert mine["items"] == [{"name": "A"}]
        assert theirs["items"] == [{"name": "B"}]

    def test_token_decides_business(self, client, db_session, cashier_headers, other_headers):
        client.post("/api/pos/display-sync", json={"stationId": "1", "cart": _cart()}, headers=cashier_headers)
        state = client.get("/api/pos/display-sync?stationId=1&tenantCode=ACME", headers=other_headers).get_json()
        assert state["status"] == "IDLE"

    def test_cannot_publish_to_other_business_location(self, client, db_session, location, other_headers):
        response = client.post("/api/pos/display-sync", json={
            "locationId": location.id, "cart": _cart(),
        }, headers=other_headers)
        assert response.status_code == 404
