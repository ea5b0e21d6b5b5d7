"""
Integration tests for the HTTP API and the /ws channel.
Each test gets a fresh app, store and fake probe (see conftest.py).
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from devboard.config import Settings
from devboard.main import create_app
from devboard.services.probe import DeviceInfo, ProbeResult


def issue_token(username, settings):
    """Sign a token the way the login service does."""
    payload = {"username": username, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def add_device(client, address="10.0.0.5", added_by="alice", **extra):
    r = client.post("/api/devices", json={"address": address, "addedBy": added_by, **extra})
    assert r.status_code == 200, r.text
    return r.json()


def claim(client, device_id, user, status="using"):
    return client.put(f"/api/devices/{device_id}/status", json={"status": status, "currentUser": user})


class TestDevicesAPI:
    def test_create_probes_device(self, client, probe):
        device = add_device(client, criticality="long-run", note="please ask first", usageDuration="01:30")
        assert device["status"] == "idle"
        assert device["currentUser"] is None
        assert device["isOnline"] is True
        assert device["version"] == "v2.4.1"
        assert device["criticality"] == "long-run"
        assert device["usageDuration"] == "01:30"
        assert probe.calls == ["10.0.0.5"]

        r = client.get("/api/devices")
        assert [d["id"] for d in r.json()] == [device["id"]]

    def test_create_with_failing_probe_still_succeeds(self, client, probe):
        probe.offline.add("10.0.0.9")
        device = add_device(client, address="10.0.0.9")
        assert device["isOnline"] is False
        assert device["version"] is None
        assert device["uptime"] is None

    def test_create_with_unresolvable_address(self, client, probe):
        probe.raising.add("10..0.1")
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            device = add_device(client, address="10..0.1")
            assert device["isOnline"] is False
            event = ws.receive_json()
            assert event["type"] == "device_added"
            assert event["data"]["id"] == device["id"]

    def test_create_when_deleted_during_lookup(self, settings):
        app = None

        class DeleteFirst:
            def __init__(self):
                self.deleted = False

            async def fetch_device_info(self, address):
                if not self.deleted:
                    self.deleted = True
                    store = app.state.store
                    store.delete_device(store.get_device_by_address(address).id, "bob")
                return ProbeResult(success=True, info=DeviceInfo(version="v1"))

        app = create_app(settings=settings, probe=DeleteFirst())
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.receive_json()
            r = client.post("/api/devices", json={"address": "10.0.0.5", "addedBy": "alice"})
            assert r.status_code == 404
            assert r.json()["detail"]["error"] == "device_not_found"
            assert client.get("/api/devices").json() == []

            second = add_device(client, address="10.0.0.6")
            event = ws.receive_json()
            assert event["type"] == "device_added"
            assert event["data"]["id"] == second["id"]

    def test_duplicate_address(self, client):
        first = add_device(client)
        claim(client, first["id"], "bob")

        r = client.post("/api/devices", json={"address": "10.0.0.5", "addedBy": "carol"})
        assert r.status_code == 409
        detail = r.json()["detail"]
        assert detail["error"] == "duplicate_in_use"
        assert detail["message"] == "Device already in use by bob"
        assert len(client.get("/api/devices").json()) == 1

    @pytest.mark.parametrize(
        "body",
        [
            {"addedBy": "alice"},
            {"address": "10.0.0.5"},
            {"address": "", "addedBy": "alice"},
            {"address": "10.0.0.5", "addedBy": "alice", "criticality": "urgent"},
            {"address": "10.0.0.5", "addedBy": "alice", "usageDuration": "later"},
        ],
    )
    def test_create_validation_is_400(self, client, body):
        r = client.post("/api/devices", json=body)
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "validation"

    def test_status_transitions(self, client):
        device = add_device(client)
        r = claim(client, device["id"], "bob")
        assert r.status_code == 200
        assert r.json()["status"] == "using"
        assert r.json()["currentUser"] == "bob"
        assert r.json()["usageStartTime"] is not None

        r = client.put(f"/api/devices/{device['id']}/status", json={"status": "idle"})
        assert r.status_code == 200
        assert r.json()["currentUser"] is None

    def test_status_requires_user(self, client):
        device = add_device(client)
        r = client.put(f"/api/devices/{device['id']}/status", json={"status": "dnd"})
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "current_user_required"

    def test_status_takeover_is_409(self, client):
        device = add_device(client)
        claim(client, device["id"], "bob")
        r = claim(client, device["id"], "carol")
        assert r.status_code == 409

    def test_status_unknown_device_and_status(self, client):
        assert claim(client, "nope", "bob").status_code == 404
        device = add_device(client)
        assert claim(client, device["id"], "bob", status="busy").status_code == 400

    def test_delete_requires_bearer(self, client):
        device = add_device(client)
        r = client.request("DELETE", f"/api/devices/{device['id']}", json={"deletedBy": "bob"})
        assert r.status_code == 401
        assert len(client.get("/api/devices").json()) == 1

    def test_delete(self, client, auth_headers):
        device = add_device(client)
        r = client.request(
            "DELETE", f"/api/devices/{device['id']}", json={"deletedBy": "bob"}, headers=auth_headers
        )
        assert r.status_code == 200
        assert r.json() == {"message": "Device deleted successfully"}
        assert client.get("/api/devices").json() == []

        logs = client.get("/api/logs").json()
        assert logs[0]["type"] == "device_deleted"
        assert logs[0]["message"] == "Device 10.0.0.5 deleted by bob"

    def test_delete_without_body_credits_creator(self, client, auth_headers):
        device = add_device(client)
        r = client.delete(f"/api/devices/{device['id']}", headers=auth_headers)
        assert r.status_code == 200
        assert client.get("/api/logs?limit=1").json()[0]["message"] == "Device 10.0.0.5 deleted by alice"

    def test_delete_unknown(self, client, auth_headers):
        r = client.delete("/api/devices/nope", headers=auth_headers)
        assert r.status_code == 404
        assert client.get("/api/logs").json() == []

    def test_refresh(self, client, probe):
        device = add_device(client)
        probe.uptime = "2d 8h"
        r = client.post(f"/api/devices/{device['id']}/refresh")
        assert r.status_code == 200
        assert r.json()["uptime"] == "2d 8h"

    def test_refresh_failure_persists_offline(self, client, probe):
        device = add_device(client)
        probe.offline.add("10.0.0.5")
        r = client.post(f"/api/devices/{device['id']}/refresh")
        assert r.status_code == 500
        assert r.json()["detail"]["isOnline"] is False

        [stored] = client.get("/api/devices").json()
        assert stored["isOnline"] is False
        assert stored["version"] == "v2.4.1"

    def test_refresh_with_raising_lookup_persists_offline(self, client, probe):
        device = add_device(client)
        probe.raising.add("10.0.0.5")
        r = client.post(f"/api/devices/{device['id']}/refresh")
        assert r.status_code == 500
        assert r.json()["detail"]["error"] == "probe_failure"
        assert client.get("/api/devices").json()[0]["isOnline"] is False

    def test_refresh_unknown(self, client):
        assert client.post("/api/devices/nope/refresh").status_code == 404


class TestJWTDelete:
    @pytest.fixture
    def jwt_settings(self):
        return Settings(refresh_interval=0, jwt_secret="test-secret")

    @pytest.fixture
    def jwt_client(self, jwt_settings, probe):
        with TestClient(create_app(settings=jwt_settings, probe=probe)) as c:
            yield c

    def test_invalid_token_rejected(self, jwt_client):
        device = add_device(jwt_client)
        r = jwt_client.delete(f"/api/devices/{device['id']}", headers={"Authorization": "Bearer junk"})
        assert r.status_code == 401

    def test_token_username_is_default_deleter(self, jwt_client, jwt_settings):
        device = add_device(jwt_client)
        token = issue_token("dave", jwt_settings)
        r = jwt_client.delete(f"/api/devices/{device['id']}", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert jwt_client.get("/api/logs?limit=1").json()[0]["message"] == "Device 10.0.0.5 deleted by dave"


class TestAccessRequestsAPI:
    def test_request_lifecycle(self, client):
        device = add_device(client)
        r = client.post(
            "/api/access-requests",
            json={"deviceId": device["id"], "requesterName": "carol", "message": "demo at 3"},
        )
        assert r.status_code == 200
        request = r.json()
        assert request["status"] == "pending"
        assert request["deviceId"] == device["id"]

        r = client.put(f"/api/access-requests/{request['id']}", json={"status": "approved"})
        assert r.status_code == 200
        assert r.json()["status"] == "approved"

        [stored] = client.get("/api/devices").json()
        assert stored["status"] == "using"
        assert stored["currentUser"] == "carol"

    def test_filter_by_device(self, client):
        first = add_device(client, address="10.0.0.1")
        second = add_device(client, address="10.0.0.2")
        for device in (first, second):
            client.post("/api/access-requests", json={"deviceId": device["id"], "requesterName": "carol"})

        assert len(client.get("/api/access-requests").json()) == 2
        filtered = client.get(f"/api/access-requests?deviceId={first['id']}").json()
        assert [r["deviceId"] for r in filtered] == [first["id"]]

    def test_unknown_device(self, client):
        r = client.post("/api/access-requests", json={"deviceId": "nope", "requesterName": "carol"})
        assert r.status_code == 404

    def test_invalid_status_is_400(self, client):
        device = add_device(client)
        request = client.post(
            "/api/access-requests", json={"deviceId": device["id"], "requesterName": "carol"}
        ).json()
        r = client.put(f"/api/access-requests/{request['id']}", json={"status": "maybe"})
        assert r.status_code == 400
        r = client.put(f"/api/access-requests/{request['id']}", json={"status": "pending"})
        assert r.status_code == 400

    def test_resolved_request_is_final(self, client):
        device = add_device(client)
        request = client.post(
            "/api/access-requests", json={"deviceId": device["id"], "requesterName": "carol"}
        ).json()
        client.put(f"/api/access-requests/{request['id']}", json={"status": "dismissed"})
        r = client.put(f"/api/access-requests/{request['id']}", json={"status": "approved"})
        assert r.status_code == 409
        assert r.json()["detail"]["error"] == "request_already_resolved"

    def test_unknown_request(self, client):
        r = client.put("/api/access-requests/nope", json={"status": "approved"})
        assert r.status_code == 404


class TestLogsAPI:
    def test_newest_first_with_limit(self, client):
        for i in range(3):
            add_device(client, address=f"10.0.0.{i}")
        logs = client.get("/api/logs?limit=2").json()
        assert [e["message"] for e in logs] == [
            "Device 10.0.0.2 added by alice",
            "Device 10.0.0.1 added by alice",
        ]
        assert all(e["type"] == "device_created" for e in logs)

    def test_negative_limit_is_400(self, client):
        assert client.get("/api/logs?limit=-1").status_code == 400


class TestRealtime:
    def test_handshake_and_events(self, client, auth_headers):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "connected", "message": "WebSocket connected"}

            device = add_device(client)
            event = ws.receive_json()
            assert event["type"] == "device_added"
            assert event["data"]["id"] == device["id"]

            claim(client, device["id"], "bob")
            event = ws.receive_json()
            assert event["type"] == "device_updated"
            assert event["data"]["currentUser"] == "bob"

            r = client.post(
                "/api/access-requests", json={"deviceId": device["id"], "requesterName": "bob"}
            )
            event = ws.receive_json()
            assert event == {"type": "access_request_created", "data": r.json()}

            client.put(f"/api/access-requests/{r.json()['id']}", json={"status": "approved"})
            event = ws.receive_json()
            assert event["type"] == "access_request_updated"
            assert event["data"]["status"] == "approved"

            client.delete(f"/api/devices/{device['id']}", headers=auth_headers)
            assert ws.receive_json() == {"type": "device_deleted", "data": {"id": device["id"]}}

    def test_failures_are_not_broadcast(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            device = add_device(client)
            ws.receive_json()

            assert claim(client, device["id"], "").status_code == 400
            assert client.post("/api/devices", json={"address": "10.0.0.5", "addedBy": "x"}).status_code == 409

            # The next event must be this release, not anything from the failures above.
            client.put(f"/api/devices/{device['id']}/status", json={"status": "idle"})
            event = ws.receive_json()
            assert event["type"] == "device_updated"
            assert event["data"]["status"] == "idle"

    def test_refresher_snapshot_reaches_clients(self, client, app):
        add_device(client, address="10.0.0.1")
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            client.portal.call(app.state.refresher.run_once)
            event = ws.receive_json()
            assert event["type"] == "devices_updated"
            assert [d["address"] for d in event["data"]] == ["10.0.0.1"]


class TestScenarios:
    def test_cross_user_approval_conflicts(self, client):
        device = add_device(client, address="10.0.0.5", added_by="alice")
        assert device["status"] == "idle"

        r = claim(client, device["id"], "bob")
        assert r.json()["currentUser"] == "bob"

        request = client.post(
            "/api/access-requests", json={"deviceId": device["id"], "requesterName": "carol"}
        ).json()
        assert request["status"] == "pending"

        r = client.put(f"/api/access-requests/{request['id']}", json={"status": "approved"})
        assert r.status_code == 409
        assert r.json()["detail"]["message"] == "Device already in use by bob"

        [stored] = client.get("/api/devices").json()
        assert stored["currentUser"] == "bob"
        [pending] = client.get("/api/access-requests").json()
        assert pending["status"] == "pending"

    def test_cross_user_approval_with_override(self, probe):
        settings = Settings(refresh_interval=0, allow_approval_override=True)
        with TestClient(create_app(settings=settings, probe=probe)) as client:
            device = add_device(client)
            claim(client, device["id"], "bob")
            request = client.post(
                "/api/access-requests", json={"deviceId": device["id"], "requesterName": "carol"}
            ).json()
            r = client.put(f"/api/access-requests/{request['id']}", json={"status": "approved"})
            assert r.status_code == 200
            assert client.get("/api/devices").json()[0]["currentUser"] == "carol"


def test_seeded_app(probe):
    settings = Settings(refresh_interval=0, seed_devices=True)
    with TestClient(create_app(settings=settings, probe=probe)) as client:
        devices = client.get("/api/devices").json()
        assert len(devices) == 4
        assert client.get("/api/health").json()["devices"] == 4


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "devices": 0, "connections": 0, "refresher_running": False}
