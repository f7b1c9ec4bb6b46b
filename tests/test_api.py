"""HTTP surface: header auth, error rendering and the end-to-end copy flow."""
import pytest
from fastapi.testclient import TestClient

import main
from app.utils.time import DAY_MS

ADMIN = {"x-admin-key": "admin-secret"}
MASTER = {"x-master-key": "master-secret"}


@pytest.fixture
def api(service):
    main.app.state.copier = service
    yield TestClient(main.app)
    main.app.state.copier = None


def _add_client(api, group="G1", duration="M1"):
    r = api.post("/admin/clients/add", json={"fullName": "Alice", "groupId": group, "duration": duration}, headers=ADMIN)
    assert r.status_code == 200
    return r.json()["client"]


def _key(client):
    return {"x-api-key": client["apiKey"]}


def test_health(api):
    assert api.get("/health").json()["ok"] is True
    h = api.get("/copier/health").json()
    assert h["maxEventId"] == 0
    assert h["clients"] == 0


def test_admin_requires_key(api):
    r = api.get("/admin/clients")
    assert r.status_code == 401
    assert r.json() == {"ok": False, "error": "unauthorized admin", "code": "UNAUTHORIZED"}
    assert api.get("/admin/clients", headers={"x-admin-key": "nope"}).status_code == 401


def test_admin_client_lifecycle(api, clock):
    c = _add_client(api)
    assert c["enabled"] is True
    assert c["boundSlaveId"] == ""
    assert c["expiresAt"] == clock.now + 31 * DAY_MS

    listed = api.get("/admin/clients", headers=ADMIN).json()
    assert [x["clientId"] for x in listed["clients"]] == [c["clientId"]]

    r = api.post("/admin/clients/disable", json={"clientId": c["clientId"], "enabled": False}, headers=ADMIN)
    assert r.json() == {"ok": True, "enabled": False}
    r = api.post("/admin/clients/disable", json={"clientId": c["clientId"], "enabled": True}, headers=ADMIN)
    assert r.json()["enabled"] is True

    r = api.post("/admin/clients/extend", json={"clientId": c["clientId"], "duration": "M3"}, headers=ADMIN)
    assert r.json()["expiresAt"] == c["expiresAt"] + 93 * DAY_MS

    r = api.post("/admin/clients/delete", json={"clientId": c["clientId"]}, headers=ADMIN)
    assert r.json() == {"ok": True, "deleted": True}
    assert api.get("/admin/clients", headers=ADMIN).json()["clients"] == []


def test_admin_validation_and_not_found(api):
    r = api.post("/admin/clients/add", json={"fullName": " ", "groupId": "G1"}, headers=ADMIN)
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_INPUT"

    for path in ("/admin/clients/disable", "/admin/clients/extend", "/admin/clients/resetBind"):
        r = api.post(path, json={"clientId": "missing"}, headers=ADMIN)
        assert r.status_code == 404, path

    r = api.post("/admin/clients/delete", json={"clientId": "missing"}, headers=ADMIN)
    assert r.json() == {"ok": True, "deleted": False}


def test_push_requires_master(api):
    body = {"group": "G1", "type": "OPEN", "master_ticket": 101, "symbol": "EURUSD"}
    assert api.post("/copier/push", json=body).status_code == 401
    assert api.post("/copier/push", json=body, headers={"x-master-key": "x"}).status_code == 401

    r = api.post("/copier/push", json={**body, "type": "MODIFY"}, headers=MASTER)
    assert r.status_code == 400
    r = api.post("/copier/push", json={"group": "G1", "type": "OPEN", "symbol": "EURUSD"}, headers=MASTER)
    assert r.status_code == 400
    assert r.json()["error"] == "missing master_ticket/symbol"


def test_copy_flow(api):
    c = _add_client(api)

    r = api.post(
        "/copier/push",
        json={"group": "G1", "type": "OPEN", "master_ticket": 101, "symbol": "EURUSD", "lots": 0.1},
        headers=MASTER,
    )
    assert r.json() == {"ok": True, "id": 1}

    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1", "since": 0, "limit": 10}, headers=_key(c))
    assert r.status_code == 200
    events = r.json()["events"]
    assert [e["id"] for e in events] == [1]
    assert events[0]["symbol"] == "EURUSD"
    assert events[0]["lots"] == 0.1

    r = api.post("/copier/ack", json={"group": "G1", "slaveId": "S1", "event_id": 1, "status": "DONE"}, headers=_key(c))
    assert r.json() == {"ok": True, "lastAckId": 1}

    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1", "since": 1, "limit": 10}, headers=_key(c))
    assert r.json()["events"] == []

    slaves = api.get("/admin/slaves", headers=ADMIN).json()["slaves"]
    assert slaves[0]["group"] == "G1"
    assert slaves[0]["slaveId"] == "S1"
    assert slaves[0]["lastAckId"] == 1


def test_rebind_flow(api):
    c = _add_client(api)

    r = api.post("/copier/registerSlave", json={"group": "G1", "slaveId": "S1"}, headers=_key(c))
    assert r.json() == {"ok": True, "boundSlaveId": "S1"}

    r = api.post("/copier/registerSlave", json={"group": "G1", "slaveId": "S2"}, headers=_key(c))
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"

    r = api.post("/admin/clients/resetBind", json={"clientId": c["clientId"]}, headers=ADMIN)
    assert r.json() == {"ok": True}

    r = api.post("/copier/registerSlave", json={"group": "G1", "slaveId": "S2"}, headers=_key(c))
    assert r.json() == {"ok": True, "boundSlaveId": "S2"}
    listed = api.get("/admin/clients", headers=ADMIN).json()["clients"]
    assert listed[0]["boundSlaveId"] == "S2"


def test_slave_auth_errors(api, clock):
    c = _add_client(api)
    body = {"group": "G1", "slaveId": "S1"}

    assert api.post("/copier/registerSlave", json=body).status_code == 401
    assert api.post("/copier/registerSlave", json=body, headers={"x-api-key": "bogus"}).status_code == 401
    assert api.post("/copier/registerSlave", json={"group": "G2", "slaveId": "S1"}, headers=_key(c)).status_code == 403
    assert api.post("/copier/registerSlave", json={"group": "G1"}, headers=_key(c)).status_code == 400

    clock.advance_days(31)
    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1"}, headers=_key(c))
    assert r.status_code == 403
    assert r.json()["error"] == "expired/disabled"


def test_events_limit_is_clamped(api):
    c = _add_client(api)
    for i in range(1, 6):
        api.post("/copier/push", json={"group": "G1", "type": "OPEN", "master_ticket": i, "symbol": "X"}, headers=MASTER)

    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1", "limit": 0}, headers=_key(c))
    assert [e["id"] for e in r.json()["events"]] == [1]
    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1"}, headers=_key(c))
    assert len(r.json()["events"]) == 5


def test_ack_missing_fields(api):
    c = _add_client(api)
    r = api.post("/copier/ack", json={"group": "G1", "slaveId": "S1", "event_id": 1}, headers=_key(c))
    assert r.status_code == 400
    assert r.json()["error"] == "missing fields"


def test_events_since_is_lenient(api):
    c = _add_client(api)
    api.post("/copier/push", json={"group": "G1", "type": "OPEN", "master_ticket": 1, "symbol": "X"}, headers=MASTER)
    r = api.get("/copier/events", params={"group": "G1", "slaveId": "S1", "since": "abc"}, headers=_key(c))
    assert r.status_code == 200
    assert [e["id"] for e in r.json()["events"]] == [1]


def test_malformed_body_uses_error_shape(api):
    c = _add_client(api)
    r = api.post("/copier/ack", json=[1, 2], headers=_key(c))
    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["code"] == "INVALID_INPUT"
    assert "detail" not in body
