import pytest

from app.core.access import AccessGate
from app.core.client_registry import ClientRegistry
from app.core.errors import Forbidden, Unauthorized


@pytest.fixture
def registry(store, clock):
    return ClientRegistry(store, clock=clock)


def test_agent_open_when_unset(registry):
    gate = AccessGate(registry)
    assert gate.agent_ok(None)
    assert gate.agent_ok("anything")
    gate.require_agent(None)


def test_agent_checks_when_set(registry):
    gate = AccessGate(registry, agent_key="agent")
    assert gate.agent_ok("agent")
    assert not gate.agent_ok("Agent")
    assert not gate.agent_ok(None)
    with pytest.raises(Unauthorized):
        gate.require_agent("wrong")


def test_admin_and_master_closed_when_unset(registry):
    gate = AccessGate(registry)
    assert not gate.admin_ok("")
    assert not gate.admin_ok(None)
    assert not gate.master_ok("")
    with pytest.raises(Unauthorized):
        gate.require_admin("x")
    with pytest.raises(Unauthorized):
        gate.require_master("x")


def test_admin_and_master_exact_match(registry):
    gate = AccessGate(registry, admin_key="adm", master_key="mst")
    assert gate.admin_ok("adm")
    assert not gate.admin_ok("adm ")
    assert not gate.admin_ok("mst")
    assert gate.master_ok("mst")
    assert not gate.master_ok("adm")


def test_require_client_paths(registry, clock):
    gate = AccessGate(registry)
    c = registry.create("Alice", "G1", "M1")

    with pytest.raises(Unauthorized, match="missing"):
        gate.require_client(None, "G1")
    with pytest.raises(Unauthorized, match="missing"):
        gate.require_client("   ", "G1")
    with pytest.raises(Unauthorized, match="invalid"):
        gate.require_client("not-a-key", "G1")
    with pytest.raises(Forbidden, match="group mismatch"):
        gate.require_client(c.api_key, "G2")

    assert gate.require_client(c.api_key, "G1").client_id == c.client_id
    assert gate.require_client(f"  {c.api_key}  ", "G1").client_id == c.client_id
    # no group in the request: group check is skipped
    assert gate.require_client(c.api_key, "").client_id == c.client_id


def test_require_client_rejects_disabled(registry):
    gate = AccessGate(registry)
    c = registry.create("Alice", "G1", "M1")
    registry.set_enabled(c.client_id, False)
    with pytest.raises(Forbidden, match="expired/disabled"):
        gate.require_client(c.api_key, "G1")


def test_require_client_rejects_expired_at_boundary(registry, clock):
    gate = AccessGate(registry)
    c = registry.create("Alice", "G1", "M1")
    clock.now = c.expires_at - 1
    gate.require_client(c.api_key, "G1")
    clock.now = c.expires_at
    with pytest.raises(Forbidden):
        gate.require_client(c.api_key, "G1")
