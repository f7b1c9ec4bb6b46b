from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Header, Query, Request

from app.config import settings
from app.core.copier_service import CopierService
from app.core.event_log import clamp_limit
from app.utils.coerce import as_int


router = APIRouter()


def _copier(request: Request) -> CopierService:
    return request.app.state.copier


def _str(payload: dict, key: str, default: str = "") -> str:
    v = payload.get(key)
    if v is None:
        return default
    return str(v).strip()


def _int(payload: dict, key: str) -> int:
    return as_int(payload.get(key))


def _bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on"}
    return bool(v)


# ---------------------------
# Copier: master push, slave register/poll/ack
# ---------------------------


@router.get("/copier/health")
def copier_health(request: Request) -> dict:
    return _copier(request).health()


@router.post("/copier/push")
def copier_push(
    request: Request,
    payload: dict = Body(...),
    x_master_key: str | None = Header(default=None),
) -> dict:
    """Master publishes an OPEN/CLOSE event.

    Body: {"group":"G1","type":"OPEN","master_ticket":101,"symbol":"EURUSD",
           "open_time":..., "cmd":0, "lots":0.1, "price":..., "sl":..., "tp":..., "magic":...}
    """
    ev = _copier(request).push(
        x_master_key,
        _str(payload, "group"),
        _str(payload, "type"),
        payload,
    )
    return {"ok": True, "id": ev.id}


@router.post("/copier/registerSlave")
def copier_register_slave(
    request: Request,
    payload: dict = Body(...),
    x_api_key: str | None = Header(default=None),
) -> dict:
    bound = _copier(request).register_slave(
        x_api_key,
        _str(payload, "group"),
        _str(payload, "slaveId"),
    )
    return {"ok": True, "boundSlaveId": bound}


@router.get("/copier/events")
def copier_events(
    request: Request,
    group: str = "",
    slave_id: str = Query(default="", alias="slaveId"),
    since: str | None = None,
    limit: str | None = None,
    x_api_key: str | None = Header(default=None),
) -> dict:
    copier = _copier(request)
    n = clamp_limit(limit, default=settings.POLL_LIMIT_DEFAULT, upper=copier.events.limit_max)
    events = copier.poll_events(x_api_key, group.strip(), slave_id.strip(), since=as_int(since), limit=n)
    return {"ok": True, "now": copier.clock(), "events": [e.to_dict() for e in events]}


@router.post("/copier/ack")
def copier_ack(
    request: Request,
    payload: dict = Body(...),
    x_api_key: str | None = Header(default=None),
) -> dict:
    last_ack_id = _copier(request).ack(
        x_api_key,
        _str(payload, "group"),
        _str(payload, "slaveId"),
        _int(payload, "event_id"),
        _str(payload, "status"),
    )
    return {"ok": True, "lastAckId": last_ack_id}


# ---------------------------
# Admin: clients (tenants)
# ---------------------------


@router.get("/admin/clients")
def admin_list_clients(request: Request, x_admin_key: str | None = Header(default=None)) -> dict:
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    return {
        "ok": True,
        "now": copier.clock(),
        "clients": [c.to_dict() for c in copier.registry.list_clients()],
    }


@router.post("/admin/clients/add")
def admin_add_client(
    request: Request,
    payload: dict = Body(...),
    x_admin_key: str | None = Header(default=None),
) -> dict:
    """Body: {"fullName": "...", "groupId": "G1", "duration": "M1"|"M3"|"M6"|"Y1"}"""
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    c = copier.registry.create(
        _str(payload, "fullName"),
        _str(payload, "groupId"),
        _str(payload, "duration", "M1") or "M1",
    )
    return {"ok": True, "client": c.to_dict()}


@router.post("/admin/clients/disable")
def admin_set_enabled(
    request: Request,
    payload: dict = Body(...),
    x_admin_key: str | None = Header(default=None),
) -> dict:
    """Body: {"clientId": "...", "enabled": false}. A missing `enabled` disables."""
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    c = copier.registry.set_enabled(_str(payload, "clientId"), _bool(payload.get("enabled")))
    return {"ok": True, "enabled": c.enabled}


@router.post("/admin/clients/extend")
def admin_extend_client(
    request: Request,
    payload: dict = Body(...),
    x_admin_key: str | None = Header(default=None),
) -> dict:
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    c = copier.registry.extend(_str(payload, "clientId"), _str(payload, "duration", "M1") or "M1")
    return {"ok": True, "expiresAt": c.expires_at}


@router.post("/admin/clients/resetBind")
def admin_reset_bind(
    request: Request,
    payload: dict = Body(...),
    x_admin_key: str | None = Header(default=None),
) -> dict:
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    copier.registry.reset_bind(_str(payload, "clientId"))
    return {"ok": True}


@router.post("/admin/clients/delete")
def admin_delete_client(
    request: Request,
    payload: dict = Body(...),
    x_admin_key: str | None = Header(default=None),
) -> dict:
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    deleted = copier.registry.delete(_str(payload, "clientId"))
    return {"ok": True, "deleted": deleted}


@router.get("/admin/slaves")
def admin_list_slaves(request: Request, x_admin_key: str | None = Header(default=None)) -> dict:
    """Cursor report across all groups, most recently seen first."""
    copier = _copier(request)
    copier.gate.require_admin(x_admin_key)
    cursors = sorted(copier.slaves.list_cursors(), key=lambda c: c.last_seen_at, reverse=True)
    return {"ok": True, "now": copier.clock(), "slaves": [c.to_dict() for c in cursors]}
