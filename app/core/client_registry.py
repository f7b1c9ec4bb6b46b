"""Tenant registry: API keys, group assignment, licensing window, slave binding.

A client is *active* iff it is enabled and `expires_at > now`. At most one
slave identity is bound to a client at a time; the first caller wins and the
binding only clears through an administrative `reset_bind`.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from app.core.errors import Forbidden, InvalidInput, NotFound
from app.storage.document_store import DocumentStore
from app.utils.coerce import as_int
from app.utils.crypto import new_api_key, new_client_id
from app.utils.time import DAY_MS, now_ms

log = logging.getLogger(__name__)

CLIENTS_DOC = "clients"

DURATION_DAYS = {
    "M1": 31,
    "M3": 93,
    "M6": 186,
    "Y1": 366,
}
DEFAULT_DURATION = "M1"


def duration_to_ms(code: str | None) -> int:
    """Map a license duration code to milliseconds.

    Codes are case-sensitive; anything other than M1/M3/M6/Y1 falls back to M1.
    """
    c = (code or "").strip()
    days = DURATION_DAYS.get(c)
    if days is None:
        log.warning("unrecognized duration code %r, using %s", code, DEFAULT_DURATION)
        days = DURATION_DAYS[DEFAULT_DURATION]
    return days * DAY_MS


@dataclass
class Client:
    client_id: str
    full_name: str
    group_id: str
    api_key: str
    enabled: bool = True
    created_at: int = 0
    expires_at: int = 0
    bound_slave_id: str = ""

    def is_active(self, now: int) -> bool:
        return bool(self.enabled) and int(self.expires_at or 0) > now

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "fullName": self.full_name,
            "groupId": self.group_id,
            "apiKey": self.api_key,
            "enabled": self.enabled,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "boundSlaveId": self.bound_slave_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Client":
        return cls(
            client_id=str(d.get("clientId") or ""),
            full_name=str(d.get("fullName") or ""),
            group_id=str(d.get("groupId") or ""),
            api_key=str(d.get("apiKey") or ""),
            enabled=bool(d.get("enabled", False)),
            created_at=as_int(d.get("createdAt")),
            expires_at=as_int(d.get("expiresAt")),
            bound_slave_id=str(d.get("boundSlaveId") or ""),
        )


class ClientRegistry:
    """Owns all Client records. Lookups return copies; mutate through the methods."""

    def __init__(self, store: DocumentStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock
        self._lock = threading.RLock()
        self._clients: dict[str, Client] = {}
        self._load()

    # -- persistence --

    def _load(self) -> None:
        raw = self.store.load(CLIENTS_DOC, {"clients": []})
        items = raw.get("clients") if isinstance(raw, dict) else raw
        for d in items or []:
            if not isinstance(d, dict):
                continue
            c = Client.from_dict(d)
            if c.client_id:
                self._clients[c.client_id] = c
        log.info("clients loaded: %d", len(self._clients))

    def _persist(self) -> bool:
        return self.store.save(CLIENTS_DOC, {"clients": [c.to_dict() for c in self._clients.values()]})

    # -- queries --

    def __len__(self) -> int:
        return len(self._clients)

    def list_clients(self) -> list[Client]:
        with self._lock:
            return [dataclasses.replace(c) for c in self._clients.values()]

    def find_by_id(self, client_id: str) -> Client | None:
        with self._lock:
            c = self._clients.get(client_id)
            return dataclasses.replace(c) if c else None

    def find_by_api_key(self, api_key: str) -> Client | None:
        if not api_key:
            return None
        with self._lock:
            for c in self._clients.values():
                if c.api_key == api_key:
                    return dataclasses.replace(c)
        return None

    def is_active(self, client: Client | None) -> bool:
        if client is None:
            return False
        return client.is_active(self.clock())

    # -- admin mutations --

    def create(self, full_name: str, group_id: str, duration: str | None = DEFAULT_DURATION) -> Client:
        full_name = (full_name or "").strip()
        group_id = (group_id or "").strip()
        if not full_name or not group_id:
            raise InvalidInput("missing fullName/groupId")

        with self._lock:
            client_id = new_client_id()
            while client_id in self._clients:
                client_id = new_client_id()
            api_key = new_api_key()
            while any(c.api_key == api_key for c in self._clients.values()):
                api_key = new_api_key()

            now = self.clock()
            c = Client(
                client_id=client_id,
                full_name=full_name,
                group_id=group_id,
                api_key=api_key,
                enabled=True,
                created_at=now,
                expires_at=now + duration_to_ms(duration),
                bound_slave_id="",
            )
            self._clients[client_id] = c
            self._persist()
            log.info("client created: id=%s group=%s expiresAt=%d", client_id, group_id, c.expires_at)
            return dataclasses.replace(c)

    def _get(self, client_id: str) -> Client:
        c = self._clients.get(client_id)
        if c is None:
            raise NotFound("not found")
        return c

    def set_enabled(self, client_id: str, enabled: bool) -> Client:
        with self._lock:
            c = self._get(client_id)
            c.enabled = bool(enabled)
            self._persist()
            log.info("client %s enabled=%s", client_id, c.enabled)
            return dataclasses.replace(c)

    def extend(self, client_id: str, duration: str | None = DEFAULT_DURATION) -> Client:
        """Push expiry forward from max(now, current expiry), so a lapsed client gains full duration."""
        with self._lock:
            c = self._get(client_id)
            base = max(self.clock(), int(c.expires_at or 0))
            c.expires_at = base + duration_to_ms(duration)
            self._persist()
            log.info("client %s extended to %d", client_id, c.expires_at)
            return dataclasses.replace(c)

    def reset_bind(self, client_id: str) -> Client:
        with self._lock:
            c = self._get(client_id)
            previous = c.bound_slave_id
            c.bound_slave_id = ""
            self._persist()
            log.info("client %s binding reset (was %r)", client_id, previous)
            return dataclasses.replace(c)

    def delete(self, client_id: str) -> bool:
        with self._lock:
            removed = self._clients.pop(client_id, None)
            if removed is None:
                return False
            self._persist()
        log.info("client %s deleted", client_id)
        return True

    # -- protocol mutation --

    def bind(self, client_id: str, slave_id: str) -> bool:
        """Bind `slave_id` if the client is unbound.

        Returns True when `slave_id` is (now) the bound identity, False when a
        different identity already holds the binding. The check-and-set is
        atomic with respect to other binds.
        """
        with self._lock:
            c = self._get(client_id)
            if not c.bound_slave_id:
                c.bound_slave_id = slave_id
                self._persist()
                log.info("client %s bound to slave %s", client_id, slave_id)
                return True
            return c.bound_slave_id == slave_id

    @contextmanager
    def binding_guard(self, client_id: str, slave_id: str) -> Iterator[None]:
        """Hold the registry lock while `slave_id` acts for the client, without binding it.

        Raises Forbidden if another identity holds the binding. No bind can
        slip in until the `with` block exits.
        """
        with self._lock:
            c = self._get(client_id)
            if c.bound_slave_id and c.bound_slave_id != slave_id:
                raise Forbidden("boundSlaveId mismatch")
            yield
