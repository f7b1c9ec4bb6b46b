"""Event distribution protocol: master push, slave register/poll/ack.

Per slave identity the protocol is UNBOUND -> BOUND. register and poll bind an
unbound client to the calling slaveId; ack never binds, it only rejects a
slaveId that differs from an existing binding. Going back to UNBOUND is an
admin `reset_bind`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from app.config import Settings
from app.core.access import AccessGate
from app.core.client_registry import Client, ClientRegistry
from app.core.errors import Forbidden, InvalidInput, NotFound, Unauthorized
from app.core.event_log import CopierEvent, EventLog
from app.core.slave_directory import SlaveDirectory
from app.storage.document_store import DocumentStore, JsonFileStore, SqlDocumentStore
from app.utils.time import now_ms

log = logging.getLogger(__name__)


@dataclass
class CopierService:
    registry: ClientRegistry
    events: EventLog
    slaves: SlaveDirectory
    gate: AccessGate
    store: DocumentStore
    clock: Callable[[], int] = now_ms

    # ---------------------------
    # Master
    # ---------------------------

    def push(self, master_key: str | None, group: str, event_type: str, fields: dict[str, Any]) -> CopierEvent:
        self.gate.require_master(master_key)
        return self.events.append(group, event_type, fields)

    # ---------------------------
    # Slave
    # ---------------------------

    @staticmethod
    def _require_ids(group: str, slave_id: str) -> None:
        if not group or not slave_id:
            raise InvalidInput("missing group/slaveId")

    def _enforce_binding(self, client: Client, slave_id: str) -> None:
        try:
            bound = self.registry.bind(client.client_id, slave_id)
        except NotFound:
            # deleted between the key lookup and the bind
            raise Unauthorized("invalid api key")
        if not bound:
            log.warning("client %s: slaveId %s refused, bound to another slave", client.client_id, slave_id)
            raise Forbidden("this api key is already bound to another slaveId")

    def register_slave(self, api_key: str | None, group: str, slave_id: str) -> str:
        """Bind (first caller wins) and mark the slave as seen. Returns the bound slaveId."""
        self._require_ids(group, slave_id)
        client = self.gate.require_client(api_key, group)
        self._enforce_binding(client, slave_id)
        self.slaves.touch(group, slave_id)
        return slave_id

    def poll_events(self, api_key: str | None, group: str, slave_id: str, since: int = 0, limit: int = 200) -> list[CopierEvent]:
        """Events after `since` for the client's group. Does not move the slave's cursor."""
        self._require_ids(group, slave_id)
        client = self.gate.require_client(api_key, group)
        self._enforce_binding(client, slave_id)
        self.slaves.touch(group, slave_id)
        return self.events.list_since(group, since, limit)

    def ack(self, api_key: str | None, group: str, slave_id: str, event_id: int, status: str) -> int:
        """Record an acknowledgement; returns the slave's lastAckId afterwards."""
        self._require_ids(group, slave_id)
        if not event_id or not status:
            raise InvalidInput("missing fields")
        client = self.gate.require_client(api_key, group)
        try:
            with self.registry.binding_guard(client.client_id, slave_id):
                cursor = self.slaves.ack(group, slave_id, event_id)
        except NotFound:
            raise Unauthorized("invalid api key")
        except Forbidden:
            log.warning("client %s: ack from %s refused, bound to another slave", client.client_id, slave_id)
            raise
        log.debug("ack group=%s slave=%s event=%d status=%s -> lastAckId=%d", group, slave_id, event_id, status, cursor.last_ack_id)
        return cursor.last_ack_id

    # ---------------------------
    # Reporting
    # ---------------------------

    def health(self) -> dict[str, Any]:
        return {
            "ok": True,
            "now": self.clock(),
            "maxEventId": self.events.max_event_id,
            "eventsStored": len(self.events),
            "slaves": len(self.slaves),
            "clients": len(self.registry),
            "storageFailures": self.store.failures,
        }


def build_store(settings: Settings) -> DocumentStore:
    backend = (settings.STORE_BACKEND or "FILE").strip().upper()
    if backend == "DB":
        from app.database.engine import SessionLocal, init_engine, init_schema_check

        engine = init_engine(settings.DATABASE_URL)
        init_schema_check(engine)
        return SqlDocumentStore(SessionLocal)
    if backend != "FILE":
        raise ValueError(f"unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")
    return JsonFileStore(Path(settings.DATA_DIR))


def build_service(
    settings: Settings,
    store: DocumentStore | None = None,
    clock: Callable[[], int] = now_ms,
) -> CopierService:
    """Load every collection from the store and wire the components together."""
    store = store if store is not None else build_store(settings)
    registry = ClientRegistry(store, clock=clock)
    events = EventLog(
        store,
        retention=settings.EVENT_RETENTION,
        clock=clock,
        limit_max=settings.POLL_LIMIT_MAX,
    )
    slaves = SlaveDirectory(store, clock=clock)
    gate = AccessGate(
        registry,
        agent_key=settings.API_KEY,
        admin_key=settings.ADMIN_KEY,
        master_key=settings.MASTER_KEY,
    )
    return CopierService(registry=registry, events=events, slaves=slaves, gate=gate, store=store, clock=clock)
