from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from app.storage.document_store import DocumentStore
from app.utils.coerce import as_int
from app.utils.time import now_ms

log = logging.getLogger(__name__)

SLAVES_DOC = "slaves"

SlaveKey = tuple[str, str]  # (group, slave_id)


def _encode_key(key: SlaveKey) -> str:
    return f"{key[0]}|{key[1]}"


def _decode_key(raw: str) -> SlaveKey | None:
    group, sep, slave_id = str(raw).partition("|")
    if not sep or not group or not slave_id:
        return None
    return group, slave_id


@dataclass
class SlaveCursor:
    group: str
    slave_id: str
    last_ack_id: int = 0
    last_seen_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "slaveId": self.slave_id,
            "lastAckId": self.last_ack_id,
            "lastSeenAt": self.last_seen_at,
        }


class SlaveDirectory:
    """Delivery cursor and liveness per (group, slave_id). Records are never removed."""

    def __init__(self, store: DocumentStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock
        self._lock = threading.Lock()
        self._cursors: dict[SlaveKey, SlaveCursor] = {}
        self._load()

    def _load(self) -> None:
        raw = self.store.load(SLAVES_DOC, {"slaves": {}})
        entries = raw.get("slaves") if isinstance(raw, dict) else None
        for k, v in (entries or {}).items():
            key = _decode_key(k)
            if key is None or not isinstance(v, dict):
                continue
            self._cursors[key] = SlaveCursor(
                group=key[0],
                slave_id=key[1],
                last_ack_id=as_int(v.get("lastAckId")),
                last_seen_at=as_int(v.get("lastSeenAt")),
            )

    def _persist(self) -> bool:
        return self.store.save(
            SLAVES_DOC,
            {
                "slaves": {
                    _encode_key(k): {"lastAckId": c.last_ack_id, "lastSeenAt": c.last_seen_at}
                    for k, c in self._cursors.items()
                }
            },
        )

    def _cursor(self, group: str, slave_id: str) -> SlaveCursor:
        key = (group, slave_id)
        c = self._cursors.get(key)
        if c is None:
            c = SlaveCursor(group=group, slave_id=slave_id)
            self._cursors[key] = c
            log.info("new slave cursor: group=%s slaveId=%s", group, slave_id)
        return c

    def __len__(self) -> int:
        return len(self._cursors)

    def get(self, group: str, slave_id: str) -> SlaveCursor | None:
        with self._lock:
            c = self._cursors.get((group, slave_id))
            return None if c is None else SlaveCursor(c.group, c.slave_id, c.last_ack_id, c.last_seen_at)

    def list_cursors(self) -> list[SlaveCursor]:
        with self._lock:
            return [SlaveCursor(c.group, c.slave_id, c.last_ack_id, c.last_seen_at) for c in self._cursors.values()]

    def touch(self, group: str, slave_id: str) -> SlaveCursor:
        with self._lock:
            c = self._cursor(group, slave_id)
            c.last_seen_at = self.clock()
            self._persist()
            return SlaveCursor(c.group, c.slave_id, c.last_ack_id, c.last_seen_at)

    def ack(self, group: str, slave_id: str, event_id: int) -> SlaveCursor:
        """Advance the cursor to max(current, event_id); acking an older id never moves it back."""
        with self._lock:
            c = self._cursor(group, slave_id)
            c.last_ack_id = max(int(c.last_ack_id or 0), int(event_id))
            c.last_seen_at = self.clock()
            self._persist()
            return SlaveCursor(c.group, c.slave_id, c.last_ack_id, c.last_seen_at)
