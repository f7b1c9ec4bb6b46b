"""Append-only, group-partitioned log of master trade events.

Ids come from one counter shared by every group, so `id` order is insertion
order across the whole log. Groups are a read-side filter, not separate logs.
Only the newest `retention` events are kept.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable

from app.core.errors import InvalidInput
from app.storage.document_store import DocumentStore
from app.utils.coerce import as_float, as_int
from app.utils.time import now_ms

log = logging.getLogger(__name__)

EVENTS_DOC = "copier_events"

EVENT_TYPES = ("OPEN", "CLOSE")
DEFAULT_RETENTION = 50000
LIMIT_MIN = 1
LIMIT_MAX = 500


@dataclass(frozen=True)
class CopierEvent:
    id: int
    group: str
    type: str
    ts: int
    master_ticket: int
    open_time: int
    symbol: str
    cmd: int
    lots: float
    price: float
    sl: float
    tp: float
    magic: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "CopierEvent":
        return cls(
            id=as_int(d.get("id")),
            group=str(d.get("group") or ""),
            type=str(d.get("type") or ""),
            ts=as_int(d.get("ts")),
            master_ticket=as_int(d.get("master_ticket")),
            open_time=as_int(d.get("open_time")),
            symbol=str(d.get("symbol") or ""),
            cmd=as_int(d.get("cmd")),
            lots=as_float(d.get("lots")),
            price=as_float(d.get("price")),
            sl=as_float(d.get("sl")),
            tp=as_float(d.get("tp")),
            magic=as_int(d.get("magic")),
        )


def clamp_limit(limit: Any, default: int = 200, upper: int = LIMIT_MAX) -> int:
    n = as_int(limit) if limit not in (None, "") else default
    return max(LIMIT_MIN, min(upper, n))


class EventLog:
    def __init__(
        self,
        store: DocumentStore,
        retention: int = DEFAULT_RETENTION,
        clock: Callable[[], int] = now_ms,
        limit_max: int = LIMIT_MAX,
    ):
        if retention < 1:
            raise ValueError("retention must be >= 1")
        self.store = store
        self.retention = int(retention)
        self.limit_max = int(limit_max)
        self.clock = clock
        self._lock = threading.Lock()
        self._next_id = 1
        self._events: list[CopierEvent] = []
        self._load()

    def _load(self) -> None:
        raw = self.store.load(EVENTS_DOC, {"nextId": 1, "events": []})
        if not isinstance(raw, dict):
            raw = {}
        events = [CopierEvent.from_dict(d) for d in raw.get("events") or [] if isinstance(d, dict)]
        events.sort(key=lambda e: e.id)
        self._events = events[-self.retention:]
        last_id = self._events[-1].id if self._events else 0
        # never reuse an id, even if the stored counter lags the events
        self._next_id = max(as_int(raw.get("nextId")) or 1, last_id + 1)
        log.info("copier events loaded: %d stored, nextId=%d", len(self._events), self._next_id)

    def _persist(self) -> bool:
        return self.store.save(
            EVENTS_DOC,
            {"nextId": self._next_id, "events": [e.to_dict() for e in self._events]},
        )

    @property
    def max_event_id(self) -> int:
        return self._next_id - 1

    def __len__(self) -> int:
        return len(self._events)

    def append(self, group: str, event_type: str, fields: dict[str, Any] | None = None) -> CopierEvent:
        """Validate, number, store and persist one event; trims the oldest beyond retention."""
        f = fields or {}
        group = str(group or "")
        event_type = str(event_type or "")
        if not group or event_type not in EVENT_TYPES:
            raise InvalidInput("bad group/type")

        master_ticket = as_int(f.get("master_ticket"))
        symbol = str(f.get("symbol") or "")
        if not master_ticket or not symbol:
            raise InvalidInput("missing master_ticket/symbol")

        with self._lock:
            ev = CopierEvent(
                id=self._next_id,
                group=group,
                type=event_type,
                ts=self.clock(),
                master_ticket=master_ticket,
                open_time=as_int(f.get("open_time")),
                symbol=symbol,
                cmd=as_int(f.get("cmd")),
                lots=as_float(f.get("lots") or f.get("lot")),
                price=as_float(f.get("price")),
                sl=as_float(f.get("sl")),
                tp=as_float(f.get("tp")),
                magic=as_int(f.get("magic")),
            )
            self._next_id += 1
            self._events.append(ev)
            if len(self._events) > self.retention:
                del self._events[: len(self._events) - self.retention]
            self._persist()

        log.debug("event %d appended: group=%s type=%s ticket=%d %s", ev.id, group, event_type, master_ticket, symbol)
        return ev

    def list_since(self, group: str, since_id: int, limit: int) -> list[CopierEvent]:
        """Events of `group` with id > since_id, ascending, at most `limit` (clamped to [1, limit_max])."""
        limit = max(LIMIT_MIN, min(self.limit_max, int(limit)))
        since_id = int(since_id or 0)
        out: list[CopierEvent] = []
        with self._lock:
            for ev in self._events:
                if ev.id <= since_id or ev.group != group:
                    continue
                out.append(ev)
                if len(out) >= limit:
                    break
        return out
