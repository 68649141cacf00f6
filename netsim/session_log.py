"""Structured event log for a simulation session.

Event kinds read `<record>-<what happened>`: `device-added`,
`packet-updated`, `connection-rejected`, `action-blocked`. Kinds ending in
one of ABSORBED_SUFFIXES mark requests the engine took without changing
state. Events are numbered from 1 in the order they happened, and the
numbering survives trimming and `clear()`, so a consumer can catch up with
`since(seq)`. Nothing is written to disk.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional


ABSORBED_SUFFIXES = ("-ignored", "-rejected", "-blocked")


@dataclass(frozen=True)
class SessionEvent:
    seq: int
    ts: str
    kind: str
    data: Dict[str, Any]

    @property
    def record(self) -> str:
        """Leading word of the kind, e.g. `device` or `simulation`."""
        return self.kind.split("-", 1)[0]

    @property
    def subject(self) -> Optional[str]:
        return self.data.get("id")

    @property
    def absorbed(self) -> bool:
        return self.kind.endswith(ABSORBED_SUFFIXES)


class SessionLogger:
    """In-memory event log for a simulation session.

    Every store mutation and every absorbed or blocked request lands here,
    so a session can be inspected (or asserted on) after the fact. Only the
    newest `max_events` are kept.
    """

    def __init__(self, max_events: int = 5000):
        self.max_events = max_events
        self.events: Deque[SessionEvent] = deque(maxlen=max_events)
        self._seq = 0

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    @property
    def seq(self) -> int:
        """Number of the newest event ever added (0 before the first)."""
        return self._seq

    def add(self, kind: str, **data: Any) -> SessionEvent:
        self._seq += 1
        ev = SessionEvent(seq=self._seq, ts=self._now(), kind=str(kind), data=dict(data))
        self.events.append(ev)
        return ev

    def of_kind(self, kind: str) -> List[SessionEvent]:
        return [e for e in self.events if e.kind == kind]

    def since(self, seq: int) -> List[SessionEvent]:
        return [e for e in self.events if e.seq > seq]

    def history(self, record_id: str) -> List[SessionEvent]:
        """Everything logged about one device, connection or packet id."""
        return [e for e in self.events if e.subject == record_id]

    def absorbed(self) -> List[SessionEvent]:
        return [e for e in self.events if e.absorbed]

    def counts(self) -> Counter:
        return Counter(e.kind for e in self.events)

    def last(self) -> Optional[SessionEvent]:
        return self.events[-1] if self.events else None

    def clear(self) -> None:
        self.events.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": "netsim-session-log/v1",
            "eventCount": len(self.events),
            # trimmed or cleared away
            "evicted": self._seq - len(self.events),
            "counts": dict(self.counts()),
            "events": [asdict(e) for e in self.events],
        }
