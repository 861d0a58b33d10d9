"""Append-only audit trail for security-relevant engine actions."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Mapping

import typer

MAX_AUDIT_ENTRIES = 100


@dataclass(slots=True)
class AuditEntry:
    """Single audit record."""

    timestamp: str
    event: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "event": self.event, "details": dict(self.details)}


class AuditTrail:
    """Capped ring buffer of :class:`AuditEntry` records.

    Entries beyond ``capacity`` drop the oldest first.  When ``verbose`` is set
    each entry is also echoed to the console.  The trail lives in memory only.
    """

    def __init__(self, *, capacity: int = MAX_AUDIT_ENTRIES, verbose: bool = False) -> None:
        self._entries: Deque[AuditEntry] = deque(maxlen=capacity)
        self.verbose = verbose

    def record(self, event: str, details: Mapping[str, Any] | None = None) -> AuditEntry:
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            details=dict(details or {}),
        )
        self._entries.append(entry)
        if self.verbose:
            payload = json.dumps(entry.details, default=str, sort_keys=True)
            typer.secho(f"   [AUDIT] {event}: {payload}", fg=typer.colors.BRIGHT_BLACK)
        return entry

    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    def events(self) -> List[str]:
        return [entry.event for entry in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["AuditEntry", "AuditTrail", "MAX_AUDIT_ENTRIES"]
