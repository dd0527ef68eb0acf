"""Append-only immunization event log — the durable record of clinical facts.

Every reported dose becomes an ImmunizationEvent appended here. Appending
is the durability boundary of ingestion: once ``append`` returns, the
event is recorded, whatever happens to anchoring or dose-status
bookkeeping afterwards.

Events are never modified or deleted. Attaching a ledger reference after
a successful anchor is recorded as a separate ``anchor`` line in the
JSONL file and folded into the event on load.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Optional

from vaxledger.errors import DuplicateError, NotFoundError
from vaxledger.models.records import ImmunizationEvent, LedgerRef, clinical_hash


class ImmunizationEventLog:
    """Append-only event log with optional JSONL persistence.

    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: dict[str, ImmunizationEvent] = {}
        self._order: list[str] = []
        self._storage_path = storage_path
        self._lock = threading.Lock()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: ImmunizationEvent) -> None:
        """Append an event to the log.

        Raises DuplicateError if event_id is a duplicate (replay protection).
        """
        with self._lock:
            if event.event_id in self._events:
                raise DuplicateError(f"Duplicate event ID: {event.event_id}")
            if self._storage_path:
                self._write_line({"kind": "event", "event": _clinical_fields(event)})
            self._events[event.event_id] = event
            self._order.append(event.event_id)

    def attach_ledger_ref(self, event_id: str, ref: LedgerRef) -> ImmunizationEvent:
        """Record where an event was anchored. The clinical fields never change."""
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise NotFoundError(f"Unknown event ID: {event_id}")
            if self._storage_path:
                self._write_line({
                    "kind": "anchor",
                    "event_id": event_id,
                    "ledger_ref": ref.to_dict(),
                })
            updated = event.with_ledger_ref(ref)
            self._events[event_id] = updated
            return updated

    def get(self, event_id: str) -> Optional[ImmunizationEvent]:
        return self._events.get(event_id)

    def events(self, child_id: Optional[str] = None) -> list[ImmunizationEvent]:
        """Return events in append order, optionally for one child."""
        result = [self._events[i] for i in self._order]
        if child_id is None:
            return result
        return [e for e in result if e.child_id == child_id]

    def completed_keys(self, child_id: str) -> set[tuple[str, int]]:
        """(vaccine, dose) pairs with at least one recorded event."""
        return {e.dose_key for e in self.events(child_id)}

    def unanchored(self) -> list[ImmunizationEvent]:
        return [e for e in self.events() if not e.is_ledger_anchored]

    @property
    def count(self) -> int:
        return len(self._order)

    def _write_line(self, record: dict[str, Any]) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch), duplicate
        event IDs, and anchor lines for unknown events.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                if data["kind"] == "anchor":
                    event_id = data["event_id"]
                    event = self._events.get(event_id)
                    if event is None:
                        raise ValueError(
                            f"Anchor for unknown event (line {line_num}): {event_id}"
                        )
                    self._events[event_id] = event.with_ledger_ref(
                        LedgerRef.from_dict(data["ledger_ref"])
                    )
                    continue

                event = ImmunizationEvent.from_dict(data["event"])
                if event.event_id in self._events:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event.event_id}"
                    )

                expected = clinical_hash(
                    event.child_id,
                    event.vaccine_name,
                    event.dose_number,
                    event.date_administered,
                    event.administered_by,
                    event.location,
                )
                if event.content_hash != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event.event_id} "
                        f"stored hash {event.content_hash} != computed {expected}"
                    )

                self._events[event.event_id] = event
                self._order.append(event.event_id)


def _clinical_fields(event: ImmunizationEvent) -> dict[str, Any]:
    data = event.to_dict()
    data.pop("ledger_ref")
    data.pop("is_ledger_anchored")
    return data
