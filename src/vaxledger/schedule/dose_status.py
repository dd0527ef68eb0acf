"""Dose status store — one status record per (child, vaccine, dose).

The full key set for a child is created in bulk at registration, so later
lookups never need implicit creation. A missing key therefore always
means a data inconsistency (an event for a dose outside the schedule),
never "not yet created".

Overdue classification is lazy: stored pending/overdue values reflect the
moment they were written, and ``statuses_for_child`` re-evaluates them
against the caller's ``today``. There is no background sweep.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Optional

from vaxledger.errors import DuplicateError, NotFoundError, TransitionError
from vaxledger.models.records import DoseState, DoseStatus
from vaxledger.persistence.snapshot import JsonSnapshot
from vaxledger.schedule.ages import add_months, age_in_months, classify_dose
from vaxledger.schedule.catalog import ScheduleCatalog

logger = logging.getLogger(__name__)

DoseKey = tuple[str, str, int]


class DoseStatusStore:
    """In-memory dose statuses with optional JSON snapshot persistence.

    Usage:
        store = DoseStatusStore(catalog)
        store.initialize_for_child("CH1234567890-001", birth_date, today=today)
        store.mark_completed("CH1234567890-001", "BCG", 1, date(2026, 1, 5))
        statuses = store.statuses_for_child("CH1234567890-001", birth_date, today)
    """

    def __init__(
        self,
        catalog: ScheduleCatalog,
        storage_path: Optional[Path] = None,
    ) -> None:
        self._catalog = catalog
        self._records: dict[DoseKey, DoseStatus] = {}
        self._children: set[str] = set()
        self._lock = threading.RLock()
        self._snapshot = JsonSnapshot(storage_path) if storage_path else None

        if self._snapshot is not None and self._snapshot.exists():
            for data in self._snapshot.load():
                record = DoseStatus.from_dict(data)
                self._records[record.key] = record
                self._children.add(record.child_id)

    def has_child(self, child_id: str) -> bool:
        return child_id in self._children

    def initialize_for_child(
        self,
        child_id: str,
        birth_date: date,
        today: Optional[date] = None,
    ) -> list[DoseStatus]:
        """Create one status per catalog entry, classified as of today."""
        today = today or date.today()
        child_age = age_in_months(birth_date, today)

        created: list[DoseStatus] = []
        for entry in self._catalog:
            created.append(DoseStatus(
                child_id=child_id,
                vaccine_name=entry.vaccine_name,
                dose_number=entry.dose_number,
                total_doses=entry.total_doses,
                age_bucket_label=entry.age_bucket_label,
                age_in_months=entry.age_in_months,
                status=classify_dose(child_age, entry.age_in_months),
                scheduled_date=add_months(birth_date, entry.age_in_months),
            ))

        with self._lock:
            if child_id in self._children:
                raise DuplicateError(f"Dose statuses already initialized for {child_id}")
            for record in created:
                self._records[record.key] = record
            self._children.add(child_id)
            self._persist()

        logger.info("Initialized %d dose statuses for %s", len(created), child_id)
        return [replace(r) for r in created]

    def get(self, child_id: str, vaccine_name: str, dose_number: int) -> Optional[DoseStatus]:
        record = self._records.get((child_id, vaccine_name, dose_number))
        return replace(record) if record else None

    def mark_completed(
        self,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        completed_date: date,
    ) -> DoseStatus:
        """Mark a dose completed. Idempotent: an already-completed dose is left as is.

        Raises NotFoundError if the key was never initialized.
        """
        with self._lock:
            record = self._records.get((child_id, vaccine_name, dose_number))
            if record is None:
                raise NotFoundError(
                    f"No dose status for {child_id}: {vaccine_name} dose {dose_number}",
                    details={
                        "child_id": child_id,
                        "vaccine_name": vaccine_name,
                        "dose_number": dose_number,
                    },
                )
            if record.status != DoseState.COMPLETED:
                record.status = DoseState.COMPLETED
                record.completed_date = completed_date
                self._persist()
            return replace(record)

    def mark_skipped(
        self,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        notes: str = "",
    ) -> DoseStatus:
        """Record a clinician's decision to skip an outstanding dose."""
        with self._lock:
            record = self._records.get((child_id, vaccine_name, dose_number))
            if record is None:
                raise NotFoundError(
                    f"No dose status for {child_id}: {vaccine_name} dose {dose_number}"
                )
            if record.status == DoseState.COMPLETED:
                raise TransitionError(
                    f"{vaccine_name} dose {dose_number} is already completed for {child_id}"
                )
            record.status = DoseState.SKIPPED
            record.notes = notes
            self._persist()
            return replace(record)

    def statuses_for_child(
        self,
        child_id: str,
        birth_date: date,
        today: Optional[date] = None,
    ) -> list[DoseStatus]:
        """All statuses for a child, with pending/overdue re-evaluated for today."""
        today = today or date.today()
        child_age = age_in_months(birth_date, today)
        result: list[DoseStatus] = []
        for record in self._records_for(child_id):
            current = replace(record)
            if current.status in (DoseState.PENDING, DoseState.OVERDUE):
                current.status = classify_dose(child_age, current.age_in_months)
            result.append(current)
        return result

    def pending(
        self,
        child_id: str,
        birth_date: date,
        today: Optional[date] = None,
    ) -> list[DoseStatus]:
        """Outstanding doses (pending or overdue), soonest first."""
        outstanding = [
            s for s in self.statuses_for_child(child_id, birth_date, today)
            if s.status in (DoseState.PENDING, DoseState.OVERDUE)
        ]
        return sorted(outstanding, key=lambda s: (s.scheduled_date, s.vaccine_name))

    def completed(self, child_id: str) -> list[DoseStatus]:
        """Completed doses, most recent first."""
        done = [
            replace(r) for r in self._records_for(child_id)
            if r.status == DoseState.COMPLETED
        ]
        return sorted(done, key=lambda s: s.completed_date or date.min, reverse=True)

    def _records_for(self, child_id: str) -> list[DoseStatus]:
        records = [r for r in self._records.values() if r.child_id == child_id]
        return sorted(records, key=lambda r: (r.age_in_months, r.dose_number, r.vaccine_name))

    def _persist(self) -> None:
        if self._snapshot is None:
            return
        self._snapshot.save([r.to_dict() for r in self._records.values()])
