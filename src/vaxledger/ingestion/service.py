"""Record ingestion — turns a reported dose into a durable clinical fact.

Order of operations in ``submit``:
    1. validate the payload (ValidationError lists every problem)
    2. look up the age bucket label (best effort)
    3. append the event to the log (durability boundary)
    4. anchor the event on the ledger (best effort, single attempt)
    5. mark the dose completed in the dose-status store (best effort)

Only step 1 and an unknown child fail the call. Everything after step 3
is absorbed into warnings: once the event is appended it stays recorded,
whatever the ledger or the dose-status store do.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

from vaxledger.errors import LedgerError, NotFoundError, ValidationError
from vaxledger.ledger.anchor import LedgerAnchor
from vaxledger.models.records import ImmunizationEvent
from vaxledger.persistence.event_log import ImmunizationEventLog
from vaxledger.registry import ChildRegistry
from vaxledger.schedule.catalog import ScheduleCatalog
from vaxledger.schedule.dose_status import DoseStatusStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "child_id",
    "vaccine_name",
    "dose_number",
    "date_given",
    "administered_by",
    "location",
)


@dataclass(frozen=True)
class IngestionResult:
    """The persisted event plus anything that went wrong after persisting it."""
    event: ImmunizationEvent
    warnings: list[str] = field(default_factory=list)
    anchor_pending: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "warnings": list(self.warnings),
            "anchor_pending": self.anchor_pending,
        }


@dataclass(frozen=True)
class SyncReport:
    events: int
    updated: int
    missing: list[str] = field(default_factory=list)


def validate_submission(payload: dict[str, Any]) -> tuple[int, date]:
    """Check a submission payload. Returns (dose_number, date_given).

    Collects every problem before raising, so the caller sees them all.
    """
    errors: list[str] = []
    for name in REQUIRED_FIELDS:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"{name} is required")

    dose_number = 0
    raw_dose = payload.get("dose_number")
    if raw_dose is not None:
        if isinstance(raw_dose, bool):
            errors.append("dose_number must be a positive integer")
        else:
            try:
                dose_number = int(raw_dose)
            except (TypeError, ValueError):
                errors.append("dose_number must be a positive integer")
            else:
                if dose_number < 1 or str(raw_dose).strip() != str(dose_number):
                    errors.append("dose_number must be a positive integer")

    date_given = date.min
    raw_date = payload.get("date_given")
    if isinstance(raw_date, datetime):
        date_given = raw_date.date()
    elif isinstance(raw_date, date):
        date_given = raw_date
    elif isinstance(raw_date, str) and raw_date.strip():
        try:
            date_given = date.fromisoformat(raw_date.strip()[:10])
        except ValueError:
            errors.append(f"date_given is not an ISO date: {raw_date!r}")
    elif raw_date is not None:
        errors.append("date_given must be an ISO date string")

    if errors:
        raise ValidationError(errors, details={"fields": sorted(payload)})
    return dose_number, date_given


class RecordIngestion:
    """Validates, persists and post-processes immunization events.

    When an executor is given, the anchoring step is submitted to it and
    the call returns without waiting (``anchor_pending=True``). The
    executor's in-flight attempts finish or time out on their own; the
    ledger client carries the timeout.
    """

    def __init__(
        self,
        catalog: ScheduleCatalog,
        registry: ChildRegistry,
        dose_store: DoseStatusStore,
        event_log: ImmunizationEventLog,
        anchor: LedgerAnchor,
        executor: Optional[Executor] = None,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._dose_store = dose_store
        self._event_log = event_log
        self._anchor = anchor
        self._executor = executor

    def submit(
        self,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> IngestionResult:
        dose_number, date_given = validate_submission(payload)
        child_id = str(payload["child_id"]).strip()
        vaccine_name = str(payload["vaccine_name"]).strip()
        if not self._registry.exists(child_id):
            raise NotFoundError(f"Child not found: {child_id}", details={"child_id": child_id})

        warnings: list[str] = []
        now = now or datetime.now(timezone.utc)

        bucket_label = None
        entry = self._catalog.find(vaccine_name, dose_number)
        if entry is not None:
            bucket_label = entry.age_bucket_label
        else:
            logger.warning(
                "No schedule entry for %s dose %d (child %s)",
                vaccine_name, dose_number, child_id,
            )
            warnings.append(f"{vaccine_name} dose {dose_number} is not in the schedule")

        event = ImmunizationEvent.create(
            event_id=payload.get("event_id") or f"IMM-{uuid.uuid4().hex[:12]}",
            child_id=child_id,
            vaccine_name=vaccine_name,
            dose_number=dose_number,
            date_administered=date_given,
            administered_by=str(payload["administered_by"]).strip(),
            location=str(payload["location"]).strip(),
            age_bucket_label=bucket_label,
            batch_number=payload.get("batch_number"),
            notes=payload.get("notes") or "",
            recorded_utc=now,
        )
        self._event_log.append(event)
        logger.info("Recorded %s dose %d for %s as %s", vaccine_name, dose_number, child_id, event.event_id)

        anchor_pending = False
        if self._anchor.available and self._executor is not None:
            future = self._executor.submit(self._try_anchor, event.event_id)
            future.add_done_callback(_log_background_failure)
            anchor_pending = True
        else:
            problem = self._try_anchor(event.event_id, now)
            if problem:
                warnings.append(problem)
            else:
                event = self._event_log.get(event.event_id) or event

        try:
            self._dose_store.mark_completed(child_id, vaccine_name, dose_number, date_given)
        except NotFoundError as e:
            logger.warning("Dose status missing for recorded event %s: %s", event.event_id, e)
            warnings.append(f"No dose status for {vaccine_name} dose {dose_number}")
        except Exception as e:
            logger.exception("Dose status update failed for recorded event %s", event.event_id)
            warnings.append(f"Dose status not updated for {vaccine_name} dose {dose_number}: {e}")

        return IngestionResult(event=event, warnings=warnings, anchor_pending=anchor_pending)

    def anchor_pending_events(self, child_id: Optional[str] = None) -> int:
        """One more attempt for every unanchored event. Returns how many succeeded."""
        anchored = 0
        for event in self._event_log.unanchored():
            if child_id is not None and event.child_id != child_id:
                continue
            if self._try_anchor(event.event_id) is None:
                anchored += 1
        return anchored

    def sync_dose_statuses(self, child_id: str) -> SyncReport:
        """Re-apply every logged event to the dose-status store."""
        self._registry.get(child_id)
        events = self._event_log.events(child_id)
        updated = 0
        missing: list[str] = []
        for event in events:
            before = self._dose_store.get(child_id, event.vaccine_name, event.dose_number)
            if before is None:
                missing.append(f"{event.vaccine_name} dose {event.dose_number}")
                continue
            after = self._dose_store.mark_completed(
                child_id, event.vaccine_name, event.dose_number, event.date_administered,
            )
            if after.status != before.status:
                updated += 1
        if updated or missing:
            logger.info(
                "Synced dose statuses for %s: %d updated, %d without status",
                child_id, updated, len(missing),
            )
        return SyncReport(events=len(events), updated=updated, missing=missing)

    def history(self, child_id: str) -> list[ImmunizationEvent]:
        """Events for a child, most recently administered first."""
        self._registry.get(child_id)
        events = self._event_log.events(child_id)
        return sorted(events, key=lambda e: (e.date_administered, e.recorded_utc), reverse=True)

    def _try_anchor(self, event_id: str, now: Optional[datetime] = None) -> Optional[str]:
        """Single anchoring attempt. Returns a warning string on failure."""
        event = self._event_log.get(event_id)
        if event is None or event.is_ledger_anchored:
            return None
        try:
            receipt = self._anchor.anchor_event(event, now=now)
        except LedgerError as e:
            logger.warning("Ledger anchoring failed for %s: %s", event_id, e)
            return f"Ledger anchoring failed: {e.message}"
        except Exception as e:
            logger.exception("Unexpected ledger error while anchoring %s", event_id)
            return f"Ledger anchoring failed: {e}"
        self._event_log.attach_ledger_ref(event_id, receipt.ledger_ref)
        return None


def _log_background_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        logger.error("Background anchoring crashed: %s", error)
