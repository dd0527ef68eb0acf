"""Dose status and immunization event models.

DoseStatus is the mutable per-child view of the schedule: one record per
(child_id, vaccine_name, dose_number), created in bulk at registration.

ImmunizationEvent is the clinical fact. It is immutable once written; the
only thing that may be attached afterwards is a ledger reference. The
content_hash is computed at creation from the canonical JSON of the
clinical fields and is what gets anchored.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Optional


class DoseState(str, enum.Enum):
    """Lifecycle state of a single scheduled dose."""
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    SKIPPED = "skipped"


@dataclass
class DoseStatus:
    child_id: str
    vaccine_name: str
    dose_number: int
    total_doses: int
    age_bucket_label: str
    age_in_months: int
    status: DoseState
    scheduled_date: date
    completed_date: Optional[date] = None
    notes: str = ""

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.child_id, self.vaccine_name, self.dose_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "vaccine_name": self.vaccine_name,
            "dose_number": self.dose_number,
            "total_doses": self.total_doses,
            "age_bucket_label": self.age_bucket_label,
            "age_in_months": self.age_in_months,
            "status": self.status.value,
            "scheduled_date": self.scheduled_date.isoformat(),
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DoseStatus:
        completed = data.get("completed_date")
        return DoseStatus(
            child_id=data["child_id"],
            vaccine_name=data["vaccine_name"],
            dose_number=int(data["dose_number"]),
            total_doses=int(data["total_doses"]),
            age_bucket_label=data["age_bucket_label"],
            age_in_months=int(data["age_in_months"]),
            status=DoseState(data["status"]),
            scheduled_date=date.fromisoformat(data["scheduled_date"]),
            completed_date=date.fromisoformat(completed) if completed else None,
            notes=data.get("notes", ""),
        )


@dataclass(frozen=True)
class LedgerRef:
    """Where and when a record was anchored."""
    tx_hash: str
    block_number: int
    anchored_at: str  # ISO-8601 UTC

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "anchored_at": self.anchored_at,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> LedgerRef:
        return LedgerRef(
            tx_hash=data["tx_hash"],
            block_number=int(data["block_number"]),
            anchored_at=data["anchored_at"],
        )


def clinical_hash(
    child_id: str,
    vaccine_name: str,
    dose_number: int,
    date_administered: date,
    administered_by: str,
    location: str,
) -> str:
    """SHA-256 over the canonical JSON of the clinical fields.

    Canonical form: sorted keys, Unicode preserved, UTF-8 encoded.
    """
    canonical = json.dumps(
        {
            "child_id": child_id,
            "vaccine_name": vaccine_name,
            "dose_number": dose_number,
            "date_administered": date_administered.isoformat(),
            "administered_by": administered_by,
            "location": location,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class ImmunizationEvent:
    """A single administered dose, as reported."""
    event_id: str
    child_id: str
    vaccine_name: str
    dose_number: int
    date_administered: date
    administered_by: str
    location: str
    recorded_utc: str
    content_hash: str
    age_bucket_label: Optional[str] = None
    batch_number: Optional[str] = None
    notes: str = ""
    ledger_ref: Optional[LedgerRef] = None

    @property
    def is_ledger_anchored(self) -> bool:
        return self.ledger_ref is not None

    @property
    def dose_key(self) -> tuple[str, int]:
        return (self.vaccine_name, self.dose_number)

    @staticmethod
    def create(
        event_id: str,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        date_administered: date,
        administered_by: str,
        location: str,
        age_bucket_label: Optional[str] = None,
        batch_number: Optional[str] = None,
        notes: str = "",
        recorded_utc: Optional[datetime] = None,
    ) -> ImmunizationEvent:
        """Create a new event with its content hash."""
        ts = recorded_utc or datetime.now(timezone.utc)
        return ImmunizationEvent(
            event_id=event_id,
            child_id=child_id,
            vaccine_name=vaccine_name,
            dose_number=dose_number,
            date_administered=date_administered,
            administered_by=administered_by,
            location=location,
            recorded_utc=ts.strftime("%Y-%m-%dT%H:%M:%SZ"),
            content_hash=clinical_hash(
                child_id, vaccine_name, dose_number,
                date_administered, administered_by, location,
            ),
            age_bucket_label=age_bucket_label,
            batch_number=batch_number,
            notes=notes,
        )

    def with_ledger_ref(self, ref: LedgerRef) -> ImmunizationEvent:
        return replace(self, ledger_ref=ref)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "child_id": self.child_id,
            "vaccine_name": self.vaccine_name,
            "dose_number": self.dose_number,
            "date_administered": self.date_administered.isoformat(),
            "administered_by": self.administered_by,
            "location": self.location,
            "recorded_utc": self.recorded_utc,
            "content_hash": self.content_hash,
            "age_bucket_label": self.age_bucket_label,
            "batch_number": self.batch_number,
            "notes": self.notes,
            "ledger_ref": self.ledger_ref.to_dict() if self.ledger_ref else None,
            "is_ledger_anchored": self.is_ledger_anchored,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ImmunizationEvent:
        ref = data.get("ledger_ref")
        return ImmunizationEvent(
            event_id=data["event_id"],
            child_id=data["child_id"],
            vaccine_name=data["vaccine_name"],
            dose_number=int(data["dose_number"]),
            date_administered=date.fromisoformat(data["date_administered"]),
            administered_by=data["administered_by"],
            location=data["location"],
            recorded_utc=data["recorded_utc"],
            content_hash=data["content_hash"],
            age_bucket_label=data.get("age_bucket_label"),
            batch_number=data.get("batch_number"),
            notes=data.get("notes", ""),
            ledger_ref=LedgerRef.from_dict(ref) if ref else None,
        )
