"""Eligibility engine — completion and certificate verdicts.

Pure computation over the schedule catalog, the dose-status store and the
event log. Nothing here writes state. "Not yet eligible" is a verdict
with a reason, never an exception.

The completion unit is a (vaccine, dose) key. A key counts as completed
when an immunization event exists for it or its dose status is
completed. Both sources only ever grow, so the completion rate for a
child can only go up as events are ingested.

Certificate rules:
    school_readiness  age >= 72 months and every required dose in the
                      birth to 4-6 years buckets completed
    completion        age >= 216 months and every required dose in the
                      birth to 18 years buckets completed
    progress          at least one completed dose
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from vaxledger.models.certificate import CertificateType
from vaxledger.models.records import DoseState, DoseStatus
from vaxledger.models.schedule import (
    COMPLETION_BUCKETS,
    COMPLETION_MIN_AGE_MONTHS,
    SCHOOL_READINESS_BUCKETS,
    SCHOOL_READINESS_MIN_AGE_MONTHS,
    ScheduleEntry,
)
from vaxledger.persistence.event_log import ImmunizationEventLog
from vaxledger.registry import ChildRegistry
from vaxledger.schedule.ages import age_in_months, completion_rate
from vaxledger.schedule.catalog import ScheduleCatalog
from vaxledger.schedule.dose_status import DoseStatusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSummary:
    """Lifetime progress against the whole required schedule."""
    child_id: str
    age_in_months: int
    completed_count: int
    total_required: int
    completion_rate_percent: int
    missing_vaccines: list[str] = field(default_factory=list)
    missing_doses: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "age_in_months": self.age_in_months,
            "completed_count": self.completed_count,
            "total_required": self.total_required,
            "completion_rate_percent": self.completion_rate_percent,
            "missing_vaccines": list(self.missing_vaccines),
            "missing_doses": list(self.missing_doses),
        }


@dataclass(frozen=True)
class EligibilityVerdict:
    """Certificate eligibility with the numbers behind it."""
    child_id: str
    certificate_type: CertificateType
    eligible: bool
    reason: str
    age_in_months: int
    completed_count: int
    total_required: int
    completion_rate_percent: int
    min_age_months: Optional[int] = None
    missing_doses: list[str] = field(default_factory=list)
    excluded_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "certificate_type": self.certificate_type.value,
            "eligible": self.eligible,
            "reason": self.reason,
            "age_in_months": self.age_in_months,
            "completed_count": self.completed_count,
            "total_required": self.total_required,
            "completion_rate_percent": self.completion_rate_percent,
            "min_age_months": self.min_age_months,
            "missing_doses": list(self.missing_doses),
            "excluded_count": self.excluded_count,
        }


@dataclass(frozen=True)
class BucketProgress:
    label: str
    age_in_months: int
    vaccines: list[str]
    completed: int
    pending: int
    due: bool = True

    @property
    def status(self) -> str:
        if self.pending == 0:
            return "completed"
        if self.completed > 0:
            return "partial"
        return "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "age_in_months": self.age_in_months,
            "vaccines": list(self.vaccines),
            "completed": self.completed,
            "pending": self.pending,
            "due": self.due,
            "status": self.status,
        }


def dose_label(entry: ScheduleEntry) -> str:
    return f"{entry.vaccine_name} (Dose {entry.dose_number})"


class EligibilityEngine:
    """Read-only verdicts over a child's immunization state.

    Usage:
        engine = EligibilityEngine(catalog, registry, dose_store, event_log)
        summary = engine.progress_summary(child_id, today=date(2026, 3, 1))
        verdict = engine.school_readiness(child_id, today=date(2026, 3, 1))
    """

    def __init__(
        self,
        catalog: ScheduleCatalog,
        registry: ChildRegistry,
        dose_store: DoseStatusStore,
        event_log: ImmunizationEventLog,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._dose_store = dose_store
        self._event_log = event_log

    def completed_keys(self, child_id: str) -> set[tuple[str, int]]:
        """Union of event-backed keys and dose statuses marked completed."""
        keys = self._event_log.completed_keys(child_id)
        keys.update(
            (s.vaccine_name, s.dose_number) for s in self._dose_store.completed(child_id)
        )
        return keys

    def progress_summary(self, child_id: str, today: Optional[date] = None) -> ProgressSummary:
        child = self._registry.get(child_id)
        today = today or date.today()
        required = self._catalog.required_entries()
        completed = self.completed_keys(child_id)

        done = [e for e in required if e.key in completed]
        missing = [e for e in required if e.key not in completed]
        missing_vaccines: list[str] = []
        for entry in missing:
            if entry.vaccine_name not in missing_vaccines:
                missing_vaccines.append(entry.vaccine_name)

        return ProgressSummary(
            child_id=child_id,
            age_in_months=age_in_months(child.birth_date, today),
            completed_count=len(done),
            total_required=len(required),
            completion_rate_percent=completion_rate(len(done), len(required)),
            missing_vaccines=missing_vaccines,
            missing_doses=[dose_label(e) for e in missing],
        )

    def school_readiness(self, child_id: str, today: Optional[date] = None) -> EligibilityVerdict:
        return self._bucket_verdict(
            child_id,
            today,
            CertificateType.SCHOOL_READINESS,
            SCHOOL_READINESS_BUCKETS,
            SCHOOL_READINESS_MIN_AGE_MONTHS,
        )

    def completion_certificate_eligibility(
        self,
        child_id: str,
        today: Optional[date] = None,
    ) -> EligibilityVerdict:
        return self._bucket_verdict(
            child_id,
            today,
            CertificateType.COMPLETION,
            COMPLETION_BUCKETS,
            COMPLETION_MIN_AGE_MONTHS,
        )

    def progress_certificate_eligibility(
        self,
        child_id: str,
        today: Optional[date] = None,
    ) -> EligibilityVerdict:
        summary = self.progress_summary(child_id, today)
        eligible = summary.completed_count > 0
        return EligibilityVerdict(
            child_id=child_id,
            certificate_type=CertificateType.PROGRESS,
            eligible=eligible,
            reason=(
                f"{summary.completed_count} of {summary.total_required} required doses completed"
                if eligible else "No vaccinations recorded yet"
            ),
            age_in_months=summary.age_in_months,
            completed_count=summary.completed_count,
            total_required=summary.total_required,
            completion_rate_percent=summary.completion_rate_percent,
            missing_doses=summary.missing_doses,
        )

    def for_certificate(
        self,
        child_id: str,
        certificate_type: CertificateType,
        today: Optional[date] = None,
    ) -> EligibilityVerdict:
        if certificate_type is CertificateType.SCHOOL_READINESS:
            return self.school_readiness(child_id, today)
        if certificate_type is CertificateType.COMPLETION:
            return self.completion_certificate_eligibility(child_id, today)
        return self.progress_certificate_eligibility(child_id, today)

    def bucket_progress(self, child_id: str, today: Optional[date] = None) -> list[BucketProgress]:
        """Per age bucket: which doses it holds, how many are done, and whether
        the child is old enough for the bucket to be due as of ``today``.
        """
        child = self._registry.get(child_id)
        age = age_in_months(child.birth_date, today or date.today())
        completed = self.completed_keys(child_id)

        buckets: dict[str, list[ScheduleEntry]] = {}
        for entry in self._catalog.required_entries():
            buckets.setdefault(entry.age_bucket_label, []).append(entry)

        result = []
        for label, entries in buckets.items():
            done = sum(1 for e in entries if e.key in completed)
            result.append(BucketProgress(
                label=label,
                age_in_months=entries[0].age_in_months,
                vaccines=[dose_label(e) for e in entries],
                completed=done,
                pending=len(entries) - done,
                due=entries[0].age_in_months <= age,
            ))
        return result

    def upcoming(self, child_id: str, today: Optional[date] = None) -> list[DoseStatus]:
        """Outstanding doses still inside their window, soonest first."""
        return self._outstanding(child_id, today, DoseState.PENDING)

    def overdue(self, child_id: str, today: Optional[date] = None) -> list[DoseStatus]:
        """Outstanding doses past the one-month grace window."""
        return self._outstanding(child_id, today, DoseState.OVERDUE)

    def _outstanding(
        self,
        child_id: str,
        today: Optional[date],
        state: DoseState,
    ) -> list[DoseStatus]:
        child = self._registry.get(child_id)
        completed = self.completed_keys(child_id)
        return [
            s for s in self._dose_store.pending(child_id, child.birth_date, today)
            if s.status == state and (s.vaccine_name, s.dose_number) not in completed
        ]

    def _bucket_verdict(
        self,
        child_id: str,
        today: Optional[date],
        certificate_type: CertificateType,
        buckets: Iterable[str],
        min_age: int,
    ) -> EligibilityVerdict:
        child = self._registry.get(child_id)
        today = today or date.today()
        age = age_in_months(child.birth_date, today)

        subset = self._catalog.entries_in_buckets(buckets)
        subset_keys = {e.key for e in subset}
        completed = self.completed_keys(child_id)

        counted = completed & subset_keys
        excluded = completed - subset_keys
        unknown = completed - self._catalog.keys()
        if unknown:
            logger.warning(
                "Child %s has %d completed doses outside the schedule: %s",
                child_id, len(unknown), sorted(unknown),
            )
        outside_subset = excluded - unknown
        if outside_subset:
            logger.warning(
                "%s check for %s ignores %d completed doses outside its age buckets: %s",
                certificate_type.display_name, child_id, len(outside_subset), sorted(outside_subset),
            )

        missing = [dose_label(e) for e in subset if e.key not in counted]
        rate = completion_rate(len(counted), len(subset))

        if age < min_age:
            eligible = False
            reason = (
                f"Child is {age} months old; {certificate_type.display_name} "
                f"requires at least {min_age} months"
            )
        elif len(counted) < len(subset):
            eligible = False
            reason = (
                f"{len(missing)} required doses outstanding "
                f"({len(counted)} of {len(subset)} completed)"
            )
        else:
            eligible = True
            reason = f"All {len(subset)} required doses completed"

        return EligibilityVerdict(
            child_id=child_id,
            certificate_type=certificate_type,
            eligible=eligible,
            reason=reason,
            age_in_months=age,
            completed_count=len(counted),
            total_required=len(subset),
            completion_rate_percent=rate,
            min_age_months=min_age,
            missing_doses=missing,
            excluded_count=len(excluded),
        )
