"""Shared fixtures: the real schedule, an in-memory pipeline, and dose helpers."""

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import pytest

from vaxledger.eligibility.engine import EligibilityEngine
from vaxledger.ingestion.service import RecordIngestion
from vaxledger.ledger.anchor import LedgerAnchor
from vaxledger.ledger.client import InMemoryLedger
from vaxledger.models.child import Child, ParentRef
from vaxledger.models.schedule import ScheduleEntry
from vaxledger.persistence.event_log import ImmunizationEventLog
from vaxledger.registry import ChildRegistry
from vaxledger.schedule.ages import add_months
from vaxledger.schedule.catalog import ScheduleCatalog
from vaxledger.schedule.dose_status import DoseStatusStore


SCHEDULE_PATH = Path(__file__).resolve().parents[1] / "config" / "immunization_schedule.json"


@dataclass
class Pipeline:
    catalog: ScheduleCatalog
    dose_store: DoseStatusStore
    registry: ChildRegistry
    event_log: ImmunizationEventLog
    ledger: InMemoryLedger
    anchor: LedgerAnchor
    eligibility: EligibilityEngine
    ingestion: RecordIngestion


@pytest.fixture
def catalog() -> ScheduleCatalog:
    return ScheduleCatalog.from_json_file(SCHEDULE_PATH)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def parent() -> ParentRef:
    return ParentRef(parent_id="P-001", national_id="1234567890", full_name="Fatimah Alharbi")


@pytest.fixture
def pipeline(catalog: ScheduleCatalog, ledger: InMemoryLedger) -> Pipeline:
    dose_store = DoseStatusStore(catalog)
    registry = ChildRegistry(dose_store)
    event_log = ImmunizationEventLog()
    anchor = LedgerAnchor(ledger)
    return Pipeline(
        catalog=catalog,
        dose_store=dose_store,
        registry=registry,
        event_log=event_log,
        ledger=ledger,
        anchor=anchor,
        eligibility=EligibilityEngine(catalog, registry, dose_store, event_log),
        ingestion=RecordIngestion(catalog, registry, dose_store, event_log, anchor),
    )


@pytest.fixture
def register(pipeline: Pipeline, parent: ParentRef) -> Callable[..., Child]:
    """Register a child born on the given date, evaluated as of ``today``."""
    def _register(birth_date: date, today: Optional[date] = None, name: str = "Sara") -> Child:
        return pipeline.registry.register(
            parent, name, birth_date, "female", today=today or birth_date,
        )
    return _register


def dose_payload(child_id: str, entry: ScheduleEntry, date_given: date) -> dict[str, Any]:
    return {
        "child_id": child_id,
        "vaccine_name": entry.vaccine_name,
        "dose_number": entry.dose_number,
        "date_given": date_given.isoformat(),
        "administered_by": "DR-007",
        "location": "Riyadh Central Clinic",
    }


@pytest.fixture
def vaccinate(pipeline: Pipeline) -> Callable[[Child, Iterable[ScheduleEntry]], None]:
    """Record each entry as given on its scheduled date."""
    def _vaccinate(child: Child, entries: Iterable[ScheduleEntry]) -> None:
        for entry in entries:
            given = add_months(child.birth_date, entry.age_in_months)
            pipeline.ingestion.submit(dose_payload(child.child_id, entry, given))
    return _vaccinate


@pytest.fixture
def payload() -> Callable[[str, ScheduleEntry, date], dict[str, Any]]:
    return dose_payload
