"""Tests for the immunization event log — append-only, hash-verified JSONL."""

import json
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from vaxledger.errors import DuplicateError, NotFoundError
from vaxledger.models.records import ImmunizationEvent, LedgerRef, clinical_hash
from vaxledger.persistence.event_log import ImmunizationEventLog


NOW = datetime(2025, 3, 15, 9, 30, tzinfo=timezone.utc)


def _event(event_id: str = "IMM-001", vaccine: str = "DTaP", dose: int = 1) -> ImmunizationEvent:
    return ImmunizationEvent.create(
        event_id=event_id,
        child_id="CH1234567890-001",
        vaccine_name=vaccine,
        dose_number=dose,
        date_administered=date(2025, 3, 15),
        administered_by="DR-007",
        location="Riyadh Central Clinic",
        recorded_utc=NOW,
    )


REF = LedgerRef(tx_hash="0xabc", block_number=42, anchored_at="2025-03-15T09:31:00Z")


class TestImmunizationEvent:
    def test_content_hash_covers_clinical_fields(self) -> None:
        event = _event()
        assert event.content_hash == clinical_hash(
            "CH1234567890-001", "DTaP", 1, date(2025, 3, 15),
            "DR-007", "Riyadh Central Clinic",
        )
        assert event.content_hash.startswith("sha256:")

    def test_different_dose_different_hash(self) -> None:
        assert _event(dose=1).content_hash != _event(dose=2).content_hash

    def test_not_anchored_by_default(self) -> None:
        event = _event()
        assert not event.is_ledger_anchored
        assert event.to_dict()["is_ledger_anchored"] is False

    def test_with_ledger_ref_keeps_clinical_fields(self) -> None:
        event = _event()
        anchored = event.with_ledger_ref(REF)
        assert anchored.is_ledger_anchored
        assert anchored.content_hash == event.content_hash
        assert not event.is_ledger_anchored

    def test_recorded_utc_format(self) -> None:
        assert _event().recorded_utc == "2025-03-15T09:30:00Z"


class TestAppend:
    def test_append_and_get(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event())
        assert log.count == 1
        assert log.get("IMM-001").vaccine_name == "DTaP"

    def test_duplicate_id_rejected(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event())
        with pytest.raises(DuplicateError):
            log.append(_event())

    def test_events_in_append_order(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event("IMM-002", "IPV"))
        log.append(_event("IMM-001", "DTaP"))
        assert [e.event_id for e in log.events()] == ["IMM-002", "IMM-001"]

    def test_events_for_child(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event())
        assert log.events("CH0000000000-001") == []
        assert len(log.events("CH1234567890-001")) == 1

    def test_completed_keys(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event("IMM-001", "DTaP", 1))
        log.append(_event("IMM-002", "DTaP", 1))
        log.append(_event("IMM-003", "IPV", 1))
        assert log.completed_keys("CH1234567890-001") == {("DTaP", 1), ("IPV", 1)}


class TestLedgerRefs:
    def test_attach(self) -> None:
        log = ImmunizationEventLog()
        log.append(_event())
        updated = log.attach_ledger_ref("IMM-001", REF)
        assert updated.ledger_ref == REF
        assert log.get("IMM-001").is_ledger_anchored
        assert log.unanchored() == []

    def test_attach_unknown(self) -> None:
        with pytest.raises(NotFoundError):
            ImmunizationEventLog().attach_ledger_ref("IMM-404", REF)


class TestPersistence:
    def test_reload_with_anchor_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = ImmunizationEventLog(storage_path=path)
        log.append(_event("IMM-001"))
        log.append(_event("IMM-002", "IPV"))
        log.attach_ledger_ref("IMM-001", REF)

        reloaded = ImmunizationEventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.get("IMM-001").ledger_ref == REF
        assert [e.event_id for e in reloaded.unanchored()] == ["IMM-002"]

    def test_file_is_append_only(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = ImmunizationEventLog(storage_path=path)
        log.append(_event())
        first_line = path.read_text().splitlines()[0]
        log.attach_ledger_ref("IMM-001", REF)
        lines = path.read_text().splitlines()
        assert lines[0] == first_line
        assert json.loads(lines[1])["kind"] == "anchor"

    def test_tampered_line_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        ImmunizationEventLog(storage_path=path).append(_event())

        record = json.loads(path.read_text())
        record["event"]["dose_number"] = 2
        path.write_text(json.dumps(record) + "\n")

        with pytest.raises(ValueError, match="Integrity check failed"):
            ImmunizationEventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        ImmunizationEventLog(storage_path=path).append(_event())
        line = path.read_text()
        path.write_text(line + line)
        with pytest.raises(ValueError, match="Duplicate"):
            ImmunizationEventLog(storage_path=path)

    def test_orphan_anchor_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        path.write_text(json.dumps({
            "kind": "anchor", "event_id": "IMM-404", "ledger_ref": REF.to_dict(),
        }) + "\n")
        with pytest.raises(ValueError, match="unknown event"):
            ImmunizationEventLog(storage_path=path)
