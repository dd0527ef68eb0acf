"""Tests for the eligibility engine — progress, school readiness and completion verdicts."""

import logging
from datetime import date

import pytest

from vaxledger.errors import NotFoundError
from vaxledger.models.certificate import CertificateType
from vaxledger.models.records import DoseState
from vaxledger.models.schedule import COMPLETION_BUCKETS, SCHOOL_READINESS_BUCKETS


class TestProgressSummary:
    def test_recorded_dose_counts(self, pipeline, register, vaccinate) -> None:
        child = register(date(2025, 1, 15))
        dtap = pipeline.catalog.find("DTaP", 1)
        vaccinate(child, [dtap])

        assert pipeline.dose_store.get(child.child_id, "DTaP", 1).status == DoseState.COMPLETED
        summary = pipeline.eligibility.progress_summary(child.child_id, today=date(2025, 3, 20))
        assert summary.completed_count == 1
        assert summary.total_required == 42
        assert summary.age_in_months == 2
        assert "DTaP (Dose 1)" not in summary.missing_doses
        assert "DTaP (Dose 2)" in summary.missing_doses

    def test_nothing_recorded(self, pipeline, register) -> None:
        child = register(date(2025, 1, 15))
        summary = pipeline.eligibility.progress_summary(child.child_id, today=date(2025, 2, 1))
        assert summary.completed_count == 0
        assert summary.completion_rate_percent == 0
        assert summary.missing_vaccines[0] == "BCG"

    def test_rate_never_decreases(self, pipeline, register, payload) -> None:
        child = register(date(2024, 1, 10))
        today = date(2025, 6, 1)
        rates = []
        for entry in pipeline.catalog.required_entries()[:12]:
            pipeline.ingestion.submit(payload(child.child_id, entry, date(2025, 1, 1)))
            rates.append(
                pipeline.eligibility.progress_summary(child.child_id, today).completion_rate_percent
            )
        assert rates == sorted(rates)
        assert rates[-1] == 29

    def test_union_of_events_and_statuses(self, pipeline, register, vaccinate) -> None:
        child = register(date(2025, 1, 15))
        vaccinate(child, [pipeline.catalog.find("BCG", 1)])
        pipeline.dose_store.mark_completed(child.child_id, "Hepatitis B", 1, date(2025, 1, 15))

        keys = pipeline.eligibility.completed_keys(child.child_id)
        assert keys == {("BCG", 1), ("Hepatitis B", 1)}

    def test_repeat_event_counts_once(self, pipeline, register, payload) -> None:
        child = register(date(2025, 1, 15))
        bcg = pipeline.catalog.find("BCG", 1)
        pipeline.ingestion.submit(payload(child.child_id, bcg, date(2025, 1, 15)))
        pipeline.ingestion.submit(payload(child.child_id, bcg, date(2025, 1, 16)))
        summary = pipeline.eligibility.progress_summary(child.child_id, date(2025, 2, 1))
        assert summary.completed_count == 1

    def test_unknown_child(self, pipeline) -> None:
        with pytest.raises(NotFoundError):
            pipeline.eligibility.progress_summary("CH0000000000-001")


class TestSchoolReadiness:
    def test_age_cutoff(self, pipeline, register, vaccinate) -> None:
        child = register(date(2019, 6, 1), today=date(2025, 5, 1))
        vaccinate(child, pipeline.catalog.entries_in_buckets(SCHOOL_READINESS_BUCKETS))

        verdict = pipeline.eligibility.school_readiness(child.child_id, today=date(2025, 5, 1))
        assert not verdict.eligible
        assert verdict.age_in_months == 71
        assert "72 months" in verdict.reason
        assert verdict.completed_count == verdict.total_required == 36

    def test_all_school_doses_at_six(self, pipeline, register, vaccinate) -> None:
        child = register(date(2019, 1, 10), today=date(2025, 2, 1))
        vaccinate(child, pipeline.catalog.entries_in_buckets(SCHOOL_READINESS_BUCKETS))

        verdict = pipeline.eligibility.school_readiness(child.child_id, today=date(2025, 2, 1))
        assert verdict.eligible
        assert verdict.completion_rate_percent == 100
        assert verdict.missing_doses == []
        assert verdict.min_age_months == 72

    def test_one_missing_dose(self, pipeline, register, vaccinate) -> None:
        child = register(date(2018, 1, 10), today=date(2025, 2, 1))
        entries = [
            e for e in pipeline.catalog.entries_in_buckets(SCHOOL_READINESS_BUCKETS)
            if e.key != ("MMR", 2)
        ]
        vaccinate(child, entries)

        verdict = pipeline.eligibility.school_readiness(child.child_id, today=date(2025, 2, 1))
        assert not verdict.eligible
        assert verdict.missing_doses == ["MMR (Dose 2)"]
        assert verdict.reason.startswith("1 required doses outstanding")

    def test_doses_outside_buckets_excluded(self, pipeline, register, vaccinate) -> None:
        child = register(date(2010, 1, 10), today=date(2025, 2, 1))
        vaccinate(child, [pipeline.catalog.find("HPV", 1), pipeline.catalog.find("Influenza", 1)])

        verdict = pipeline.eligibility.school_readiness(child.child_id, today=date(2025, 2, 1))
        assert verdict.completed_count == 0
        assert verdict.excluded_count == 2

    def test_excluded_doses_logged(self, pipeline, register, vaccinate, caplog) -> None:
        child = register(date(2010, 1, 10), today=date(2025, 2, 1))
        vaccinate(child, [pipeline.catalog.find("HPV", 1)])

        with caplog.at_level(logging.WARNING, logger="vaxledger.eligibility.engine"):
            pipeline.eligibility.school_readiness(child.child_id, today=date(2025, 2, 1))
        assert "outside its age buckets" in caplog.text
        assert "HPV" in caplog.text


class TestCompletion:
    def test_rejected_at_100_months(self, pipeline, register) -> None:
        child = register(date(2017, 1, 1), today=date(2025, 5, 1))
        verdict = pipeline.eligibility.completion_certificate_eligibility(
            child.child_id, today=date(2025, 5, 1),
        )
        assert not verdict.eligible
        assert verdict.age_in_months == 100
        assert "216 months" in verdict.reason
        assert verdict.certificate_type is CertificateType.COMPLETION

    def test_full_schedule_at_eighteen(self, pipeline, register, vaccinate) -> None:
        child = register(date(2000, 1, 1), today=date(2025, 1, 1))
        vaccinate(child, pipeline.catalog.entries_in_buckets(COMPLETION_BUCKETS))

        verdict = pipeline.eligibility.completion_certificate_eligibility(
            child.child_id, today=date(2025, 1, 1),
        )
        assert verdict.eligible
        assert verdict.total_required == 42

    def test_for_certificate_dispatch(self, pipeline, register) -> None:
        child = register(date(2025, 1, 15))
        verdict = pipeline.eligibility.for_certificate(
            child.child_id, CertificateType.PROGRESS, today=date(2025, 2, 1),
        )
        assert verdict.certificate_type is CertificateType.PROGRESS
        assert not verdict.eligible
        assert verdict.reason == "No vaccinations recorded yet"


class TestBuckets:
    def test_bucket_status(self, pipeline, register, vaccinate) -> None:
        child = register(date(2025, 1, 15))
        vaccinate(child, [
            pipeline.catalog.find("BCG", 1),
            pipeline.catalog.find("Hepatitis B", 1),
            pipeline.catalog.find("DTaP", 1),
        ])

        buckets = pipeline.eligibility.bucket_progress(child.child_id, today=date(2025, 5, 20))
        assert [b.label for b in buckets[:3]] == ["At Birth", "2 Months", "4 Months"]
        assert buckets[0].status == "completed"
        assert buckets[1].status == "partial"
        assert buckets[1].completed == 1
        assert buckets[2].status == "pending"
        assert buckets[2].due
        assert not buckets[3].due
        assert buckets[3].to_dict()["due"] is False

    def test_overdue_and_upcoming(self, pipeline, register, vaccinate) -> None:
        child = register(date(2025, 1, 15))
        vaccinate(child, [pipeline.catalog.find("BCG", 1)])
        today = date(2025, 5, 15)

        overdue = {(s.vaccine_name, s.dose_number) for s in pipeline.eligibility.overdue(child.child_id, today)}
        upcoming = {(s.vaccine_name, s.dose_number) for s in pipeline.eligibility.upcoming(child.child_id, today)}

        assert ("BCG", 1) not in overdue
        assert ("Hepatitis B", 1) in overdue
        assert ("DTaP", 1) in overdue
        assert ("DTaP", 2) in upcoming
        assert not overdue & upcoming
