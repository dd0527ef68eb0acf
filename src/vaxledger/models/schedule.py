"""Reference schedule entries and the fixed age-bucket sets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# Buckets that must be complete for a school readiness certificate (birth to 6 years).
SCHOOL_READINESS_BUCKETS: tuple[str, ...] = (
    "At Birth",
    "2 Months",
    "4 Months",
    "6 Months",
    "9 Months",
    "12 Months",
    "18 Months",
    "24 Months",
    "4-6 Years",
)

# Buckets that must be complete for a completion certificate (birth to 18 years).
COMPLETION_BUCKETS: tuple[str, ...] = SCHOOL_READINESS_BUCKETS + (
    "11 Years",
    "12 Years",
    "18 Years",
)

SCHOOL_READINESS_MIN_AGE_MONTHS = 72
COMPLETION_MIN_AGE_MONTHS = 216


@dataclass(frozen=True)
class ScheduleEntry:
    """One required (vaccine, dose) at a given age."""
    vaccine_name: str
    dose_number: int
    total_doses: int
    age_bucket_label: str
    age_in_months: int
    required: bool = True
    description: str = ""

    @property
    def key(self) -> tuple[str, int]:
        return (self.vaccine_name, self.dose_number)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ScheduleEntry:
        """Parse one schedule record, raising ValueError on bad shapes."""
        name = str(data["vaccine_name"]).strip()
        if not name:
            raise ValueError("vaccine_name must not be blank")
        dose = int(data["dose_number"])
        total = int(data["total_doses"])
        age = int(data["age_in_months"])
        if dose < 1 or total < 1:
            raise ValueError(f"{name}: dose_number and total_doses must be >= 1")
        if dose > total:
            raise ValueError(f"{name}: dose {dose} exceeds total_doses {total}")
        if age < 0:
            raise ValueError(f"{name}: age_in_months must be >= 0")
        return ScheduleEntry(
            vaccine_name=name,
            dose_number=dose,
            total_doses=total,
            age_bucket_label=str(data["age_bucket_label"]).strip(),
            age_in_months=age,
            required=bool(data.get("required", True)),
            description=str(data.get("description", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "vaccine_name": self.vaccine_name,
            "dose_number": self.dose_number,
            "total_doses": self.total_doses,
            "age_bucket_label": self.age_bucket_label,
            "age_in_months": self.age_in_months,
            "required": self.required,
            "description": self.description,
        }
