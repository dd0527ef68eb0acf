"""Schedule catalog — the immutable reference table of required doses.

Loaded once at process start from a JSON list of schedule records and
read-only thereafter. A missing, empty or malformed schedule is a fatal
configuration error: every dependent (dose status initialization,
eligibility, ingestion) is meaningless without it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from vaxledger.errors import ScheduleUnavailable
from vaxledger.models.schedule import ScheduleEntry


class ScheduleCatalog:
    """Read-only lookup over schedule entries.

    Usage:
        catalog = ScheduleCatalog.from_json_file(path)
        catalog.for_vaccine("MMR")        # exact name
        catalog.search("mening")          # case-insensitive substring
        catalog.due_by_age(12)            # entries with age_in_months <= 12
    """

    def __init__(self, entries: Iterable[ScheduleEntry]) -> None:
        ordered = sorted(entries, key=lambda e: (e.age_in_months, e.dose_number))
        if not ordered:
            raise ScheduleUnavailable("Schedule catalog is empty")

        by_key: dict[tuple[str, int], ScheduleEntry] = {}
        for entry in ordered:
            if entry.key in by_key:
                raise ScheduleUnavailable(
                    f"Duplicate schedule entry: {entry.vaccine_name} dose {entry.dose_number}"
                )
            by_key[entry.key] = entry

        self._entries: tuple[ScheduleEntry, ...] = tuple(ordered)
        self._by_key = by_key

    @classmethod
    def from_records(cls, records: Sequence[dict[str, Any]]) -> ScheduleCatalog:
        try:
            entries = [ScheduleEntry.from_dict(r) for r in records]
        except (KeyError, TypeError, ValueError) as e:
            raise ScheduleUnavailable(f"Malformed schedule record: {e}")
        return cls(entries)

    @classmethod
    def from_json_file(cls, path: Path) -> ScheduleCatalog:
        if not path.exists():
            raise ScheduleUnavailable(f"Schedule file not found: {path}")
        try:
            records = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ScheduleUnavailable(f"Schedule file unreadable: {path}: {e}")
        if not isinstance(records, list):
            raise ScheduleUnavailable(f"Schedule file must hold a JSON list: {path}")
        return cls.from_records(records)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def entries(self) -> list[ScheduleEntry]:
        return list(self._entries)

    def required_entries(self) -> list[ScheduleEntry]:
        return [e for e in self._entries if e.required]

    def keys(self) -> set[tuple[str, int]]:
        return set(self._by_key)

    def find(self, vaccine_name: str, dose_number: int) -> Optional[ScheduleEntry]:
        return self._by_key.get((vaccine_name, dose_number))

    def for_vaccine(self, vaccine_name: str) -> list[ScheduleEntry]:
        """All doses of a vaccine, by exact name."""
        return [e for e in self._entries if e.vaccine_name == vaccine_name]

    def first_for_vaccine(self, vaccine_name: str) -> Optional[ScheduleEntry]:
        matches = self.for_vaccine(vaccine_name)
        return matches[0] if matches else None

    def search(self, fragment: str) -> list[ScheduleEntry]:
        """Entries whose vaccine name contains the fragment, ignoring case."""
        needle = fragment.strip().lower()
        return [e for e in self._entries if needle in e.vaccine_name.lower()]

    def due_by_age(self, age_in_months: int) -> list[ScheduleEntry]:
        """Entries scheduled at or before the given age."""
        return [e for e in self._entries if e.age_in_months <= age_in_months]

    def entries_in_buckets(
        self,
        labels: Iterable[str],
        required_only: bool = True,
    ) -> list[ScheduleEntry]:
        wanted = set(labels)
        return [
            e for e in self._entries
            if e.age_bucket_label in wanted and (e.required or not required_only)
        ]

    def bucket_labels(self) -> list[str]:
        """Distinct age-bucket labels in schedule order."""
        seen: list[str] = []
        for e in self._entries:
            if e.age_bucket_label not in seen:
                seen.append(e.age_bucket_label)
        return seen
