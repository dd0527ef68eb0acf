"""Certificate store — at most one record per (child, verifiable type).

``insert_if_absent`` is the uniqueness point: the first insert for a key
wins, and a conflicting insert gets the existing record back instead of
an error. Progress certificates are never stored.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from vaxledger.errors import NotFoundError, ValidationError
from vaxledger.models.certificate import CertificateRecord, CertificateType
from vaxledger.persistence.snapshot import JsonSnapshot


class CertificateStore:
    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: dict[tuple[str, CertificateType], CertificateRecord] = {}
        self._lock = threading.Lock()
        self._snapshot = JsonSnapshot(storage_path) if storage_path else None

        if self._snapshot is not None and self._snapshot.exists():
            for data in self._snapshot.load():
                record = CertificateRecord.from_dict(data)
                self._records[record.key] = record

    def find(
        self,
        child_id: str,
        certificate_type: CertificateType,
    ) -> Optional[CertificateRecord]:
        record = self._records.get((child_id, certificate_type))
        return replace(record) if record else None

    def insert_if_absent(self, record: CertificateRecord) -> tuple[CertificateRecord, bool]:
        """Store a new record unless one exists for its key.

        Returns (stored record, created). When created is False the
        returned record is the one already in the store.
        """
        if not record.certificate_type.verifiable:
            raise ValidationError(["Progress certificates are not stored"])
        with self._lock:
            existing = self._records.get(record.key)
            if existing is not None:
                return replace(existing), False
            self._records[record.key] = replace(record)
            self._persist()
            return replace(record), True

    def update(
        self,
        child_id: str,
        certificate_type: CertificateType,
        mutate: Callable[[CertificateRecord], None],
    ) -> CertificateRecord:
        """Apply a mutation to the stored record under the store lock.

        The mutation works on a copy; if it raises, the stored record is
        left untouched.
        """
        with self._lock:
            current = self._records.get((child_id, certificate_type))
            if current is None:
                raise NotFoundError(
                    f"No {certificate_type.value} certificate for {child_id}"
                )
            working = replace(current)
            mutate(working)
            self._records[current.key] = working
            self._persist()
            return replace(working)

    def for_child(self, child_id: str) -> list[CertificateRecord]:
        return [replace(r) for (cid, _), r in self._records.items() if cid == child_id]

    def all(self) -> list[CertificateRecord]:
        return [replace(r) for r in self._records.values()]

    def _persist(self) -> None:
        if self._snapshot is None:
            return
        self._snapshot.save([r.to_dict() for r in self._records.values()])
