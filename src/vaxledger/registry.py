"""Child registry — the identity records eligibility and rendering need.

Registration is an explicit ordered factory:
    1. validate the request and the supplied parent reference
    2. derive the child identifier from the parent's national id
    3. persist the child
    4. initialize the full dose-status set for the child

The parent record is owned elsewhere. The caller must hand over a
committed ParentRef; there is no lookup-and-retry here.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from vaxledger.errors import NotFoundError, ValidationError
from vaxledger.models.child import Child, ParentRef
from vaxledger.persistence.snapshot import JsonSnapshot
from vaxledger.schedule.dose_status import DoseStatusStore

logger = logging.getLogger(__name__)

NATIONAL_ID_PATTERN = re.compile(r"^\d{10}$")
VALID_GENDERS = frozenset({"male", "female"})


def derive_child_id(national_id: str, sequence: int) -> str:
    """CH{parent national id}-{three-digit sequence}."""
    return f"CH{national_id}-{sequence:03d}"


class ChildRegistry:
    """Children keyed by child_id, with optional JSON snapshot persistence."""

    def __init__(
        self,
        dose_store: DoseStatusStore,
        storage_path: Optional[Path] = None,
    ) -> None:
        self._dose_store = dose_store
        self._children: dict[str, Child] = {}
        self._lock = threading.Lock()
        self._snapshot = JsonSnapshot(storage_path) if storage_path else None

        if self._snapshot is not None and self._snapshot.exists():
            for data in self._snapshot.load():
                child = Child.from_dict(data)
                self._children[child.child_id] = child

    def register(
        self,
        parent: ParentRef,
        full_name: str,
        birth_date: date,
        gender: str,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Child:
        today = today or date.today()
        now = now or datetime.now(timezone.utc)

        errors = []
        if not full_name or not full_name.strip():
            errors.append("full_name is required")
        if gender.lower() not in VALID_GENDERS:
            errors.append(f"gender must be one of {sorted(VALID_GENDERS)}")
        if birth_date > today:
            errors.append("birth_date cannot be in the future")
        if not parent.parent_id:
            errors.append("parent reference has no parent_id")
        if not NATIONAL_ID_PATTERN.match(parent.national_id or ""):
            errors.append("parent national_id must be exactly 10 digits")
        if errors:
            raise ValidationError(errors)

        with self._lock:
            prefix = f"CH{parent.national_id}-"
            sequence = 1 + sum(1 for cid in self._children if cid.startswith(prefix))
            child = Child(
                child_id=derive_child_id(parent.national_id, sequence),
                full_name=full_name.strip(),
                birth_date=birth_date,
                gender=gender.lower(),
                parent_id=parent.parent_id,
                registered_utc=now,
            )
            self._children[child.child_id] = child
            self._persist()

        self._dose_store.initialize_for_child(child.child_id, birth_date, today=today)
        logger.info("Registered child %s for parent %s", child.child_id, parent.parent_id)
        return replace(child)

    def get(self, child_id: str) -> Child:
        """Look up an active child. Raises NotFoundError otherwise."""
        child = self._children.get(child_id)
        if child is None or not child.is_active:
            raise NotFoundError(f"Child not found: {child_id}", details={"child_id": child_id})
        return replace(child)

    def exists(self, child_id: str) -> bool:
        child = self._children.get(child_id)
        return child is not None and child.is_active

    def for_parent(self, parent_id: str) -> list[Child]:
        return [
            replace(c) for c in self._children.values()
            if c.parent_id == parent_id and c.is_active
        ]

    def deactivate(self, child_id: str) -> Child:
        """Soft delete. Dose statuses and events are kept."""
        with self._lock:
            child = self._children.get(child_id)
            if child is None:
                raise NotFoundError(f"Child not found: {child_id}")
            child.is_active = False
            self._persist()
            return replace(child)

    @property
    def count(self) -> int:
        return sum(1 for c in self._children.values() if c.is_active)

    def _persist(self) -> None:
        if self._snapshot is None:
            return
        self._snapshot.save([c.to_dict() for c in self._children.values()])
