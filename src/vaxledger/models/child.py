"""Child identity — the minimum needed to evaluate and render certificates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional


@dataclass(frozen=True)
class ParentRef:
    """A committed parent record supplied by the caller at registration."""
    parent_id: str
    national_id: str
    full_name: str = ""
    wallet_address: Optional[str] = None


@dataclass
class Child:
    child_id: str
    full_name: str
    birth_date: date
    gender: str
    parent_id: str
    registered_utc: Optional[datetime] = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "full_name": self.full_name,
            "birth_date": self.birth_date.isoformat(),
            "gender": self.gender,
            "parent_id": self.parent_id,
            "registered_utc": self.registered_utc.isoformat() if self.registered_utc else None,
            "is_active": self.is_active,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Child:
        registered = data.get("registered_utc")
        return Child(
            child_id=data["child_id"],
            full_name=data["full_name"],
            birth_date=date.fromisoformat(data["birth_date"]),
            gender=data.get("gender", ""),
            parent_id=data["parent_id"],
            registered_utc=datetime.fromisoformat(registered) if registered else None,
            is_active=data.get("is_active", True),
        )
