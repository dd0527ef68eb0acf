"""Certificate records and their promotion-only lifecycle.

State machine:
    GENERATED → UPLOADED        (artifact pinned to the content store)
    UPLOADED → ANCHORED         (artifact hash written to the ledger)
    UPLOADED → VERIFIED         (artifact re-fetched and hash matched)
    ANCHORED → VERIFIED

Status never moves backwards. Progress certificates stay GENERATED and
are never written to the certificate store.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from vaxledger.errors import TransitionError
from vaxledger.models.records import LedgerRef


class CertificateType(str, enum.Enum):
    PROGRESS = "progress"
    SCHOOL_READINESS = "school_readiness"
    COMPLETION = "completion"

    @property
    def verifiable(self) -> bool:
        """Durably stored and independently checkable."""
        return self is not CertificateType.PROGRESS

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    CertificateType.PROGRESS: "Current Progress Certificate",
    CertificateType.SCHOOL_READINESS: "School Readiness Certificate",
    CertificateType.COMPLETION: "Complete Vaccination Certificate",
}


class CertificateStatus(str, enum.Enum):
    GENERATED = "generated"
    UPLOADED = "uploaded"
    ANCHORED = "anchored"
    VERIFIED = "verified"


CERTIFICATE_TRANSITIONS: Dict[CertificateStatus, frozenset] = {
    CertificateStatus.GENERATED: frozenset({CertificateStatus.UPLOADED}),
    CertificateStatus.UPLOADED: frozenset({CertificateStatus.ANCHORED}),
    CertificateStatus.ANCHORED: frozenset({CertificateStatus.VERIFIED}),
    CertificateStatus.VERIFIED: frozenset(),
}


def derive_certificate_id(
    child_id: str,
    certificate_type: CertificateType,
    issued_on: date,
) -> Optional[str]:
    """Stable identifier for verifiable certificates; None for progress."""
    if not certificate_type.verifiable:
        return None
    return (
        f"CERT-{certificate_type.value.upper()}-{child_id}-"
        f"{issued_on.strftime('%Y%m%d')}"
    )


@dataclass
class CertificateRecord:
    """A rendered certificate and where its artifact lives.

    Mutable — status is promoted as the artifact is uploaded, anchored and
    verified. All promotions are validated against CERTIFICATE_TRANSITIONS.
    """
    child_id: str
    certificate_type: CertificateType
    artifact_sha256: str
    file_name: str
    file_size: int
    mime_type: str = "application/pdf"
    certificate_id: Optional[str] = None
    status: CertificateStatus = CertificateStatus.GENERATED
    content_hash: Optional[str] = None
    content_uri: Optional[str] = None
    ledger_ref: Optional[LedgerRef] = None
    verified: bool = False
    generated_utc: Optional[datetime] = None
    verified_utc: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, CertificateType]:
        return (self.child_id, self.certificate_type)

    def transition_to(self, new_status: CertificateStatus) -> None:
        """Promote to a new status, validating the transition is legal."""
        allowed = CERTIFICATE_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise TransitionError(
                f"Invalid certificate transition: {self.status.value} → {new_status.value}. "
                f"Allowed: {', '.join(s.value for s in allowed) or 'none'}"
            )
        self.status = new_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "certificate_type": self.certificate_type.value,
            "certificate_id": self.certificate_id,
            "status": self.status.value,
            "artifact_sha256": self.artifact_sha256,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "content_hash": self.content_hash,
            "content_uri": self.content_uri,
            "ledger_ref": self.ledger_ref.to_dict() if self.ledger_ref else None,
            "verified": self.verified,
            "generated_utc": self.generated_utc.isoformat() if self.generated_utc else None,
            "verified_utc": self.verified_utc.isoformat() if self.verified_utc else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> CertificateRecord:
        ref = data.get("ledger_ref")
        generated = data.get("generated_utc")
        verified_utc = data.get("verified_utc")
        return CertificateRecord(
            child_id=data["child_id"],
            certificate_type=CertificateType(data["certificate_type"]),
            certificate_id=data.get("certificate_id"),
            status=CertificateStatus(data["status"]),
            artifact_sha256=data["artifact_sha256"],
            file_name=data["file_name"],
            file_size=int(data["file_size"]),
            mime_type=data.get("mime_type", "application/pdf"),
            content_hash=data.get("content_hash"),
            content_uri=data.get("content_uri"),
            ledger_ref=LedgerRef.from_dict(ref) if ref else None,
            verified=data.get("verified", False),
            generated_utc=datetime.fromisoformat(generated) if generated else None,
            verified_utc=datetime.fromisoformat(verified_utc) if verified_utc else None,
        )
