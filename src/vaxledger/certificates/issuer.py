"""Certificate issuer — idempotent render, upload and persist pipeline.

``issue`` for a verifiable type (school_readiness, completion):
    1. return the stored record if one exists (no render, no upload)
    2. check eligibility; ineligible returns a reason and stores nothing
    3. render the PDF from its fixed template
    4. upload it to the content store
    5. store the record as generated, then promote it to uploaded

Concurrent requests for the same (child, type) are serialized by a
per-key lock, and the store's ``insert_if_absent`` resolves any race that
gets past it: the loser gets the winner's record back.

Progress certificates skip steps 1, 4 and 5. They are rendered on demand
and handed back as bytes.

Anchoring and verification are separate, explicitly triggered steps, in that
order: only an anchored certificate can be verified.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from vaxledger.certificates.content_store import ContentStore
from vaxledger.certificates.renderer import CertificateRenderer, describe_age
from vaxledger.eligibility.engine import EligibilityEngine, EligibilityVerdict
from vaxledger.errors import (
    CertificateError,
    DependencyTimeoutError,
    NotFoundError,
    TransitionError,
)
from vaxledger.ledger.anchor import LedgerAnchor
from vaxledger.models.certificate import (
    CertificateRecord,
    CertificateStatus,
    CertificateType,
    derive_certificate_id,
)
from vaxledger.models.child import Child
from vaxledger.persistence.certificate_store import CertificateStore
from vaxledger.registry import ChildRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueResult:
    child_id: str
    certificate_type: CertificateType
    issued: bool
    reason: str = ""
    record: Optional[CertificateRecord] = None
    artifact: Optional[bytes] = None
    existing: bool = False
    verdict: Optional[EligibilityVerdict] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "certificate_type": self.certificate_type.value,
            "issued": self.issued,
            "reason": self.reason,
            "existing": self.existing,
            "record": self.record.to_dict() if self.record else None,
            "artifact_size": len(self.artifact) if self.artifact else None,
            "eligibility": self.verdict.to_dict() if self.verdict else None,
        }


@dataclass(frozen=True)
class VerificationResult:
    record: CertificateRecord
    verified: bool
    expected_sha256: str
    actual_sha256: str
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "reason": self.reason,
            "expected_sha256": self.expected_sha256,
            "actual_sha256": self.actual_sha256,
            "record": self.record.to_dict(),
        }


class CertificateIssuer:
    """Issues, anchors and verifies certificates.

    Usage:
        issuer = CertificateIssuer(registry, eligibility, store, renderer,
                                   content_store, anchor)
        result = issuer.issue(child_id, CertificateType.SCHOOL_READINESS)
        issuer.anchor(child_id, CertificateType.SCHOOL_READINESS)
        issuer.verify(child_id, CertificateType.SCHOOL_READINESS)
    """

    def __init__(
        self,
        registry: ChildRegistry,
        eligibility: EligibilityEngine,
        store: CertificateStore,
        renderer: CertificateRenderer,
        content_store: Optional[ContentStore],
        anchor: LedgerAnchor,
    ) -> None:
        self._registry = registry
        self._eligibility = eligibility
        self._store = store
        self._renderer = renderer
        self._content_store = content_store
        self._anchor = anchor
        self._locks: dict[tuple[str, CertificateType], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def issue(
        self,
        child_id: str,
        certificate_type: CertificateType,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> IssueResult:
        child = self._registry.get(child_id)
        today = today or date.today()
        now = now or datetime.now(timezone.utc)

        if not certificate_type.verifiable:
            return self._issue_progress(child, today)

        with self._lock_for(child_id, certificate_type):
            existing = self._store.find(child_id, certificate_type)
            if existing is not None:
                return IssueResult(
                    child_id=child_id,
                    certificate_type=certificate_type,
                    issued=True,
                    reason="Certificate already issued",
                    record=existing,
                    existing=True,
                )

            verdict = self._eligibility.for_certificate(child_id, certificate_type, today)
            if not verdict.eligible:
                return IssueResult(
                    child_id=child_id,
                    certificate_type=certificate_type,
                    issued=False,
                    reason=verdict.reason,
                    verdict=verdict,
                )

            if self._content_store is None:
                raise CertificateError("No content store configured for verifiable certificates")

            certificate_id = derive_certificate_id(child_id, certificate_type, today)
            fields = self._fields(child, verdict, today, certificate_id)
            artifact = self._renderer.render(certificate_type.value, fields)
            file_name = f"{certificate_type.value}_{child_id}_{today.strftime('%Y%m%d')}.pdf"
            stored = self._content_store.upload(
                artifact,
                {
                    "name": file_name,
                    "mime_type": "application/pdf",
                    "child_id": child_id,
                    "certificate_type": certificate_type.value,
                },
            )

            record, created = self._store.insert_if_absent(CertificateRecord(
                child_id=child_id,
                certificate_type=certificate_type,
                certificate_id=certificate_id,
                artifact_sha256=hashlib.sha256(artifact).hexdigest(),
                file_name=file_name,
                file_size=len(artifact),
                generated_utc=now,
            ))
            if not created:
                return IssueResult(
                    child_id=child_id,
                    certificate_type=certificate_type,
                    issued=True,
                    reason="Certificate already issued",
                    record=record,
                    existing=True,
                )

            def promote(r: CertificateRecord) -> None:
                r.transition_to(CertificateStatus.UPLOADED)
                r.content_hash = stored.content_hash
                r.content_uri = stored.content_uri

            record = self._store.update(child_id, certificate_type, promote)
            logger.info(
                "Issued %s certificate %s for %s (%s)",
                certificate_type.value, certificate_id, child_id, stored.content_uri,
            )
            return IssueResult(
                child_id=child_id,
                certificate_type=certificate_type,
                issued=True,
                reason=verdict.reason,
                record=record,
                artifact=artifact,
                verdict=verdict,
            )

    def anchor(
        self,
        child_id: str,
        certificate_type: CertificateType,
        now: Optional[datetime] = None,
    ) -> CertificateRecord:
        """Write an uploaded certificate's artifact hash to the ledger.

        Ledger failures propagate; the record stays uploaded.
        """
        record = self._require(child_id, certificate_type)
        if record.status != CertificateStatus.UPLOADED:
            raise TransitionError(
                f"Certificate must be uploaded before anchoring (status: {record.status.value})"
            )
        receipt = self._anchor.anchor_certificate(record, now=now)

        def promote(r: CertificateRecord) -> None:
            r.transition_to(CertificateStatus.ANCHORED)
            r.ledger_ref = receipt.ledger_ref

        return self._store.update(child_id, certificate_type, promote)

    def verify(
        self,
        child_id: str,
        certificate_type: CertificateType,
        now: Optional[datetime] = None,
    ) -> VerificationResult:
        """Re-fetch an anchored artifact and compare its SHA-256 with the recorded one."""
        record = self._require(child_id, certificate_type)
        if record.status not in (CertificateStatus.ANCHORED, CertificateStatus.VERIFIED):
            raise TransitionError(
                f"Certificate must be anchored before verification (status: {record.status.value})"
            )
        if self._content_store is None:
            raise CertificateError("No content store configured for verification")

        try:
            data = self._content_store.fetch(record.content_uri)
        except DependencyTimeoutError as e:
            logger.warning("Verification of %s skipped: %s", record.certificate_id, e)
            return VerificationResult(
                record=record,
                verified=False,
                expected_sha256=record.artifact_sha256,
                actual_sha256="",
                reason=f"Artifact could not be fetched: {e}",
            )
        actual = hashlib.sha256(data).hexdigest()
        if actual != record.artifact_sha256:
            logger.warning(
                "Certificate %s failed verification: expected %s, got %s",
                record.certificate_id, record.artifact_sha256, actual,
            )
            return VerificationResult(
                record=record,
                verified=False,
                expected_sha256=record.artifact_sha256,
                actual_sha256=actual,
                reason="Artifact hash does not match the issued certificate",
            )

        if record.status != CertificateStatus.VERIFIED:
            now = now or datetime.now(timezone.utc)

            def promote(r: CertificateRecord) -> None:
                r.transition_to(CertificateStatus.VERIFIED)
                r.verified = True
                r.verified_utc = now

            record = self._store.update(child_id, certificate_type, promote)
        return VerificationResult(
            record=record,
            verified=True,
            expected_sha256=record.artifact_sha256,
            actual_sha256=actual,
        )

    def certificates_for_child(self, child_id: str) -> list[CertificateRecord]:
        self._registry.get(child_id)
        return self._store.for_child(child_id)

    def _issue_progress(self, child: Child, today: date) -> IssueResult:
        verdict = self._eligibility.progress_certificate_eligibility(child.child_id, today)
        if not verdict.eligible:
            return IssueResult(
                child_id=child.child_id,
                certificate_type=CertificateType.PROGRESS,
                issued=False,
                reason=verdict.reason,
                verdict=verdict,
            )
        artifact = self._renderer.render(
            CertificateType.PROGRESS.value,
            self._fields(child, verdict, today, None),
        )
        record = CertificateRecord(
            child_id=child.child_id,
            certificate_type=CertificateType.PROGRESS,
            artifact_sha256=hashlib.sha256(artifact).hexdigest(),
            file_name=f"progress_{child.child_id}_{today.strftime('%Y%m%d')}.pdf",
            file_size=len(artifact),
        )
        return IssueResult(
            child_id=child.child_id,
            certificate_type=CertificateType.PROGRESS,
            issued=True,
            reason=verdict.reason,
            record=record,
            artifact=artifact,
            verdict=verdict,
        )

    def _fields(
        self,
        child: Child,
        verdict: EligibilityVerdict,
        today: date,
        certificate_id: Optional[str],
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "child_name": child.full_name,
            "child_id": child.child_id,
            "birth_date": child.birth_date.isoformat(),
            "age_text": describe_age(verdict.age_in_months),
            "issued_on": today.isoformat(),
            "completed_count": verdict.completed_count,
            "total_required": verdict.total_required,
            "completion_rate": verdict.completion_rate_percent,
            "missing_doses": verdict.missing_doses,
            "certificate_id": certificate_id,
        }
        if certificate_id:
            fields["qr_payload"] = f"vaxledger:certificate:{certificate_id}"
        else:
            fields["qr_payload"] = f"vaxledger:progress:{child.child_id}:{today.isoformat()}"
        return fields

    def _require(self, child_id: str, certificate_type: CertificateType) -> CertificateRecord:
        record = self._store.find(child_id, certificate_type)
        if record is None:
            raise NotFoundError(
                f"No {certificate_type.value} certificate for {child_id}",
                details={"child_id": child_id, "certificate_type": certificate_type.value},
            )
        return record

    def _lock_for(self, child_id: str, certificate_type: CertificateType) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((child_id, certificate_type), threading.Lock())
