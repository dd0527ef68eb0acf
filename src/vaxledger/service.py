"""VaxLedger service — unified facade for the immunization pipeline.

This is the primary interface for programmatic access. It wires every
component once, at construction, and hands each one its collaborators:
- Child registration (registry + dose-status initialization)
- Record ingestion (event log, dose status, best-effort anchoring)
- Eligibility (progress, school readiness, completion)
- Certificates (issue, anchor, verify)
- Rewards (eligibility, award, ledger stats)

All operations return a ServiceResult. Domain errors are converted into
``success=False`` results carrying the error code; negative eligibility
is a successful result with ``eligible=False`` and a reason.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Optional

from vaxledger.certificates.content_store import (
    ContentStore,
    LocalContentStore,
    PinataContentStore,
)
from vaxledger.certificates.issuer import CertificateIssuer
from vaxledger.certificates.renderer import CertificateRenderer, ReportLabRenderer
from vaxledger.config import Settings
from vaxledger.eligibility.engine import EligibilityEngine
from vaxledger.errors import ValidationError, VaxLedgerError
from vaxledger.ingestion.service import RecordIngestion
from vaxledger.ledger.anchor import LedgerAnchor
from vaxledger.ledger.client import LedgerClient
from vaxledger.ledger.web3_client import Web3LedgerClient
from vaxledger.models.certificate import CertificateType
from vaxledger.models.child import ParentRef
from vaxledger.persistence.certificate_store import CertificateStore
from vaxledger.persistence.event_log import ImmunizationEventLog
from vaxledger.persistence.reward_log import RewardClaimLog
from vaxledger.registry import ChildRegistry
from vaxledger.rewards.engine import REWARD_FOR_FULL_COMPLETION, RewardEngine
from vaxledger.schedule.catalog import ScheduleCatalog
from vaxledger.schedule.dose_status import DoseStatusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class ImmunizationService:
    """Immunization pipeline facade.

    Usage:
        service = ImmunizationService.from_settings(Settings.from_env())

        result = service.register_child(parent, "Sara", date(2020, 1, 15), "female")
        child_id = result.data["child"]["child_id"]

        service.record_dose({"child_id": child_id, "vaccine_name": "BCG", ...})
        service.progress(child_id)
        service.issue_certificate(child_id, "school_readiness")

    Persistence (optional):
        service = ImmunizationService(catalog, data_dir=Path("data"))
        # Children, dose statuses, events, certificates and reward claims
        # are written under data_dir and loaded back on construction.
    """

    def __init__(
        self,
        catalog: ScheduleCatalog,
        ledger: Optional[LedgerClient] = None,
        content_store: Optional[ContentStore] = None,
        renderer: Optional[CertificateRenderer] = None,
        data_dir: Optional[Path] = None,
        reward_amount: Decimal = REWARD_FOR_FULL_COMPLETION,
        anchor_in_background: bool = False,
    ) -> None:
        def path(name: str) -> Optional[Path]:
            return data_dir / name if data_dir else None

        self._catalog = catalog
        self._ledger = ledger
        self._executor = (
            ThreadPoolExecutor(max_workers=2, thread_name_prefix="vaxledger-anchor")
            if anchor_in_background and ledger is not None else None
        )

        self._dose_store = DoseStatusStore(catalog, storage_path=path("dose_status.json"))
        self._registry = ChildRegistry(self._dose_store, storage_path=path("children.json"))
        self._event_log = ImmunizationEventLog(storage_path=path("events.jsonl"))
        self._anchor = LedgerAnchor(ledger)
        self._eligibility = EligibilityEngine(
            catalog, self._registry, self._dose_store, self._event_log,
        )
        self._ingestion = RecordIngestion(
            catalog,
            self._registry,
            self._dose_store,
            self._event_log,
            self._anchor,
            executor=self._executor,
        )
        self._issuer = CertificateIssuer(
            self._registry,
            self._eligibility,
            CertificateStore(storage_path=path("certificates.json")),
            renderer or ReportLabRenderer(),
            content_store,
            self._anchor,
        )
        self._rewards = RewardEngine(
            self._eligibility,
            ledger,
            RewardClaimLog(storage_path=path("reward_claims.jsonl")),
            amount=reward_amount,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        ledger: Optional[LedgerClient] = None,
        content_store: Optional[ContentStore] = None,
    ) -> ImmunizationService:
        """Build the service and its external clients from settings.

        Explicit ``ledger``/``content_store`` arguments take precedence over
        what the settings describe.
        """
        catalog = ScheduleCatalog.from_json_file(settings.schedule_path)
        if ledger is None:
            ledger = Web3LedgerClient.from_settings(settings)
        if content_store is None:
            content_store = PinataContentStore.from_settings(settings)
        if content_store is None:
            artifacts = settings.content_store_dir or (
                settings.data_dir / "artifacts" if settings.data_dir else None
            )
            if artifacts is not None:
                content_store = LocalContentStore(artifacts)
        if ledger is None:
            logger.warning("Ledger not configured; anchoring disabled and rewards simulated")
        return cls(
            catalog,
            ledger=ledger,
            content_store=content_store,
            data_dir=settings.data_dir,
            reward_amount=settings.reward_amount,
            anchor_in_background=settings.anchor_in_background,
        )

    def close(self, wait: bool = True) -> None:
        """Let in-flight background anchoring attempts finish."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    # -- Children -------------------------------------------------------

    def register_child(
        self,
        parent: ParentRef,
        full_name: str,
        birth_date: date,
        gender: str,
        today: Optional[date] = None,
    ) -> ServiceResult:
        def op() -> dict[str, Any]:
            child = self._registry.register(parent, full_name, birth_date, gender, today=today)
            return {
                "child": child.to_dict(),
                "dose_statuses": len(self._catalog),
            }
        return self._run(op)

    def get_child(self, child_id: str) -> ServiceResult:
        return self._run(lambda: {"child": self._registry.get(child_id).to_dict()})

    def deactivate_child(self, child_id: str) -> ServiceResult:
        return self._run(lambda: {"child": self._registry.deactivate(child_id).to_dict()})

    # -- Ingestion ------------------------------------------------------

    def record_dose(self, payload: dict[str, Any], now: Optional[datetime] = None) -> ServiceResult:
        return self._run(lambda: self._ingestion.submit(payload, now=now).to_dict())

    def history(self, child_id: str) -> ServiceResult:
        return self._run(lambda: {
            "child_id": child_id,
            "events": [e.to_dict() for e in self._ingestion.history(child_id)],
        })

    def sync_dose_statuses(self, child_id: str) -> ServiceResult:
        def op() -> dict[str, Any]:
            report = self._ingestion.sync_dose_statuses(child_id)
            return {
                "child_id": child_id,
                "events": report.events,
                "updated": report.updated,
                "missing": report.missing,
            }
        return self._run(op)

    def anchor_pending_events(self, child_id: Optional[str] = None) -> ServiceResult:
        return self._run(lambda: {
            "anchored": self._ingestion.anchor_pending_events(child_id),
        })

    # -- Eligibility ----------------------------------------------------

    def progress(self, child_id: str, today: Optional[date] = None) -> ServiceResult:
        def op() -> dict[str, Any]:
            data = self._eligibility.progress_summary(child_id, today).to_dict()
            data["buckets"] = [b.to_dict() for b in self._eligibility.bucket_progress(child_id, today)]
            data["upcoming"] = [s.to_dict() for s in self._eligibility.upcoming(child_id, today)]
            data["overdue"] = [s.to_dict() for s in self._eligibility.overdue(child_id, today)]
            return data
        return self._run(op)

    def eligibility(
        self,
        child_id: str,
        certificate_type: str,
        today: Optional[date] = None,
    ) -> ServiceResult:
        return self._run(lambda: self._eligibility.for_certificate(
            child_id, _certificate_type(certificate_type), today,
        ).to_dict())

    # -- Certificates ---------------------------------------------------

    def issue_certificate(
        self,
        child_id: str,
        certificate_type: str,
        today: Optional[date] = None,
    ) -> ServiceResult:
        """Issue a certificate. ``data["artifact"]`` holds the PDF bytes when rendered."""
        def op() -> dict[str, Any]:
            result = self._issuer.issue(child_id, _certificate_type(certificate_type), today=today)
            data = result.to_dict()
            data["artifact"] = result.artifact
            return data
        return self._run(op)

    def anchor_certificate(self, child_id: str, certificate_type: str) -> ServiceResult:
        return self._run(lambda: {
            "record": self._issuer.anchor(child_id, _certificate_type(certificate_type)).to_dict(),
        })

    def verify_certificate(self, child_id: str, certificate_type: str) -> ServiceResult:
        return self._run(lambda: self._issuer.verify(
            child_id, _certificate_type(certificate_type),
        ).to_dict())

    def certificates(self, child_id: str) -> ServiceResult:
        return self._run(lambda: {
            "child_id": child_id,
            "certificates": [r.to_dict() for r in self._issuer.certificates_for_child(child_id)],
        })

    # -- Rewards --------------------------------------------------------

    def reward_eligibility(self, child_id: str) -> ServiceResult:
        return self._run(lambda: self._rewards.check_eligibility(child_id).to_dict())

    def award_reward(self, child_id: str, parent_address: str) -> ServiceResult:
        return self._run(lambda: self._rewards.award(child_id, parent_address).to_dict())

    def ledger_stats(self) -> ServiceResult:
        return self._run(lambda: self._rewards.ledger_stats().to_dict())

    def parent_token_info(self, parent_address: str) -> ServiceResult:
        return self._run(lambda: self._rewards.parent_info(parent_address).to_dict())

    # -- Status ---------------------------------------------------------

    def status(self) -> dict[str, Any]:
        return {
            "schedule_entries": len(self._catalog),
            "required_entries": len(self._catalog.required_entries()),
            "children": self._registry.count,
            "events": self._event_log.count,
            "unanchored_events": len(self._event_log.unanchored()),
            "ledger_configured": self._ledger is not None,
            "anchor_in_background": self._executor is not None,
        }

    # -- Internal -------------------------------------------------------

    def _run(self, op: Callable[[], dict[str, Any]]) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=op())
        except VaxLedgerError as e:
            errors = getattr(e, "errors", None) or [e.message]
            return ServiceResult(
                success=False,
                errors=list(errors),
                data={"code": e.code, **e.details},
            )


def _certificate_type(value: str) -> CertificateType:
    try:
        return CertificateType(value)
    except ValueError:
        raise ValidationError([
            f"Unknown certificate type: {value!r}. "
            f"Expected one of {[t.value for t in CertificateType]}"
        ])
