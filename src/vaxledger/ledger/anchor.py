"""Ledger anchor — single-attempt adapter between records and the ledger.

No retries, no queue. Each call makes exactly one ledger write and either
returns a receipt or raises:
    LedgerUnavailable  transient (RPC down, timeout, no client configured)
    LedgerRejected     the ledger program refused the write

What to do with a failure is the caller's decision: ingestion logs and
moves on, certificate anchoring surfaces it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from vaxledger.errors import LedgerUnavailable, ValidationError
from vaxledger.ledger.client import LedgerClient, LedgerTx
from vaxledger.models.certificate import CertificateRecord
from vaxledger.models.records import ImmunizationEvent, LedgerRef

logger = logging.getLogger(__name__)

RECORD_VALIDITY = timedelta(days=365)


@dataclass(frozen=True)
class AnchorReceipt:
    tx_hash: str
    block_number: int
    anchored_at: str  # ISO-8601 UTC

    @property
    def ledger_ref(self) -> LedgerRef:
        return LedgerRef(
            tx_hash=self.tx_hash,
            block_number=self.block_number,
            anchored_at=self.anchored_at,
        )


class LedgerAnchor:
    def __init__(self, client: Optional[LedgerClient]) -> None:
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None

    def anchor_event(
        self,
        event: ImmunizationEvent,
        now: Optional[datetime] = None,
    ) -> AnchorReceipt:
        """Record an immunization event on the ledger.

        An administration date in the future is clamped to ``now``. The
        batch id falls back to BATCH_<unix ts> and expiry is one year after
        administration.
        """
        client = self._require_client()
        now = now or datetime.now(timezone.utc)

        given = datetime.combine(event.date_administered, time.min, tzinfo=timezone.utc)
        if given > now:
            given = now
        timestamp = int(given.timestamp())
        expiry = int((given + RECORD_VALIDITY).timestamp())

        tx = client.record_event(
            child_id=event.child_id,
            vaccine_name=event.vaccine_name,
            dose_number=event.dose_number,
            timestamp_unix=timestamp,
            facility_id=event.location,
            batch_id=event.batch_number or f"BATCH_{timestamp}",
            expiry_unix=expiry,
            content_hash=event.content_hash,
        )
        logger.info(
            "Anchored event %s (%s dose %d) in tx %s",
            event.event_id, event.vaccine_name, event.dose_number, tx.tx_hash,
        )
        return _receipt(tx, now)

    def anchor_certificate(
        self,
        certificate: CertificateRecord,
        now: Optional[datetime] = None,
    ) -> AnchorReceipt:
        """Write the certificate artifact's SHA-256 to the ledger."""
        client = self._require_client()
        if not certificate.artifact_sha256:
            raise ValidationError(["certificate has no artifact hash to anchor"])
        now = now or datetime.now(timezone.utc)

        tx = client.anchor_digest(certificate.artifact_sha256)
        logger.info(
            "Anchored %s certificate for %s in tx %s",
            certificate.certificate_type.value, certificate.child_id, tx.tx_hash,
        )
        return _receipt(tx, now)

    def _require_client(self) -> LedgerClient:
        if self._client is None:
            raise LedgerUnavailable("No ledger client configured")
        return self._client


def _receipt(tx: LedgerTx, now: datetime) -> AnchorReceipt:
    return AnchorReceipt(
        tx_hash=tx.tx_hash,
        block_number=tx.block_number,
        anchored_at=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
