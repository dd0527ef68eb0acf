"""Persistence — event log, snapshots and stores."""

from vaxledger.persistence.certificate_store import CertificateStore
from vaxledger.persistence.event_log import ImmunizationEventLog
from vaxledger.persistence.reward_log import RewardClaimLog
from vaxledger.persistence.snapshot import JsonSnapshot

__all__ = [
    "CertificateStore",
    "ImmunizationEventLog",
    "JsonSnapshot",
    "RewardClaimLog",
]
