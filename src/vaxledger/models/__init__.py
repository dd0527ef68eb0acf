"""Core data models for vaxledger."""

from vaxledger.models.certificate import (
    CertificateRecord,
    CertificateStatus,
    CertificateType,
)
from vaxledger.models.child import Child, ParentRef
from vaxledger.models.records import (
    DoseState,
    DoseStatus,
    ImmunizationEvent,
    LedgerRef,
)
from vaxledger.models.reward import RewardClaim
from vaxledger.models.schedule import ScheduleEntry

__all__ = [
    "CertificateRecord",
    "CertificateStatus",
    "CertificateType",
    "Child",
    "ParentRef",
    "DoseState",
    "DoseStatus",
    "ImmunizationEvent",
    "LedgerRef",
    "RewardClaim",
    "ScheduleEntry",
]
