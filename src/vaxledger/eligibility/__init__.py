"""Eligibility — completion summaries and certificate verdicts."""

from vaxledger.eligibility.engine import (
    BucketProgress,
    EligibilityEngine,
    EligibilityVerdict,
    ProgressSummary,
)

__all__ = [
    "BucketProgress",
    "EligibilityEngine",
    "EligibilityVerdict",
    "ProgressSummary",
]
