"""Certificates — rendering, content storage and the issuance pipeline."""

from vaxledger.certificates.content_store import (
    ContentStore,
    LocalContentStore,
    PinataContentStore,
    StoredContent,
)
from vaxledger.certificates.issuer import CertificateIssuer, IssueResult, VerificationResult
from vaxledger.certificates.renderer import CertificateRenderer, ReportLabRenderer

__all__ = [
    "CertificateIssuer",
    "CertificateRenderer",
    "ContentStore",
    "IssueResult",
    "LocalContentStore",
    "PinataContentStore",
    "ReportLabRenderer",
    "StoredContent",
    "VerificationResult",
]
