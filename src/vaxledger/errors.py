"""Error taxonomy for the immunization pipeline.

Every error carries a stable ``code`` and a ``details`` dict so that the
service facade can report failures without losing structure. "Not yet
eligible" is never an error — eligibility checks return explained
negative results instead.
"""

from __future__ import annotations

from typing import Any, Optional


class VaxLedgerError(Exception):
    """Base class for all vaxledger errors."""

    code = "VAXLEDGER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class ConfigurationError(VaxLedgerError):
    """Settings are missing or malformed."""

    code = "CONFIGURATION_ERROR"


class ScheduleUnavailable(ConfigurationError):
    """The reference schedule is absent, empty, or unreadable."""

    code = "SCHEDULE_UNAVAILABLE"


class ValidationError(VaxLedgerError):
    """Malformed or missing input. Always fatal to the call."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("; ".join(errors), details=details)
        self.errors = list(errors)


class NotFoundError(VaxLedgerError):
    """Unknown child, dose status, or certificate."""

    code = "NOT_FOUND"


class DuplicateError(VaxLedgerError):
    """The thing being created already exists (certificate, reward, child)."""

    code = "DUPLICATE"

    @property
    def reason(self) -> str:
        return self.message


class DependencyTimeoutError(VaxLedgerError):
    """An auxiliary lookup did not answer in time."""

    code = "DEPENDENCY_TIMEOUT"


class TransitionError(VaxLedgerError):
    """Raised when a status transition is not allowed."""

    code = "ILLEGAL_TRANSITION"


class CertificateError(VaxLedgerError):
    """Rendering or uploading a certificate artifact failed."""

    code = "CERTIFICATE_ERROR"


class LedgerError(VaxLedgerError):
    """Base class for ledger failures."""

    code = "LEDGER_ERROR"


class LedgerUnavailable(LedgerError):
    """Transient ledger failure: RPC down, timeout, client not configured."""

    code = "LEDGER_UNAVAILABLE"


class LedgerRejected(LedgerError):
    """The ledger program refused the transaction."""

    code = "LEDGER_REJECTED"


class AlreadyRewarded(LedgerRejected):
    """The reward contract has already paid out for this child."""

    code = "ALREADY_REWARDED"
