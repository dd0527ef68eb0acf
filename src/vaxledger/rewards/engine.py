"""Reward engine — one token reward per fully vaccinated child.

Eligibility is 100% of the required schedule, with no age gate. The
ledger's reward contract is the only authority on whether a child was
already rewarded; a second award for the same child comes back from the
ledger as AlreadyRewarded and is reported as DuplicateError.

Without a ledger client the engine answers with a simulated result. It
never records a claim it did not get from the ledger.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from vaxledger.eligibility.engine import EligibilityEngine
from vaxledger.errors import AlreadyRewarded, DuplicateError, LedgerUnavailable, ValidationError
from vaxledger.ledger.client import LedgerClient, LedgerStats
from vaxledger.models.reward import RewardClaim
from vaxledger.persistence.reward_log import RewardClaimLog

logger = logging.getLogger(__name__)

REWARD_FOR_FULL_COMPLETION = Decimal("500")
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class RewardEligibility:
    child_id: str
    eligible: bool
    completed_count: int
    required_count: int
    amount: Decimal
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "eligible": self.eligible,
            "completed_count": self.completed_count,
            "required_count": self.required_count,
            "amount": str(self.amount),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AwardResult:
    child_id: str
    awarded: bool
    reason: str
    amount: Decimal = Decimal("0")
    simulated: bool = False
    claim: Optional[RewardClaim] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "awarded": self.awarded,
            "simulated": self.simulated,
            "amount": str(self.amount),
            "reason": self.reason,
            "claim": self.claim.to_dict() if self.claim else None,
        }


@dataclass(frozen=True)
class ParentTokenInfo:
    parent_address: str
    balance: Decimal
    stats: LedgerStats
    claims: list[RewardClaim]

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_address": self.parent_address,
            "balance": str(self.balance),
            "stats": self.stats.to_dict(),
            "claims": [c.to_dict() for c in self.claims],
        }


class RewardEngine:
    def __init__(
        self,
        eligibility: EligibilityEngine,
        ledger: Optional[LedgerClient],
        claim_log: RewardClaimLog,
        amount: Decimal = REWARD_FOR_FULL_COMPLETION,
    ) -> None:
        self._eligibility = eligibility
        self._ledger = ledger
        self._claims = claim_log
        self._amount = amount

    def check_eligibility(self, child_id: str) -> RewardEligibility:
        summary = self._eligibility.progress_summary(child_id)
        eligible = (
            summary.total_required > 0
            and summary.completed_count >= summary.total_required
        )
        if eligible:
            reason = f"Full vaccination schedule completed. Reward: {self._amount} tokens"
        else:
            reason = (
                f"Complete all {summary.total_required} vaccinations to earn "
                f"{self._amount} tokens ({summary.completed_count} completed)"
            )
        return RewardEligibility(
            child_id=child_id,
            eligible=eligible,
            completed_count=summary.completed_count,
            required_count=summary.total_required,
            amount=self._amount if eligible else Decimal("0"),
            reason=reason,
        )

    def award(
        self,
        child_id: str,
        parent_address: str,
        now: Optional[datetime] = None,
    ) -> AwardResult:
        """Pay the completion reward to the parent's wallet.

        Raises ValidationError for a malformed address, DuplicateError when
        the ledger says the child was already rewarded, LedgerUnavailable
        when the ledger cannot be reached.
        """
        if not ADDRESS_PATTERN.match(parent_address or ""):
            raise ValidationError([f"Invalid wallet address: {parent_address!r}"])

        eligibility = self.check_eligibility(child_id)
        if not eligibility.eligible:
            return AwardResult(child_id=child_id, awarded=False, reason=eligibility.reason)

        if self._ledger is None:
            logger.warning("No ledger configured; reward for %s is simulated", child_id)
            return AwardResult(
                child_id=child_id,
                awarded=False,
                simulated=True,
                amount=eligibility.amount,
                reason="Reward simulated: ledger not available. Nothing was paid or recorded.",
            )

        try:
            tx = self._ledger.reward_parent(parent_address, child_id)
        except AlreadyRewarded as e:
            raise DuplicateError(
                "Already rewarded for this child",
                details={"child_id": child_id, "ledger_message": e.message},
            )

        claim = RewardClaim(
            child_id=child_id,
            parent_address=parent_address,
            amount=eligibility.amount,
            ledger_tx=tx.tx_hash,
            block_number=tx.block_number,
            claimed_utc=now or datetime.now(timezone.utc),
        )
        self._claims.record(claim)
        logger.info("Rewarded %s with %s tokens for %s (tx %s)",
                    parent_address, claim.amount, child_id, tx.tx_hash)
        return AwardResult(
            child_id=child_id,
            awarded=True,
            amount=claim.amount,
            reason=f"Rewarded {claim.amount} tokens for full vaccination schedule",
            claim=claim,
        )

    def ledger_stats(self) -> LedgerStats:
        if self._ledger is None:
            raise LedgerUnavailable("No ledger client configured")
        return self._ledger.get_stats()

    def parent_info(self, parent_address: str) -> ParentTokenInfo:
        """Token balance held by a parent wallet, with ledger totals and the
        claims recorded locally for that wallet.
        """
        if not ADDRESS_PATTERN.match(parent_address or ""):
            raise ValidationError([f"Invalid wallet address: {parent_address!r}"])
        if self._ledger is None:
            raise LedgerUnavailable("No ledger client configured")
        return ParentTokenInfo(
            parent_address=parent_address,
            balance=self._ledger.balance_of(parent_address),
            stats=self._ledger.get_stats(),
            claims=[
                c for c in self._claims.all()
                if c.parent_address.lower() == parent_address.lower()
            ],
        )

    def claim_for(self, child_id: str) -> Optional[RewardClaim]:
        return self._claims.get(child_id)
