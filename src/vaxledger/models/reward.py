"""Reward claim — audit copy of a reward paid out by the ledger.

All monetary values use Decimal. The ledger's reward contract is the
only authority on whether a child has been rewarded; this record exists
so operators can see what was paid without querying the chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class RewardClaim:
    child_id: str
    parent_address: str
    amount: Decimal
    ledger_tx: str
    block_number: int
    claimed_utc: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_id": self.child_id,
            "parent_address": self.parent_address,
            "amount": str(self.amount),
            "ledger_tx": self.ledger_tx,
            "block_number": self.block_number,
            "claimed_utc": self.claimed_utc.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> RewardClaim:
        return RewardClaim(
            child_id=data["child_id"],
            parent_address=data["parent_address"],
            amount=Decimal(data["amount"]),
            ledger_tx=data["ledger_tx"],
            block_number=int(data["block_number"]),
            claimed_utc=datetime.fromisoformat(data["claimed_utc"]),
        )
