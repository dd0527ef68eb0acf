"""Ledger client contract and the in-process ledger.

Anything that writes to the external ledger goes through LedgerClient.
The anchor adapter and the reward engine never talk to web3 directly;
they hold a LedgerClient handed to them at construction.

Reward uniqueness lives here, not in the application: ``reward_parent``
is a compare-and-set on the ledger side and fails with AlreadyRewarded
the second time for the same child.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from vaxledger.errors import AlreadyRewarded, LedgerRejected


@dataclass(frozen=True)
class LedgerTx:
    """A confirmed ledger transaction."""
    tx_hash: str
    block_number: int


@dataclass(frozen=True)
class LedgerStats:
    total_anchored: int
    total_rewards_distributed: Decimal
    total_parents_rewarded: int

    def to_dict(self) -> dict[str, object]:
        return {
            "total_anchored": self.total_anchored,
            "total_rewards_distributed": str(self.total_rewards_distributed),
            "total_parents_rewarded": self.total_parents_rewarded,
        }


@runtime_checkable
class LedgerClient(Protocol):
    """Contract every ledger backend must satisfy.

    Implementations raise LedgerUnavailable for transport problems and
    LedgerRejected (or AlreadyRewarded) when the ledger program refuses.
    """

    def record_event(
        self,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        timestamp_unix: int,
        facility_id: str,
        batch_id: str,
        expiry_unix: int,
        content_hash: str,
    ) -> LedgerTx:
        ...

    def reward_parent(self, parent_address: str, child_id: str) -> LedgerTx:
        ...

    def anchor_digest(self, digest: str) -> LedgerTx:
        ...

    def get_stats(self) -> LedgerStats:
        ...

    def balance_of(self, address: str) -> Decimal:
        ...


class InMemoryLedger:
    """Process-local ledger for development and tests.

    Mirrors the contract semantics that matter: records are append-only,
    a child can be rewarded once, and a recorded (child, vaccine, dose)
    cannot be recorded again.

    ``fail_with`` makes every write raise the given error, which is how
    tests simulate an unreachable or refusing ledger.
    """

    def __init__(
        self,
        reward_amount: Decimal = Decimal("500"),
        fail_with: Optional[Exception] = None,
    ) -> None:
        self.reward_amount = reward_amount
        self.fail_with = fail_with
        self._lock = threading.Lock()
        self._block = 0
        self._records: dict[tuple[str, str, int], LedgerTx] = {}
        self._digests: list[str] = []
        self._rewarded: dict[str, str] = {}
        self._parents: set[str] = set()
        self._balances: dict[str, Decimal] = {}

    def record_event(
        self,
        child_id: str,
        vaccine_name: str,
        dose_number: int,
        timestamp_unix: int,
        facility_id: str,
        batch_id: str,
        expiry_unix: int,
        content_hash: str,
    ) -> LedgerTx:
        with self._lock:
            self._check_failure()
            key = (child_id, vaccine_name, dose_number)
            if key in self._records:
                raise LedgerRejected(
                    f"Vaccination already recorded: {child_id} {vaccine_name} dose {dose_number}"
                )
            tx = self._next_tx(f"record:{child_id}:{vaccine_name}:{dose_number}:{content_hash}")
            self._records[key] = tx
            return tx

    def reward_parent(self, parent_address: str, child_id: str) -> LedgerTx:
        with self._lock:
            self._check_failure()
            if child_id in self._rewarded:
                raise AlreadyRewarded(
                    "Already rewarded for this child",
                    details={"child_id": child_id},
                )
            tx = self._next_tx(f"reward:{parent_address}:{child_id}")
            self._rewarded[child_id] = parent_address
            holder = parent_address.lower()
            self._parents.add(holder)
            self._balances[holder] = self._balances.get(holder, Decimal("0")) + self.reward_amount
            return tx

    def anchor_digest(self, digest: str) -> LedgerTx:
        with self._lock:
            self._check_failure()
            self._digests.append(digest)
            return self._next_tx(f"digest:{digest}")

    def get_stats(self) -> LedgerStats:
        with self._lock:
            self._check_failure()
            return LedgerStats(
                total_anchored=len(self._records) + len(self._digests),
                total_rewards_distributed=self.reward_amount * len(self._rewarded),
                total_parents_rewarded=len(self._parents),
            )

    def balance_of(self, address: str) -> Decimal:
        with self._lock:
            self._check_failure()
            return self._balances.get(address.lower(), Decimal("0"))

    def is_rewarded(self, child_id: str) -> bool:
        return child_id in self._rewarded

    @property
    def anchored_digests(self) -> list[str]:
        return list(self._digests)

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _next_tx(self, seed: str) -> LedgerTx:
        self._block += 1
        digest = hashlib.sha256(f"{self._block}:{seed}".encode("utf-8")).hexdigest()
        return LedgerTx(tx_hash=f"0x{digest}", block_number=self._block)
