"""Local audit log of rewards the ledger has paid out (JSONL)."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional

from vaxledger.models.reward import RewardClaim


class RewardClaimLog:
    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._claims: dict[str, RewardClaim] = {}
        self._storage_path = storage_path
        self._lock = threading.Lock()

        if storage_path and storage_path.exists():
            with storage_path.open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        claim = RewardClaim.from_dict(json.loads(line))
                        self._claims[claim.child_id] = claim

    def record(self, claim: RewardClaim) -> None:
        with self._lock:
            self._claims[claim.child_id] = claim
            if self._storage_path:
                self._storage_path.parent.mkdir(parents=True, exist_ok=True)
                with self._storage_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(claim.to_dict(), sort_keys=True) + "\n")

    def get(self, child_id: str) -> Optional[RewardClaim]:
        return self._claims.get(child_id)

    def all(self) -> list[RewardClaim]:
        return list(self._claims.values())
