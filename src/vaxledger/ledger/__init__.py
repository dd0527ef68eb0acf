"""Ledger — client contract, backends and the anchor adapter."""

from vaxledger.ledger.anchor import AnchorReceipt, LedgerAnchor
from vaxledger.ledger.client import InMemoryLedger, LedgerClient, LedgerStats, LedgerTx

__all__ = [
    "AnchorReceipt",
    "InMemoryLedger",
    "LedgerAnchor",
    "LedgerClient",
    "LedgerStats",
    "LedgerTx",
]
