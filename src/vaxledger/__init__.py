"""VaxLedger — immunization records, certificates and ledger-backed rewards."""

__version__ = "0.1.0"
