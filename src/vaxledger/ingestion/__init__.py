"""Ingestion — validation and persistence of reported doses."""

from vaxledger.ingestion.service import (
    IngestionResult,
    RecordIngestion,
    SyncReport,
    validate_submission,
)

__all__ = ["IngestionResult", "RecordIngestion", "SyncReport", "validate_submission"]
