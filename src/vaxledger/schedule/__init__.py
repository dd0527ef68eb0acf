"""Reference schedule and per-child dose status."""

from vaxledger.schedule.catalog import ScheduleCatalog
from vaxledger.schedule.dose_status import DoseStatusStore

__all__ = ["ScheduleCatalog", "DoseStatusStore"]
