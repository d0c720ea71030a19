"""
import_engine.report - Running counters of one import job.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from db.models import (
    COUNTER_FIELDS, STATUS_COMPLETED, STATUS_COMPLETED_WITH_ERRORS,
)


@dataclass
class ImportCounters:
    total_rows: int = 0
    processed_rows: int = 0
    imported_rows: int = 0
    failed_rows: int = 0
    warning_rows: int = 0

    @classmethod
    def from_job(cls, job) -> ImportCounters:
        return cls(**{name: getattr(job, name) or 0 for name in COUNTER_FIELDS})

    def record_row(self, *, imported: bool, warned: bool, failed: bool):
        self.processed_rows += 1
        if imported:
            self.imported_rows += 1
        if warned:
            self.warning_rows += 1
        if failed:
            self.failed_rows += 1

    def terminal_status(self) -> str:
        return STATUS_COMPLETED_WITH_ERRORS if self.failed_rows else STATUS_COMPLETED

    def to_dict(self) -> dict:
        return asdict(self)
