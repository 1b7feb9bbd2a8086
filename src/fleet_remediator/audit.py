"""Append-only CSV audit trail for remediation attempts.

One AuditSink owns one file. The header is written once when the file is
first created; every record is appended as its own row and flushed to disk
immediately, so a crash after N executions preserves records 1..N.
"""

from __future__ import annotations

import csv
import logging
import os
from pathlib import Path

from fleet_remediator.models import AUDIT_COLUMNS, AuditRecord

logger = logging.getLogger(__name__)


class AuditSink:
    """Single-writer CSV audit log."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def ensure_initialized(self) -> None:
        """Create the audit file and its header if it does not exist yet."""
        if self.path.exists() and self.path.stat().st_size > 0:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as fh:
            csv.DictWriter(fh, fieldnames=AUDIT_COLUMNS).writeheader()
            fh.flush()
            os.fsync(fh.fileno())
        logger.info("Created audit log %s", self.path)

    def append(self, record: AuditRecord) -> None:
        """Append one record and flush it to disk."""
        self.ensure_initialized()
        with self.path.open("a", newline="", encoding="utf-8") as fh:
            csv.DictWriter(fh, fieldnames=AUDIT_COLUMNS).writerow(record.to_row())
            fh.flush()
            os.fsync(fh.fileno())

    def read_records(self, host_id: str | None = None, limit: int | None = None) -> list[AuditRecord]:
        """Read audit records back, oldest first.

        Args:
            host_id: Only return records for this host.
            limit: Return at most this many of the most recent records.

        Returns:
            Parsed AuditRecords; malformed rows are skipped.
        """
        if not self.path.exists():
            return []
        records: list[AuditRecord] = []
        with self.path.open(newline="", encoding="utf-8") as fh:
            for row in csv.DictReader(fh):
                if host_id and row.get("Server") != host_id:
                    continue
                try:
                    records.append(AuditRecord.from_row(row))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping malformed audit row in %s: %s", self.path, exc)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records
