"""JSON-based file storage for monitoring cycle reports.

Persists each CycleReport under the configured storage path so past runs can
be listed and inspected from the server tools.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from fleet_remediator.models import CycleReport

logger = logging.getLogger(__name__)


class RunStorage:
    """Manages persistence of cycle reports."""

    def __init__(self, base_path: str) -> None:
        self.base_path = Path(base_path)
        self.runs_path = self.base_path / "runs"
        self.runs_path.mkdir(parents=True, exist_ok=True)

    def save_report(self, report: CycleReport) -> str:
        """Persist a cycle report to disk.

        Args:
            report: The CycleReport to save.

        Returns:
            The report ID.
        """
        file_path = self.runs_path / f"{report.id}.json"
        file_path.write_text(report.model_dump_json(indent=2))
        logger.info("Saved cycle report %s to %s", report.id, file_path)
        return report.id

    def load_report(self, report_id: str) -> CycleReport:
        """Load a cycle report by ID.

        Raises:
            FileNotFoundError: If the report file does not exist.
        """
        file_path = self.runs_path / f"{report_id}.json"
        if not file_path.exists():
            raise FileNotFoundError(f"Cycle report not found: {report_id}")
        return CycleReport.model_validate_json(file_path.read_text())

    def list_reports(self, limit: int = 50) -> list[dict]:
        """List stored cycle reports, newest first.

        Args:
            limit: Maximum number of summaries to return.

        Returns:
            List of summary dicts with id, timestamps, counts, and status.
        """
        results: list[dict] = []
        files = sorted(self.runs_path.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)

        for file_path in files:
            if len(results) >= limit:
                break
            try:
                data = json.loads(file_path.read_text())
                results.append({
                    "id": data["id"],
                    "started_at": data.get("started_at"),
                    "completed_at": data.get("completed_at"),
                    "status": data.get("status"),
                    "hosts_total": data.get("hosts_total", 0),
                    "hosts_collected": data.get("hosts_collected", 0),
                    "alerts": len(data.get("alerts", [])),
                    "actions": len(data.get("audit_records", [])),
                })
            except (json.JSONDecodeError, KeyError) as exc:
                logger.warning("Skipping corrupt report file %s: %s", file_path, exc)
                continue

        return results
