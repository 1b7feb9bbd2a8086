"""One monitoring cycle: collect, evaluate, remediate, report.

Downstream stages tolerate empty input: a cycle that collects nothing still
completes and produces a report with status ``no_data``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fleet_remediator.engine import RemediationEngine
from fleet_remediator.evaluator import evaluate
from fleet_remediator.hosts import HostRegistry
from fleet_remediator.models import CycleReport, MonitorConfig
from fleet_remediator.scheduler import CollectionScheduler
from fleet_remediator.storage import RunStorage

logger = logging.getLogger(__name__)


def run_cycle(
    hosts: HostRegistry,
    monitor_config: MonitorConfig,
    scheduler: CollectionScheduler,
    engine: RemediationEngine,
    per_task_timeout: float,
    storage: RunStorage | None = None,
    remediate: bool = True,
) -> CycleReport:
    """Run a single collect -> evaluate -> remediate pass over the fleet.

    Args:
        hosts: Registry of hosts to poll.
        monitor_config: Thresholds and remediation policy.
        scheduler: Collection scheduler.
        engine: Remediation engine.
        per_task_timeout: Seconds each collection task may run.
        storage: If given, the report is saved there.
        remediate: Set False to evaluate alerts without running any action.

    Returns:
        The CycleReport for this run.
    """
    started = datetime.now(UTC)
    logger.info("Starting monitoring cycle over %d hosts", len(hosts))

    samples = scheduler.collect(hosts, per_task_timeout)
    alerts = evaluate(samples, monitor_config.thresholds)
    for alert in alerts:
        logger.warning(
            "ALERT %s %s=%.2f exceeds %.2f", alert.host_id, alert.metric, alert.value, alert.threshold
        )

    remediation = monitor_config.remediation
    records = engine.remediate(alerts, hosts, remediation) if remediate else []

    failed_tasks = sum(1 for t in scheduler.last_tasks if t.state != "completed")
    failed_actions = sum(1 for r in records if not r.success)
    if not samples:
        status = "no_data"
    elif failed_tasks or failed_actions:
        status = "completed_with_errors"
    else:
        status = "completed"

    report = CycleReport(
        started_at=started,
        completed_at=datetime.now(UTC),
        hosts_total=len(hosts),
        hosts_collected=len(samples),
        samples=samples,
        alerts=alerts,
        audit_records=records,
        remediation_enabled=remediate and remediation.enabled,
        status=status,
        summary=(
            f"{len(samples)}/{len(hosts)} hosts collected, {len(alerts)} alerts, "
            f"{len(records)} actions ({failed_actions} failed)"
        ),
    )

    if storage is not None:
        storage.save_report(report)
    logger.info("Cycle %s finished: %s", report.id, report.summary)
    return report
