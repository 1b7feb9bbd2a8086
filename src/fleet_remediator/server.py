"""FastMCP server entry point for the fleet remediator.

Registers the monitoring tools and starts the server. Also provides
``run_once`` for scheduled, unattended runs (cron or systemd timers).
"""

from __future__ import annotations

import json
import logging
import shutil
from typing import NamedTuple

from fastmcp import FastMCP

from fleet_remediator.audit import AuditSink
from fleet_remediator.config import FleetConfig, get_config, load_monitor_config
from fleet_remediator.engine import RemediationEngine
from fleet_remediator.evaluator import evaluate
from fleet_remediator.exceptions import FleetError
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.hosts import HostRegistry, load_hosts_csv
from fleet_remediator.models import MonitorConfig
from fleet_remediator.pipeline import run_cycle
from fleet_remediator.scheduler import CollectionScheduler
from fleet_remediator.storage import RunStorage

logger = logging.getLogger(__name__)

mcp = FastMCP("fleet-remediator")


class _Dependencies(NamedTuple):
    config: FleetConfig
    hosts: HostRegistry
    monitor: MonitorConfig
    scheduler: CollectionScheduler
    engine: RemediationEngine
    storage: RunStorage


# Module-level singleton initialized on first tool call
_deps: _Dependencies | None = None


def _build_dependencies(config: FleetConfig) -> _Dependencies:
    hosts = load_hosts_csv(config.hosts_file)
    monitor = load_monitor_config(config.monitor_config_file)
    executor = RemoteExecutor.from_config(config)
    return _Dependencies(
        config=config,
        hosts=hosts,
        monitor=monitor,
        scheduler=CollectionScheduler.from_config(config, executor),
        engine=RemediationEngine(executor, AuditSink(monitor.remediation.audit_log_path)),
        storage=RunStorage(config.storage_path),
    )


def _get_dependencies() -> _Dependencies:
    """Lazily initialize and return the shared configuration and components."""
    global _deps  # noqa: PLW0603
    if _deps is None:
        _deps = _build_dependencies(get_config())
    return _deps


@mcp.tool()
def list_hosts() -> dict:
    """List the hosts in the fleet host list."""
    deps = _get_dependencies()
    hosts = [h.model_dump(mode="json") for h in deps.hosts]
    return {"hosts": hosts, "total": len(hosts)}


def _resolve_timeout(timeout_sec: float | None, default: float) -> float:
    """Return the per-task timeout to use, rejecting non-positive overrides."""
    if timeout_sec is None:
        return default
    if timeout_sec <= 0:
        raise ValueError(f"timeout_sec must be positive, got {timeout_sec}")
    return timeout_sec


@mcp.tool()
def collect_metrics(timeout_sec: float | None = None) -> dict:
    """Collect CPU, memory, and disk usage from every reachable host."""
    deps = _get_dependencies()
    try:
        timeout = _resolve_timeout(timeout_sec, deps.config.collection_timeout)
    except ValueError as exc:
        return {"status": "error", "message": str(exc)}
    samples = deps.scheduler.collect(deps.hosts, timeout)
    return {
        "samples": [s.model_dump(mode="json") for s in samples],
        "tasks": [t.model_dump(mode="json", exclude={"sample"}) for t in deps.scheduler.last_tasks],
        "hosts_total": len(deps.hosts),
    }


@mcp.tool()
def check_thresholds() -> dict:
    """Collect metrics and report threshold alerts without remediating."""
    deps = _get_dependencies()
    samples = deps.scheduler.collect(deps.hosts, deps.config.collection_timeout)
    alerts = evaluate(samples, deps.monitor.thresholds)
    return {
        "samples": [s.model_dump(mode="json") for s in samples],
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "thresholds": deps.monitor.thresholds.model_dump(mode="json", by_alias=True),
    }


@mcp.tool()
def run_monitor_cycle(remediate: bool = True) -> dict:
    """Run a full collect, evaluate, and remediate cycle and save the report."""
    deps = _get_dependencies()
    report = run_cycle(
        deps.hosts,
        deps.monitor,
        deps.scheduler,
        deps.engine,
        deps.config.collection_timeout,
        storage=deps.storage,
        remediate=remediate,
    )
    return report.model_dump(mode="json")


@mcp.tool()
def remediation_rules() -> dict:
    """List the configured remediation rules and whether remediation is enabled."""
    remediation = _get_dependencies().monitor.remediation
    return {
        "enabled": remediation.enabled,
        "default_timeout_sec": remediation.default_timeout_sec,
        "rules": [r.model_dump(mode="json", by_alias=True) for r in remediation.rules],
    }


@mcp.tool()
def audit_log(host_id: str | None = None, limit: int = 50) -> dict:
    """Return the most recent remediation audit records."""
    deps = _get_dependencies()
    records = deps.engine.sink.read_records(host_id=host_id, limit=limit)
    return {
        "records": [r.model_dump(mode="json") for r in records],
        "total_returned": len(records),
        "filter": host_id,
    }


@mcp.tool()
def run_history(limit: int = 10) -> dict:
    """Retrieve summaries of past monitoring cycles."""
    reports = _get_dependencies().storage.list_reports(limit=limit)
    return {"runs": reports, "total_returned": len(reports)}


@mcp.tool()
def health_check() -> dict:
    """Verify configuration loads and the ssh client is available."""
    try:
        deps = _get_dependencies()
        ssh_path = shutil.which(deps.config.ssh_binary)
        if ssh_path is None:
            return {"status": "unhealthy", "error": f"ssh binary not found: {deps.config.ssh_binary}"}
        return {
            "status": "healthy",
            "hosts": len(deps.hosts),
            "rules": len(deps.monitor.remediation.rules),
            "remediation_enabled": deps.monitor.remediation.enabled,
            "ssh": ssh_path,
        }
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def run_once() -> None:
    """Entry point for one unattended monitoring cycle."""
    config = get_config()
    _configure_logging(config.log_level)
    try:
        deps = _build_dependencies(config)
    except FleetError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    report = run_cycle(
        deps.hosts,
        deps.monitor,
        deps.scheduler,
        deps.engine,
        config.collection_timeout,
        storage=deps.storage,
    )
    print(json.dumps({"id": report.id, "status": report.status, "summary": report.summary}))


def main() -> None:
    """Entry point for the fleet-remediator MCP server."""
    _configure_logging(get_config().log_level)
    logger.info("Starting fleet-remediator MCP server")
    mcp.run()
