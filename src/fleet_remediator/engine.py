"""Remediation engine: rule matching, command synthesis, execution, and audit.

The RemediationEngine walks alerts in order, fires every rule whose trigger
matches (escalation, not first-match), runs the synthesized command on the
alert's host, and appends one audit record per executed rule-match.
Execution is strictly sequential.
"""

from __future__ import annotations

import json
import logging
import operator
from collections.abc import Callable, Iterable

from fleet_remediator.audit import AuditSink
from fleet_remediator.commands import synthesize_command
from fleet_remediator.exceptions import UnsupportedActionError
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.hosts import HostRegistry
from fleet_remediator.models import Alert, AuditRecord, RemediationConfig, RemediationRule

logger = logging.getLogger(__name__)

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "eq": operator.eq,
}


def compare(value: float, condition: str, threshold: float) -> bool:
    """Apply a named comparator; the condition name is case-insensitive.

    Raises:
        ValueError: If the condition is not one of gt, gte, lt, lte, eq.
    """
    try:
        fn = COMPARATORS[condition.lower()]
    except KeyError:
        raise ValueError(f"Unknown condition: {condition!r}") from None
    return fn(value, threshold)


def rule_matches(rule: RemediationRule, alert: Alert) -> bool:
    trigger = rule.trigger
    return trigger.metric == alert.metric and compare(alert.value, trigger.condition, trigger.value)


def match_rules(alert: Alert, rules: Iterable[RemediationRule]) -> list[RemediationRule]:
    """Return every rule that matches the alert, in configuration order."""
    return [rule for rule in rules if rule_matches(rule, alert)]


class RemediationEngine:
    """Executes matched remediation rules and records the outcome."""

    def __init__(self, executor: RemoteExecutor, sink: AuditSink) -> None:
        self.executor = executor
        self.sink = sink
        self._sink_ready = False

    def _write(self, record: AuditRecord) -> None:
        if not self._sink_ready:
            self.sink.ensure_initialized()
            self._sink_ready = True
        self.sink.append(record)

    def remediate(
        self,
        alerts: Iterable[Alert],
        hosts: HostRegistry,
        config: RemediationConfig,
    ) -> list[AuditRecord]:
        """Run remediation for a batch of alerts.

        Args:
            alerts: Alerts from threshold evaluation.
            hosts: Registry used to resolve each alert's host.
            config: Remediation switch, default timeout, and rules.

        Returns:
            One AuditRecord per executed rule-match, in execution order.
        """
        if not config.enabled:
            logger.info("Remediation disabled, skipping")
            return []

        records: list[AuditRecord] = []
        for alert in alerts:
            host = hosts.get(alert.host_id)
            if host is None:
                logger.warning("No host descriptor for %s, skipping %s alert", alert.host_id, alert.metric)
                continue

            matched = match_rules(alert, config.rules)
            if not matched:
                logger.debug("No rule matches %s %s=%.2f", alert.host_id, alert.metric, alert.value)
                continue

            for rule in matched:
                try:
                    command = synthesize_command(rule.action)
                except UnsupportedActionError as exc:
                    logger.error("Rule %r on %s skipped: %s", rule.name or rule.action.type, alert.host_id, exc)
                    continue

                timeout = rule.timeout_sec or config.default_timeout_sec
                logger.info(
                    "Running %s on %s (%s %s %s)",
                    rule.action.type,
                    alert.host_id,
                    alert.metric,
                    rule.trigger.condition,
                    rule.trigger.value,
                )
                result = self.executor.run(host, command, timeout)
                record = AuditRecord(
                    host_id=alert.host_id,
                    metric=alert.metric,
                    value=alert.value,
                    threshold=rule.trigger.value,
                    action_type=rule.action.type,
                    parameters=json.dumps(rule.action.parameters(), sort_keys=True),
                    success=result.exit_code == 0,
                    exit_code=result.exit_code,
                    message=result.output,
                )
                self._write(record)
                records.append(record)
                if not record.success:
                    logger.warning(
                        "%s on %s failed with exit code %d", rule.action.type, alert.host_id, result.exit_code
                    )

        logger.info("Remediation finished: %d actions executed", len(records))
        return records
