"""Threshold evaluation of metrics samples.

Pure and deterministic: each metric of each sample is compared against its
threshold with a strict greater-than, in the fixed order CPU, Memory, Disk.
"""

from __future__ import annotations

from collections.abc import Iterable

from fleet_remediator.models import Alert, MetricKind, MetricsSample, Thresholds


def _metric_pairs(sample: MetricsSample, thresholds: Thresholds) -> list[tuple[MetricKind, float, float]]:
    return [
        ("CPU", sample.cpu_pct, thresholds.cpu_threshold),
        ("Memory", sample.mem_pct, thresholds.memory_threshold),
        ("Disk", sample.disk_pct, thresholds.disk_threshold),
    ]


def evaluate(samples: Iterable[MetricsSample], thresholds: Thresholds) -> list[Alert]:
    """Return one Alert per metric whose value is strictly above its threshold."""
    alerts: list[Alert] = []
    for sample in samples:
        for metric, value, threshold in _metric_pairs(sample, thresholds):
            if value > threshold:
                alerts.append(Alert(
                    host_id=sample.host_id,
                    metric=metric,
                    value=value,
                    threshold=threshold,
                    timestamp=sample.timestamp,
                ))
    return alerts
