"""Remote metrics procedure and output parsing.

A single shell one-liner reads /proc/loadavg, nproc, /proc/meminfo and
``df -P /`` on the host and prints one marker line. CPU percent is the
1-minute load average divided by the core count.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fleet_remediator.exceptions import MetricsParseError
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.models import HostDescriptor, MetricsSample

OUTPUT_MARKER = "FLEET_METRICS"

METRICS_COMMAND = (
    "load=$(cut -d' ' -f1 /proc/loadavg); "
    "cores=$(nproc); "
    "mem=$(awk '/^MemTotal:/{t=$2} /^MemAvailable:/{a=$2} END{if (t>0) printf \"%.2f\", (t-a)*100/t; else print 0}' /proc/meminfo); "
    "disk=$(df -P / | awk 'NR==2{sub(/%/,\"\",$5); print $5}'); "
    f"echo \"{OUTPUT_MARKER} $load $cores $mem $disk\""
)


def _clamp_pct(value: float) -> float:
    return round(min(max(value, 0.0), 100.0), 2)


def parse_metrics_output(host_id: str, output: str, timestamp: datetime | None = None) -> MetricsSample:
    """Parse the marker line printed by METRICS_COMMAND into a MetricsSample.

    Lines before the marker (login banners, warnings) are ignored. CPU is
    clamped to 100 since load can exceed the core count.

    Raises:
        MetricsParseError: If no marker line is found or a field is not numeric.
    """
    line = next(
        (ln.strip() for ln in reversed(output.splitlines()) if ln.strip().startswith(OUTPUT_MARKER)),
        None,
    )
    if line is None:
        raise MetricsParseError(f"No metrics line in output from {host_id}", details={"output": output[:500]})

    fields = line.split()[1:]
    if len(fields) != 4:
        raise MetricsParseError(f"Expected 4 metric fields from {host_id}, got {len(fields)}", details={"line": line})
    try:
        load, cores, mem, disk = (float(f) for f in fields)
    except ValueError as exc:
        raise MetricsParseError(f"Non-numeric metrics from {host_id}: {line}", details={"line": line}) from exc
    if cores <= 0:
        raise MetricsParseError(f"Invalid core count from {host_id}: {fields[1]}", details={"line": line})

    return MetricsSample(
        host_id=host_id,
        cpu_pct=_clamp_pct(load / cores * 100),
        mem_pct=_clamp_pct(mem),
        disk_pct=_clamp_pct(disk),
        timestamp=timestamp or datetime.now(UTC),
    )


def collect_host_metrics(executor: RemoteExecutor, host: HostDescriptor, timeout: float) -> MetricsSample:
    """Open a session to ``host``, run the metrics procedure, and parse the result.

    Raises:
        RemoteExecutionError: On connect, auth, or timeout failures.
        MetricsParseError: If the procedure failed remotely or its output is malformed.
    """
    result = executor.execute(host, METRICS_COMMAND, timeout)
    if not result.ok:
        raise MetricsParseError(
            f"Metrics procedure on {host.host_id} exited with {result.exit_code}",
            details={"exit_code": result.exit_code, "output": result.output[:500]},
        )
    return parse_metrics_output(host.host_id, result.output)
