"""Pydantic v2 data models for hosts, samples, alerts, remediation rules, and audit records.

All core data structures used throughout the remediator live here. Values
that cross component boundaries (samples, alerts, rules, audit records) are
frozen; only the scheduler's CollectionTask carries mutable state.
"""

from __future__ import annotations

import threading
import time
import uuid
from datetime import UTC, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

MetricKind = Literal["CPU", "Memory", "Disk"]
Comparator = Literal["gt", "gte", "lt", "lte", "eq"]
TaskState = Literal["pending", "running", "completed", "timed_out", "failed"]
CycleStatus = Literal["completed", "completed_with_errors", "no_data"]

TERMINAL_STATES: frozenset[str] = frozenset({"completed", "timed_out", "failed"})

# Exit code reported by the executor when the command never ran to completion
TRANSPORT_FAILURE_EXIT_CODE = 9999

_METRIC_NAMES: dict[str, str] = {
    "cpu": "CPU",
    "memory": "Memory",
    "mem": "Memory",
    "disk": "Disk",
}


def _now() -> datetime:
    return datetime.now(UTC)


class HostDescriptor(BaseModel):
    """Connection identity of one monitored host."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    username: str = Field(min_length=1)
    key_path: str = Field(min_length=1)
    port: int = Field(22, ge=1, le=65535)

    @property
    def host_id(self) -> str:
        return self.address


class MetricsSample(BaseModel):
    """One CPU/memory/disk measurement for a host."""

    model_config = ConfigDict(frozen=True)

    host_id: str
    cpu_pct: float = Field(ge=0, le=100)
    mem_pct: float = Field(ge=0, le=100)
    disk_pct: float = Field(ge=0, le=100)
    timestamp: datetime = Field(default_factory=_now)


class CollectionTask(BaseModel):
    """Per-host unit of collection work.

    A task moves pending -> running -> one terminal state. The first call to
    ``finish`` wins; later calls (e.g. a worker completing after the watchdog
    already timed it out) are ignored and reported as ``False``. A completion
    that arrives past the deadline is recorded as ``timed_out`` even when the
    watchdog has not looked at the task yet.
    """

    host_id: str
    state: TaskState = "pending"
    started_at: datetime | None = None
    deadline: float | None = None
    finished_at: datetime | None = None
    error: str = ""
    sample: MetricsSample | None = None

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self, timeout: float) -> bool:
        with self._lock:
            if self.state != "pending":
                return False
            self.state = "running"
            self.started_at = _now()
            self.deadline = time.monotonic() + timeout
            return True

    def finish(self, state: TaskState, sample: MetricsSample | None = None, error: str = "") -> bool:
        if state not in TERMINAL_STATES:
            raise ValueError(f"{state!r} is not a terminal task state")
        with self._lock:
            if self.state in TERMINAL_STATES:
                return False
            if state == "completed" and self.deadline is not None and time.monotonic() > self.deadline:
                self.state = "timed_out"
                self.finished_at = _now()
                self.error = "result arrived after the deadline"
                self.sample = None
                return False
            self.state = state
            self.finished_at = _now()
            self.error = error
            self.sample = sample if state == "completed" else None
            return True

    def is_overdue(self, now: float | None = None) -> bool:
        if self.state != "running" or self.deadline is None:
            return False
        return (time.monotonic() if now is None else now) > self.deadline


class Alert(BaseModel):
    """A sample value that exceeded the configured threshold for one metric."""

    model_config = ConfigDict(frozen=True)

    host_id: str
    metric: MetricKind
    value: float
    threshold: float
    timestamp: datetime


class Thresholds(BaseModel):
    """Per-metric alert thresholds in percent."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cpu_threshold: float = Field(85.0, alias="cpuThreshold", ge=0, le=100)
    memory_threshold: float = Field(90.0, alias="memoryThreshold", ge=0, le=100)
    disk_threshold: float = Field(80.0, alias="diskThreshold", ge=0, le=100)


class Trigger(BaseModel):
    """Predicate over one metric of an alert."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metric: MetricKind
    condition: Comparator = "gt"
    value: float

    @field_validator("metric", mode="before")
    @classmethod
    def _normalize_metric(cls, value: object) -> object:
        if isinstance(value, str):
            return _METRIC_NAMES.get(value.strip().lower(), value)
        return value

    @field_validator("condition", mode="before")
    @classmethod
    def _normalize_condition(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    use_sudo: bool = Field(False, alias="useSudo")

    def parameters(self) -> dict:
        """Return the configured parameters without the type tag."""
        return self.model_dump(mode="json", by_alias=True, exclude={"type"})


class RestartServiceAction(_Action):
    type: Literal["RestartService"] = "RestartService"
    service_name: str = Field(alias="serviceName", min_length=1)
    user_scope: bool = Field(False, alias="userScope")


class ClearPathAction(_Action):
    type: Literal["ClearPath"] = "ClearPath"
    path: str = Field(min_length=1)
    older_than_days: int | None = Field(None, alias="olderThanDays", ge=0)

    @field_validator("path")
    @classmethod
    def _reject_root(cls, value: str) -> str:
        if value.strip().rstrip("/") == "":
            raise ValueError("refusing to clear the root filesystem")
        return value


class VacuumJournalAction(_Action):
    type: Literal["VacuumJournal"] = "VacuumJournal"
    max_age: str = Field("7d", alias="maxAge", pattern=r"^\d+[a-z]*$")


class CleanupAptAction(_Action):
    type: Literal["CleanupApt"] = "CleanupApt"
    autoremove: bool = True


class RunCommandAction(_Action):
    type: Literal["RunCommand"] = "RunCommand"
    command: str = Field(min_length=1)

    @field_validator("command")
    @classmethod
    def _single_line(cls, value: str) -> str:
        if "\n" in value or "\r" in value:
            raise ValueError("remote commands must be a single line")
        return value


RemediationAction = Annotated[
    Union[
        RestartServiceAction,
        ClearPathAction,
        VacuumJournalAction,
        CleanupAptAction,
        RunCommandAction,
    ],
    Field(discriminator="type"),
]


class RemediationRule(BaseModel):
    """A trigger predicate paired with a remediation action."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    trigger: Trigger
    action: RemediationAction
    timeout_sec: int | None = Field(None, alias="timeoutSec", gt=0)


class RemediationConfig(BaseModel):
    """Remediation switch, defaults, and the ordered rule list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    default_timeout_sec: int = Field(60, alias="defaultTimeoutSec", gt=0)
    audit_log_path: str = Field("remediation_audit.csv", alias="auditLogPath")
    rules: list[RemediationRule] = Field(default_factory=list)


class MonitorConfig(BaseModel):
    """Thresholds and remediation policy, loaded once per run."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    thresholds: Thresholds = Field(default_factory=Thresholds)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)


class ExecResult(BaseModel):
    """Outcome of one remote command."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


AUDIT_COLUMNS: list[str] = [
    "Timestamp",
    "Server",
    "Metric",
    "Value",
    "Threshold",
    "ActionType",
    "Parameters",
    "Success",
    "ExitCode",
    "Message",
]


class AuditRecord(BaseModel):
    """Immutable entry documenting one remediation attempt."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    host_id: str
    metric: MetricKind
    value: float
    threshold: float
    action_type: str
    parameters: str = "{}"
    success: bool
    exit_code: int
    message: str = ""

    def to_row(self) -> dict[str, object]:
        return {
            "Timestamp": self.timestamp.isoformat(),
            "Server": self.host_id,
            "Metric": self.metric,
            "Value": self.value,
            "Threshold": self.threshold,
            "ActionType": self.action_type,
            "Parameters": self.parameters,
            "Success": self.success,
            "ExitCode": self.exit_code,
            "Message": self.message,
        }

    @classmethod
    def from_row(cls, row: dict[str, str]) -> AuditRecord:
        return cls(
            timestamp=datetime.fromisoformat(row["Timestamp"]),
            host_id=row["Server"],
            metric=row["Metric"],
            value=float(row["Value"]),
            threshold=float(row["Threshold"]),
            action_type=row["ActionType"],
            parameters=row["Parameters"],
            success=row["Success"].strip().lower() == "true",
            exit_code=int(row["ExitCode"]),
            message=row["Message"],
        )


class CycleReport(BaseModel):
    """Complete result of one collect -> evaluate -> remediate cycle."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    hosts_total: int = 0
    hosts_collected: int = 0
    samples: list[MetricsSample] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)
    audit_records: list[AuditRecord] = Field(default_factory=list)
    remediation_enabled: bool = False
    status: CycleStatus = "completed"
    summary: str = ""
