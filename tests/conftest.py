"""Shared test fixtures for the fleet remediator test suite.

Unit tests replace the SSH transport with FakeExecutor or patch
subprocess.run. Integration tests (tests/integration/) require a real host.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from fleet_remediator.audit import AuditSink
from fleet_remediator.config import FleetConfig
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.hosts import HostRegistry
from fleet_remediator.models import ExecResult, HostDescriptor, MetricsSample
from fleet_remediator.storage import RunStorage

SAMPLE_TS = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class FakeExecutor(RemoteExecutor):
    """RemoteExecutor whose transport is a lookup table instead of ssh.

    ``responses`` maps host id to an ExecResult or an exception to raise from
    ``execute``; ``run`` keeps the real never-raise behaviour.
    """

    def __init__(
        self,
        responses: dict[str, ExecResult | Exception] | None = None,
        unreachable: set[str] | None = None,
    ) -> None:
        super().__init__()
        self.responses = responses or {}
        self.unreachable = unreachable or set()
        self.calls: list[tuple[str, str, float]] = []
        self.probed: list[str] = []

    def probe(self, host: HostDescriptor, timeout: float) -> bool:
        self.probed.append(host.host_id)
        return host.host_id not in self.unreachable

    def execute(self, host: HostDescriptor, command: str, timeout: float) -> ExecResult:
        self.calls.append((host.host_id, command, timeout))
        response = self.responses.get(host.host_id, ExecResult(exit_code=0, output="ok"))
        if isinstance(response, Exception):
            raise response
        return response


def make_host(address: str, port: int = 22) -> HostDescriptor:
    return HostDescriptor(address=address, username="ops", key_path="~/.ssh/id_ed25519", port=port)


def make_sample(host_id: str, cpu: float = 10.0, mem: float = 10.0, disk: float = 10.0) -> MetricsSample:
    return MetricsSample(host_id=host_id, cpu_pct=cpu, mem_pct=mem, disk_pct=disk, timestamp=SAMPLE_TS)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fleet_config(tmp_path: Path) -> FleetConfig:
    """Return a FleetConfig with test values."""
    return FleetConfig(
        FLEET_HOSTS_FILE=str(tmp_path / "hosts.csv"),
        FLEET_MONITOR_CONFIG=str(tmp_path / "monitor.json"),
        FLEET_MAX_CONCURRENCY=4,
        FLEET_COLLECTION_TIMEOUT=5,
        FLEET_PROBE_TIMEOUT=0.5,
        FLEET_STORAGE_PATH=str(tmp_path / "storage"),
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def host_a() -> HostDescriptor:
    return make_host("10.0.0.1")


@pytest.fixture
def host_b() -> HostDescriptor:
    return make_host("10.0.0.2")


@pytest.fixture
def registry(host_a: HostDescriptor, host_b: HostDescriptor) -> HostRegistry:
    return HostRegistry([host_a, host_b])


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def audit_sink(tmp_path: Path) -> AuditSink:
    """Return an AuditSink writing to a temp directory."""
    return AuditSink(tmp_path / "audit" / "remediation_audit.csv")


@pytest.fixture
def run_storage(tmp_path: Path) -> RunStorage:
    """Return a RunStorage using a temp directory."""
    return RunStorage(str(tmp_path / "run-storage"))
