"""Tests for the concurrent collection scheduler."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import FakeExecutor, make_host, make_sample
from fleet_remediator.exceptions import MetricsParseError, RemoteConnectionError, RemoteTimeoutError
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.models import HostDescriptor, MetricsSample
from fleet_remediator.scheduler import CollectionScheduler


def _scheduler_with(collect_fn, executor: RemoteExecutor | None = None, max_concurrency: int = 4) -> CollectionScheduler:
    return CollectionScheduler(
        executor or FakeExecutor(),
        max_concurrency=max_concurrency,
        probe_timeout=0.1,
        collect_fn=collect_fn,
        watchdog_interval=0.01,
    )


def _ok(executor: RemoteExecutor, host: HostDescriptor, timeout: float) -> MetricsSample:
    return make_sample(host.host_id, cpu=42.0)


class TestCollect:
    def test_returns_samples_sorted_by_host(self) -> None:
        hosts = [make_host("c"), make_host("a"), make_host("b")]
        samples = _scheduler_with(_ok).collect(hosts, per_task_timeout=2)
        assert [s.host_id for s in samples] == ["a", "b", "c"]

    def test_unreachable_hosts_get_no_task(self) -> None:
        called: list[str] = []

        def collect(executor, host, timeout):
            called.append(host.host_id)
            return make_sample(host.host_id)

        executor = FakeExecutor(unreachable={"b"})
        scheduler = _scheduler_with(collect, executor)
        samples = scheduler.collect([make_host("a"), make_host("b")], per_task_timeout=2)
        assert [s.host_id for s in samples] == ["a"]
        assert called == ["a"]
        assert [t.host_id for t in scheduler.last_tasks] == ["a"]

    def test_no_reachable_hosts(self) -> None:
        executor = FakeExecutor(unreachable={"a"})
        scheduler = _scheduler_with(_ok, executor)
        assert scheduler.collect([make_host("a")], per_task_timeout=1) == []
        assert scheduler.last_tasks == []

    def test_empty_host_list(self) -> None:
        assert _scheduler_with(_ok).collect([], per_task_timeout=1) == []

    def test_failure_is_isolated(self) -> None:
        def collect(executor, host, timeout):
            if host.host_id == "bad":
                raise RemoteConnectionError("refused")
            if host.host_id == "weird":
                raise KeyError("boom")
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect)
        samples = scheduler.collect([make_host("bad"), make_host("good"), make_host("weird")], per_task_timeout=2)
        assert [s.host_id for s in samples] == ["good"]
        states = {t.host_id: t.state for t in scheduler.last_tasks}
        assert states == {"bad": "failed", "good": "completed", "weird": "failed"}

    def test_parse_error_marks_failed(self) -> None:
        def collect(executor, host, timeout):
            raise MetricsParseError("garbage")

        scheduler = _scheduler_with(collect)
        assert scheduler.collect([make_host("a")], per_task_timeout=1) == []
        assert scheduler.last_tasks[0].state == "failed"
        assert "garbage" in scheduler.last_tasks[0].error

    def test_transport_timeout_marks_timed_out(self) -> None:
        def collect(executor, host, timeout):
            raise RemoteTimeoutError("timed out", timeout=timeout)

        scheduler = _scheduler_with(collect)
        assert scheduler.collect([make_host("a")], per_task_timeout=1) == []
        assert scheduler.last_tasks[0].state == "timed_out"

    def test_slow_task_is_excluded(self) -> None:
        release = threading.Event()

        def collect(executor, host, timeout):
            if host.host_id == "slow":
                release.wait(5)
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect)
        started = time.monotonic()
        samples = scheduler.collect([make_host("fast"), make_host("slow")], per_task_timeout=0.2)
        elapsed = time.monotonic() - started
        release.set()

        assert [s.host_id for s in samples] == ["fast"]
        assert elapsed < 2
        states = {t.host_id: t.state for t in scheduler.last_tasks}
        assert states == {"fast": "completed", "slow": "timed_out"}

    def test_late_result_never_merged(self) -> None:
        finished = threading.Event()

        def collect(executor, host, timeout):
            time.sleep(0.3)
            finished.set()
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect)
        samples = scheduler.collect([make_host("a")], per_task_timeout=0.05)
        assert samples == []
        assert finished.wait(2)
        task = scheduler.last_tasks[0]
        assert task.state == "timed_out"
        assert task.sample is None

    def test_result_past_deadline_excluded_between_watchdog_ticks(self) -> None:
        def collect(executor, host, timeout):
            time.sleep(0.35)
            return make_sample(host.host_id)

        scheduler = CollectionScheduler(
            FakeExecutor(),
            probe_timeout=0.1,
            collect_fn=collect,
            watchdog_interval=0.5,
        )
        samples = scheduler.collect([make_host("a")], per_task_timeout=0.2)
        assert samples == []
        task = scheduler.last_tasks[0]
        assert task.state == "timed_out"
        assert task.sample is None

    def test_queued_host_gets_full_budget_after_hung_neighbour(self) -> None:
        def collect(executor, host, timeout):
            if host.host_id == "slow":
                time.sleep(0.4)
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect, max_concurrency=1)
        samples = scheduler.collect([make_host("slow"), make_host("fast")], per_task_timeout=0.2)
        assert [s.host_id for s in samples] == ["fast"]
        states = {t.host_id: t.state for t in scheduler.last_tasks}
        assert states == {"slow": "timed_out", "fast": "completed"}

    def test_probes_run_concurrently(self) -> None:
        class SlowProbeExecutor(FakeExecutor):
            def probe(self, host, timeout):
                time.sleep(0.3)
                return super().probe(host, timeout)

        executor = SlowProbeExecutor(unreachable={"h1", "h2", "h3"})
        scheduler = _scheduler_with(_ok, executor, max_concurrency=4)
        started = time.monotonic()
        reachable = scheduler.reachable_hosts([make_host(f"h{i}") for i in range(4)])
        elapsed = time.monotonic() - started
        assert [h.host_id for h in reachable] == ["h0"]
        assert sorted(executor.probed) == ["h0", "h1", "h2", "h3"]
        assert elapsed < 1.0

    def test_concurrency_bounded(self) -> None:
        lock = threading.Lock()
        active = 0
        peak = 0

        def collect(executor, host, timeout):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect, max_concurrency=2)
        hosts = [make_host(f"h{i}") for i in range(6)]
        samples = scheduler.collect(hosts, per_task_timeout=2)
        assert len(samples) == 6
        assert peak <= 2

    def test_tasks_run_concurrently(self) -> None:
        barrier = threading.Barrier(3, timeout=2)

        def collect(executor, host, timeout):
            barrier.wait()
            return make_sample(host.host_id)

        scheduler = _scheduler_with(collect, max_concurrency=3)
        samples = scheduler.collect([make_host("a"), make_host("b"), make_host("c")], per_task_timeout=3)
        assert len(samples) == 3

    def test_invalid_concurrency_raises(self) -> None:
        with pytest.raises(ValueError):
            _scheduler_with(_ok, max_concurrency=0)


class TestFromConfig:
    def test_uses_config_values(self, fleet_config) -> None:
        scheduler = CollectionScheduler.from_config(fleet_config, FakeExecutor())
        assert scheduler.max_concurrency == 4
        assert scheduler.probe_timeout == 0.5
