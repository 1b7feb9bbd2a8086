"""Concurrent, time-boxed metrics collection across the fleet.

The CollectionScheduler probes every host, fans out one CollectionTask per
reachable host onto a bounded thread pool, and joins them at a single
watchdog barrier. Each task reports through its own CollectionTask slot;
only slots that reached ``completed`` contribute a sample.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from fleet_remediator.collector import collect_host_metrics
from fleet_remediator.config import FleetConfig
from fleet_remediator.exceptions import FleetError, RemoteTimeoutError
from fleet_remediator.executor import RemoteExecutor
from fleet_remediator.models import CollectionTask, HostDescriptor, MetricsSample

logger = logging.getLogger(__name__)

WATCHDOG_INTERVAL = 0.1

CollectFn = Callable[[RemoteExecutor, HostDescriptor, float], MetricsSample]


class CollectionScheduler:
    """Fans collection out over the fleet with bounded concurrency."""

    def __init__(
        self,
        executor: RemoteExecutor,
        max_concurrency: int = 8,
        probe_timeout: float = 3.0,
        collect_fn: CollectFn = collect_host_metrics,
        watchdog_interval: float = WATCHDOG_INTERVAL,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.executor = executor
        self.max_concurrency = max_concurrency
        self.probe_timeout = probe_timeout
        self.collect_fn = collect_fn
        self.watchdog_interval = watchdog_interval
        self.last_tasks: list[CollectionTask] = []

    @classmethod
    def from_config(cls, config: FleetConfig, executor: RemoteExecutor) -> CollectionScheduler:
        return cls(
            executor,
            max_concurrency=config.max_concurrency,
            probe_timeout=config.probe_timeout,
        )

    def reachable_hosts(self, hosts: Iterable[HostDescriptor]) -> list[HostDescriptor]:
        """Return the hosts that pass the reachability probe, logging the rest.

        Probes run on a pool of ``max_concurrency`` workers, so dead hosts cost
        roughly one ``probe_timeout`` per batch rather than one each.
        """
        hosts = list(hosts)
        if not hosts:
            return []
        with ThreadPoolExecutor(
            max_workers=min(self.max_concurrency, len(hosts)),
            thread_name_prefix="probe",
        ) as pool:
            results = list(pool.map(lambda h: self.executor.probe(h, self.probe_timeout), hosts))
        reachable: list[HostDescriptor] = []
        for host, ok in zip(hosts, results):
            if ok:
                reachable.append(host)
            else:
                logger.warning("Host %s is unreachable, skipping collection", host.host_id)
        return reachable

    def _run_task(self, task: CollectionTask, host: HostDescriptor, timeout: float) -> None:
        if not task.start(timeout):
            return
        try:
            sample = self.collect_fn(self.executor, host, timeout)
        except RemoteTimeoutError as exc:
            task.finish("timed_out", error=str(exc))
        except FleetError as exc:
            task.finish("failed", error=str(exc))
        except Exception as exc:
            logger.error("Unexpected error collecting from %s: %s", host.host_id, exc)
            task.finish("failed", error=f"{type(exc).__name__}: {exc}")
        else:
            if not task.finish("completed", sample=sample):
                logger.info("Discarding late result from %s", host.host_id)

    def _join(self, futures: dict[Future, CollectionTask], timeout: float) -> None:
        pending = set(futures)
        while any(not task.is_terminal for task in futures.values()):
            done, pending = wait(pending, timeout=self.watchdog_interval, return_when=FIRST_COMPLETED)
            now = time.monotonic()
            for future, task in futures.items():
                if task.is_overdue(now):
                    task.finish("timed_out", error=f"no result within {timeout}s")
                    future.cancel()
                elif future in done and not task.is_terminal:
                    # worker exited without reporting; only possible if start() was refused
                    task.finish("failed", error="task ended without a result")

    def collect(self, hosts: Iterable[HostDescriptor], per_task_timeout: float) -> list[MetricsSample]:
        """Collect one sample from every reachable host.

        Unreachable hosts get no task. Tasks that fail or exceed
        ``per_task_timeout`` (measured from when the task starts running)
        contribute nothing.

        A timed-out task keeps its pool slot until ``collect_fn`` returns, so
        with more hosts than ``max_concurrency`` the queued hosts start late.
        Each still gets its full budget once running. The default collector
        passes the timeout to ssh, which bounds the wait to one
        ``per_task_timeout`` per slot. A custom ``collect_fn`` must honour its
        ``timeout`` argument for the same bound to hold.

        Args:
            hosts: Hosts to collect from.
            per_task_timeout: Seconds each task may run.

        Returns:
            Samples of completed tasks, sorted by host id.
        """
        reachable = self.reachable_hosts(hosts)
        self.last_tasks = [CollectionTask(host_id=h.host_id) for h in reachable]
        if not reachable:
            logger.warning("No reachable hosts, nothing to collect")
            return []

        pool = ThreadPoolExecutor(
            max_workers=min(self.max_concurrency, len(reachable)),
            thread_name_prefix="collect",
        )
        try:
            futures = {
                pool.submit(self._run_task, task, host, per_task_timeout): task
                for task, host in zip(self.last_tasks, reachable)
            }
            self._join(futures, per_task_timeout)
        finally:
            # overdue workers are not joined; their ssh child is killed by its own timeout
            pool.shutdown(wait=False, cancel_futures=True)

        for task in self.last_tasks:
            if task.state == "timed_out":
                logger.warning("Collection from %s timed out: %s", task.host_id, task.error)
            elif task.state == "failed":
                logger.warning("Collection from %s failed: %s", task.host_id, task.error)

        samples = [t.sample for t in self.last_tasks if t.state == "completed" and t.sample is not None]
        logger.info("Collected %d/%d samples (%d reachable)", len(samples), len(self.last_tasks), len(reachable))
        return sorted(samples, key=lambda s: s.host_id)
