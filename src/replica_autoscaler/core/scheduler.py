#!/usr/bin/env python3
"""
Fixed-interval evaluation scheduler

Cycles are blocking (Kubernetes and HTTP calls), so each one runs in a
thread pool while the asyncio loop keeps the tick, bounds concurrency
with a semaphore and enforces the per-cycle timeout.
"""

import asyncio
import concurrent.futures
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..events import EventRecorder, EventType
from ..models import CycleResult, CycleStatus
from .autoscaler import Autoscaler
from .logging_config import get_logger
from .metrics import MISSED_CYCLES
from .registry import WorkloadRegistry

logger = get_logger(__name__)


class EvaluationScheduler:
    """Runs one evaluation cycle per active workload every interval"""

    def __init__(self, autoscaler: Autoscaler, registry: WorkloadRegistry,
                 interval: float = 15, cycle_timeout: float = 10,
                 max_concurrency: int = 8, recorder: Optional[EventRecorder] = None,
                 monotonic: Callable[[], float] = time.monotonic):
        """
        Initialize the scheduler

        Args:
            autoscaler: Runs the individual cycles
            registry: Source of active workloads
            interval: Seconds between ticks
            cycle_timeout: Seconds a single cycle may take before it is
                           abandoned and counted as missed
            max_concurrency: Maximum cycles running at the same time
            recorder: Event recorder for missed cycles (defaults to the autoscaler's)
            monotonic: Monotonic clock used for deadlines
        """
        if interval <= 0 or cycle_timeout <= 0:
            raise ValueError("interval and cycle_timeout must be > 0")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.autoscaler = autoscaler
        self.registry = registry
        self.interval = interval
        self.cycle_timeout = cycle_timeout
        self.max_concurrency = max_concurrency
        self.recorder = recorder or autoscaler.recorder
        self.monotonic = monotonic

        # Thread pool for blocking cycle work
        self.thread_pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_concurrency,
            thread_name_prefix="evaluation"
        )

        self.tick_count = 0
        self.last_tick_at: Optional[datetime] = None
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._lock = threading.Lock()

        logger.info(f"EvaluationScheduler initialized: interval={interval}s, "
                    f"cycle_timeout={cycle_timeout}s, max_concurrency={max_concurrency}")

    @property
    def running(self) -> bool:
        return self._running

    def _missed(self, workload_id: str, reason: str) -> None:
        MISSED_CYCLES.labels(workload=workload_id).inc()
        self.recorder.record(EventType.MISSED_CYCLE, workload_id, reason)

    async def _run_cycle(self, workload_id: str, semaphore: asyncio.Semaphore) -> Optional[CycleResult]:
        """Run one cycle in the thread pool under the semaphore and timeout"""
        async with semaphore:
            deadline = self.monotonic() + self.cycle_timeout
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(self.thread_pool, self.autoscaler.run_cycle, workload_id, deadline)
            try:
                return await asyncio.wait_for(future, timeout=self.cycle_timeout)
            except asyncio.TimeoutError:
                # The worker thread finishes on its own; the in-flight flag
                # keeps the next tick from starting a second cycle meanwhile.
                reason = f"cycle overran its {self.cycle_timeout:g}s timeout"
                logger.warning(f"[{workload_id}] {reason}")
                self._missed(workload_id, reason)
                return CycleResult(workload_id=workload_id, status=CycleStatus.TIMED_OUT, error=reason,
                                   finished_at=datetime.now(timezone.utc))
            except Exception as e:
                logger.error(f"[{workload_id}] cycle could not be run: {e}")
                return None

    async def tick(self) -> List[CycleResult]:
        """
        Launch one cycle per active workload and wait for all of them

        Workloads whose previous cycle is still running are skipped and
        counted as missed; missed cycles are not queued.

        Returns:
            Results of the cycles that ran
        """
        with self._lock:
            self.tick_count += 1
            self.last_tick_at = datetime.now(timezone.utc)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = []
        for state in self.registry.active():
            if state.in_flight:
                logger.warning(f"[{state.workload_id}] previous cycle still in flight, skipping this tick")
                self._missed(state.workload_id, "previous evaluation cycle still in flight")
                continue
            tasks.append(self._run_cycle(state.workload_id, semaphore))

        if not tasks:
            logger.debug("No active workloads to evaluate")
            return []

        results = await asyncio.gather(*tasks)
        return [result for result in results if result is not None]

    def run_once(self) -> List[CycleResult]:
        """Evaluate all active workloads once from synchronous code"""
        return asyncio.run(self.tick())

    async def run(self) -> None:
        """Tick every interval until stop() is called"""
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._running = True
        logger.info(f"Starting evaluation loop (every {self.interval:g}s)")

        try:
            while self._running:
                started = self.monotonic()
                try:
                    results = await self.tick()
                    if results:
                        summary = ", ".join(f"{r.workload_id}={r.status.value}" for r in results)
                        logger.info(f"Tick #{self.tick_count} complete: {summary}")
                except Exception as e:
                    logger.error(f"Error in evaluation tick: {e}")

                wait = max(0.0, self.interval - (self.monotonic() - started))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Evaluation loop stopped")

    def stop(self) -> None:
        """Stop the loop after the current tick; safe to call from any thread"""
        self._running = False
        if self._loop is not None and self._stop_event is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop_event.set)

    def shutdown(self) -> None:
        self.stop()
        self.thread_pool.shutdown(wait=False)
        logger.info("EvaluationScheduler shut down")
