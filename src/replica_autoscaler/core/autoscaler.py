#!/usr/bin/env python3
"""
Autoscaler evaluation cycle

One cycle takes a workload through observe, sample, aggregate, decide,
stabilize, execute and commit. Failures never escape a cycle: they are
turned into a CycleResult, an event and a Prometheus counter, and the
last applied decision stays in effect.
"""

import itertools
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..events import EventRecorder, EventType
from ..models import CycleResult, CycleStatus, ScaleDirection, UtilizationSnapshot
from .aggregator import UtilizationAggregator
from .exceptions import (
    AutoscalerError,
    CycleTimeout,
    ExecutionError,
    InsufficientData,
    MetricsUnavailable,
    WorkloadNotFound,
)
from .executor import ScaleExecutor
from .logging_config import get_logger, log_section, log_separator
from .metrics import (
    CURRENT_REPLICAS,
    CYCLE_DURATION,
    CYCLE_ERRORS,
    CYCLE_RESULTS,
    DESIRED_REPLICAS,
    MISSED_CYCLES,
    SCALING_DECISIONS,
)
from .registry import WorkloadRegistry, WorkloadState
from .sampler import MetricSampler
from .scaling import ScalingDecisionEngine
from .stabilization import StabilizationWindow

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Autoscaler:
    """Runs evaluation cycles for registered workloads"""

    def __init__(self, registry: WorkloadRegistry, sampler: MetricSampler,
                 aggregator: UtilizationAggregator, engine: ScalingDecisionEngine,
                 window: StabilizationWindow, executor: ScaleExecutor,
                 recorder: Optional[EventRecorder] = None,
                 clock: Callable[[], datetime] = _utcnow,
                 monotonic: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.sampler = sampler
        self.aggregator = aggregator
        self.engine = engine
        self.window = window
        self.executor = executor
        self.recorder = recorder or EventRecorder()
        self.clock = clock
        self.monotonic = monotonic
        self._cycle_counter = itertools.count(1)

    def run_cycle(self, workload_id: str, deadline: Optional[float] = None) -> CycleResult:
        """
        Run one evaluation cycle for a workload

        Args:
            workload_id: Registered workload id
            deadline: Monotonic time by which the cycle must finish; checked
                      between stages and while retrying the scale call

        Returns:
            CycleResult describing the outcome

        Raises:
            WorkloadNotFound: The id is not registered
        """
        state = self.registry.get(workload_id)
        started_at = self.clock()

        if not state.spec.active:
            logger.debug(f"[{workload_id}] workload is disabled, not evaluating")
            result = CycleResult(workload_id=workload_id, status=CycleStatus.DISABLED,
                                 error=state.disabled_reason, started_at=started_at,
                                 finished_at=self.clock())
            self.registry.record_result(workload_id, result)
            return result

        if not state.try_begin_cycle():
            MISSED_CYCLES.labels(workload=workload_id).inc()
            self.recorder.record(EventType.MISSED_CYCLE, workload_id,
                                 "previous evaluation cycle still in flight")
            return CycleResult(workload_id=workload_id, status=CycleStatus.SKIPPED,
                               error="previous cycle still in flight",
                               started_at=started_at, finished_at=self.clock())

        log_separator(logger, f"CYCLE #{next(self._cycle_counter)} [{workload_id}]", 60)
        timer = self.monotonic()
        progress: Dict[str, Any] = {}
        try:
            result = self._evaluate(state, deadline, started_at, progress)
        except CycleTimeout as e:
            logger.warning(f"[{workload_id}] cycle timed out: {e.message}")
            CYCLE_ERRORS.labels(workload=workload_id, type="timeout").inc()
            result = self._failure(state, CycleStatus.TIMED_OUT, e, started_at, progress)
        except WorkloadNotFound as e:
            reason = f"scale target not found: {e.message}"
            self.registry.deactivate(workload_id, reason)
            self.sampler.forget(workload_id)
            self.recorder.record(EventType.WORKLOAD_DISABLED, workload_id, reason)
            CYCLE_ERRORS.labels(workload=workload_id, type="not_found").inc()
            result = self._failure(state, CycleStatus.DISABLED, e, started_at, progress)
        except MetricsUnavailable as e:
            self.recorder.record(EventType.FAILED_GET_RESOURCE_METRIC, workload_id, e.message)
            CYCLE_ERRORS.labels(workload=workload_id, type="metrics").inc()
            result = self._failure(state, CycleStatus.FAILED, e, started_at, progress)
        except InsufficientData as e:
            self.recorder.record(EventType.INSUFFICIENT_METRICS, workload_id, e.message)
            result = self._failure(state, CycleStatus.SKIPPED, e, started_at, progress)
        except ExecutionError as e:
            decision = progress.get("decision")
            self.recorder.record(EventType.FAILED_RESCALE, workload_id, e.message,
                                 desired=decision.desired_replicas if decision else None,
                                 status=e.status, transient=e.transient)
            CYCLE_ERRORS.labels(workload=workload_id,
                                type="conflict" if e.status == 409 else "execution").inc()
            result = self._failure(state, CycleStatus.FAILED, e, started_at, progress)
        except AutoscalerError as e:
            logger.error(f"[{workload_id}] cycle failed: {e.message}")
            CYCLE_ERRORS.labels(workload=workload_id, type=type(e).__name__).inc()
            result = self._failure(state, CycleStatus.FAILED, e, started_at, progress)
        except Exception as e:
            logger.exception(f"[{workload_id}] unexpected error in evaluation cycle: {e}")
            CYCLE_ERRORS.labels(workload=workload_id, type="unexpected").inc()
            result = self._failure(state, CycleStatus.FAILED, e, started_at, progress)
        finally:
            state.end_cycle()
            CYCLE_DURATION.observe(self.monotonic() - timer)

        self.registry.record_result(workload_id, result)
        CYCLE_RESULTS.labels(workload=workload_id, status=result.status.value).inc()
        logger.info(f"[{workload_id}] cycle finished: {result.status.value}")
        return result

    def run_all(self) -> List[CycleResult]:
        """Run one cycle for every active workload, sequentially"""
        return [self.run_cycle(state.workload_id) for state in self.registry.active()]

    def _failure(self, state: WorkloadState, status: CycleStatus, error: Exception,
                 started_at: datetime, progress: Dict[str, Any]) -> CycleResult:
        message = error.message if isinstance(error, AutoscalerError) else f"{type(error).__name__}: {error}"
        return CycleResult(workload_id=state.workload_id, status=status,
                           decision=progress.get("decision"), error=message,
                           started_at=started_at, finished_at=self.clock())

    def _check_deadline(self, deadline: Optional[float], workload_id: str, stage: str) -> None:
        if deadline is not None and self.monotonic() >= deadline:
            raise CycleTimeout(f"deadline passed before {stage}", workload_id)

    def _evaluate(self, state: WorkloadState, deadline: Optional[float],
                  started_at: datetime, progress: Dict[str, Any]) -> CycleResult:
        workload_id = state.workload_id

        log_section(logger, "OBSERVE")
        self._check_deadline(deadline, workload_id, "observe")
        try:
            self.registry.update_replicas(workload_id, self.executor.observe(state.spec, deadline=deadline))
        except WorkloadNotFound:
            raise
        except ExecutionError as e:
            logger.warning(f"[{workload_id}] could not read live replicas, "
                           f"using last known {state.spec.current_replicas}: {e.message}")
        workload = state.spec
        CURRENT_REPLICAS.labels(workload=workload_id).set(workload.current_replicas)

        log_section(logger, "METRICS COLLECTION")
        self._check_deadline(deadline, workload_id, "sampling")
        samples = self.sampler.sample(workload_id, deadline=deadline)

        self._check_deadline(deadline, workload_id, "aggregation")
        snapshots: List[UtilizationSnapshot] = []
        missing: List[str] = []
        for target in workload.metric_targets():
            try:
                snapshot = self.aggregator.aggregate(samples, target.kind)
            except InsufficientData as e:
                logger.warning(f"[{workload_id}] {e.message}")
                missing.append(str(target.kind))
                continue
            logger.info(f"[{workload_id}] {target.kind}: {snapshot.aggregated_value:.1f} "
                        f"over {snapshot.sample_count} replicas ({snapshot.excluded_count} excluded)")
            snapshots.append(snapshot)

        if not snapshots:
            raise InsufficientData(f"no usable samples for {', '.join(missing)}", workload_id)
        if missing:
            self.recorder.record(EventType.INSUFFICIENT_METRICS, workload_id,
                                 f"no usable samples for {', '.join(missing)}; scale-down disabled",
                                 metrics=missing)

        log_section(logger, "SCALING DECISION")
        self._check_deadline(deadline, workload_id, "decision")
        decision = self.engine.decide_many(snapshots, workload, scale_down_allowed=not missing,
                                           now=self.clock())
        progress["decision"] = decision
        self.registry.record_decision(workload_id, decision)
        SCALING_DECISIONS.labels(workload=workload_id, direction=decision.direction.value).inc()
        DESIRED_REPLICAS.labels(workload=workload_id).set(decision.desired_replicas)
        self.recorder.record(EventType.DESIRED_REPLICAS_COMPUTED, workload_id, decision.reason,
                             current=decision.current_replicas, desired=decision.desired_replicas,
                             direction=decision.direction.value, metrics=decision.metric_values)

        if decision.direction == ScaleDirection.NONE:
            return CycleResult(workload_id=workload_id, status=CycleStatus.UNCHANGED, decision=decision,
                               started_at=started_at, finished_at=self.clock())

        verdict = self.window.evaluate(decision, state.stabilization, now=decision.decided_at)
        if not verdict.approved:
            self.recorder.record(EventType.SCALE_SUPPRESSED, workload_id, verdict.reason,
                                 desired=decision.desired_replicas, direction=decision.direction.value)
            return CycleResult(workload_id=workload_id, status=CycleStatus.SUPPRESSED, decision=decision,
                               error=verdict.reason, started_at=started_at, finished_at=self.clock())

        log_section(logger, "SCALING EXECUTION")
        self._check_deadline(deadline, workload_id, "execution")
        ack = self.executor.apply(decision, deadline=deadline)

        stabilization = self.window.commit(state.stabilization, decision.direction, self.clock())
        self.registry.commit_scale(workload_id, decision, ack.requested_replicas, stabilization)
        prefix = "dry-run, " if ack.dry_run else ""
        self.recorder.record(EventType.SUCCESSFUL_RESCALE, workload_id,
                             f"{prefix}new size: {ack.requested_replicas}; reason: {decision.reason}",
                             previous=decision.current_replicas, replicas=ack.requested_replicas,
                             observed=ack.observed_replicas, attempts=ack.attempts, dry_run=ack.dry_run)

        return CycleResult(workload_id=workload_id, status=CycleStatus.SCALED, decision=decision, ack=ack,
                           started_at=started_at, finished_at=self.clock())
