#!/usr/bin/env python3
"""
Workload registry

Owns one WorkloadState per registered workload. All per-workload state
(spec, stabilization timestamps, last decision, in-flight flag) lives
here and is only reached through the registry's API.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..models import CycleResult, CycleStatus, ScalingDecision, StabilizationState, WorkloadSpec
from .exceptions import InvalidConfiguration, WorkloadNotFound
from .logging_config import get_logger

logger = get_logger(__name__)


class WorkloadState:
    """Mutable per-workload state; mutate only through WorkloadRegistry"""

    def __init__(self, spec: WorkloadSpec, stabilization: Optional[StabilizationState] = None):
        self.spec = spec
        self.stabilization = stabilization or StabilizationState(workload_id=spec.workload_id)
        self.last_decision: Optional[ScalingDecision] = None
        self.last_applied: Optional[ScalingDecision] = None
        self.last_result: Optional[CycleResult] = None
        self.disabled_reason: Optional[str] = None
        self.consecutive_failures = 0
        self.registered_at = datetime.now(timezone.utc)
        self.lock = threading.RLock()
        self._in_flight = False

    @property
    def workload_id(self) -> str:
        return self.spec.workload_id

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def try_begin_cycle(self) -> bool:
        """Claim the workload for one cycle; False if a cycle is already running"""
        with self.lock:
            if self._in_flight:
                return False
            self._in_flight = True
            return True

    def end_cycle(self) -> None:
        with self.lock:
            self._in_flight = False

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "workload_id": self.workload_id,
                "spec": self.spec.model_dump(mode="json"),
                "active": self.spec.active,
                "disabled_reason": self.disabled_reason,
                "in_flight": self._in_flight,
                "consecutive_failures": self.consecutive_failures,
                "stabilization": self.stabilization.model_dump(mode="json"),
                "last_decision": self.last_decision.model_dump(mode="json") if self.last_decision else None,
                "last_applied": self.last_applied.model_dump(mode="json") if self.last_applied else None,
                "last_result": self.last_result.model_dump(mode="json") if self.last_result else None,
            }


class WorkloadRegistry:
    """Registry of workloads keyed by workload id"""

    def __init__(self, store=None):
        """
        Initialize the registry

        Args:
            store: Optional StabilizationStore; stabilization state is loaded
                   from it on registration and written through on commit
        """
        self.store = store
        self._workloads: Dict[str, WorkloadState] = {}
        self._lock = threading.Lock()

    def register(self, spec: Union[WorkloadSpec, Dict[str, Any]]) -> WorkloadState:
        """
        Register or reconfigure a workload

        Re-registering an existing id replaces its spec, re-enables it and
        keeps its stabilization state.

        Raises:
            InvalidConfiguration: The spec failed validation (e.g. min > max)
        """
        try:
            if isinstance(spec, WorkloadSpec):
                spec = WorkloadSpec.model_validate(spec.model_dump())
            else:
                spec = WorkloadSpec.model_validate(spec)
        except ValidationError as e:
            workload_id = spec.get("workload_id") or spec.get("workloadId") if isinstance(spec, dict) else None
            raise InvalidConfiguration(f"Invalid workload configuration: {e}", workload_id) from e

        with self._lock:
            state = self._workloads.get(spec.workload_id)
            if state is not None:
                with state.lock:
                    state.spec = spec
                    state.disabled_reason = None if spec.active else state.disabled_reason
                    state.consecutive_failures = 0
                logger.info(f"[{spec.workload_id}] workload reconfigured")
                return state

            stabilization = self._load_stabilization(spec.workload_id)
            state = WorkloadState(spec, stabilization)
            self._workloads[spec.workload_id] = state

        logger.info(
            f"[{spec.workload_id}] workload registered: {spec.kind} {spec.namespace}/{spec.target_name}, "
            f"replicas [{spec.min_replicas}, {spec.max_replicas}], "
            f"targets {', '.join(f'{t.kind}={t.target:g}' for t in spec.metric_targets())}"
        )
        return state

    def _load_stabilization(self, workload_id: str) -> Optional[StabilizationState]:
        if self.store is None:
            return None
        state = self.store.load(workload_id)
        if state is not None:
            logger.info(f"[{workload_id}] restored stabilization state from store")
        return state

    def get(self, workload_id: str) -> WorkloadState:
        with self._lock:
            state = self._workloads.get(workload_id)
        if state is None:
            raise WorkloadNotFound(f"Workload {workload_id} is not registered", workload_id)
        return state

    def spec(self, workload_id: str) -> WorkloadSpec:
        """Current spec of a workload (used as lookup by the sampler and executor)"""
        return self.get(workload_id).spec

    def list(self) -> List[WorkloadState]:
        with self._lock:
            return list(self._workloads.values())

    def active(self) -> List[WorkloadState]:
        return [state for state in self.list() if state.spec.active]

    def __contains__(self, workload_id: str) -> bool:
        with self._lock:
            return workload_id in self._workloads

    def __len__(self) -> int:
        with self._lock:
            return len(self._workloads)

    def deactivate(self, workload_id: str, reason: str) -> WorkloadState:
        """Stop evaluating a workload; it stays registered"""
        state = self.get(workload_id)
        with state.lock:
            state.spec = state.spec.model_copy(update={"active": False})
            state.disabled_reason = reason
        logger.warning(f"[{workload_id}] workload deactivated: {reason}")
        return state

    def enable(self, workload_id: str) -> WorkloadState:
        state = self.get(workload_id)
        with state.lock:
            state.spec = state.spec.model_copy(update={"active": True})
            state.disabled_reason = None
            state.consecutive_failures = 0
        logger.info(f"[{workload_id}] workload enabled")
        return state

    def update_replicas(self, workload_id: str, replicas: int) -> None:
        state = self.get(workload_id)
        with state.lock:
            if state.spec.current_replicas != replicas:
                logger.debug(f"[{workload_id}] current replicas {state.spec.current_replicas} -> {replicas}")
                state.spec = state.spec.model_copy(update={"current_replicas": replicas})

    def record_decision(self, workload_id: str, decision: ScalingDecision) -> None:
        state = self.get(workload_id)
        with state.lock:
            state.last_decision = decision

    def commit_scale(self, workload_id: str, decision: ScalingDecision, replicas: int,
                     stabilization: StabilizationState) -> None:
        """
        Record a successfully executed scale action

        Updates the replica count, the last applied decision and the
        stabilization state together, then writes the state through to the
        store.
        """
        state = self.get(workload_id)
        with state.lock:
            state.spec = state.spec.model_copy(update={"current_replicas": replicas})
            state.last_applied = decision
            state.stabilization = stabilization
        if self.store is not None:
            self.store.save(stabilization)

    def record_result(self, workload_id: str, result: CycleResult) -> None:
        state = self.get(workload_id)
        with state.lock:
            state.last_result = result
            if result.status in (CycleStatus.FAILED, CycleStatus.TIMED_OUT):
                state.consecutive_failures += 1
            elif result.status != CycleStatus.DISABLED:
                state.consecutive_failures = 0
