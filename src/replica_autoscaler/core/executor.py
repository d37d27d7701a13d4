#!/usr/bin/env python3
"""
Scale executor module for applying replica counts to workloads

Transient failures (conflicts, throttling, server errors) are retried with
bounded exponential backoff; fatal failures surface immediately.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

import requests
from kubernetes import client
from kubernetes.client.rest import ApiException

from ..models import ScaleAck, ScalingDecision, WorkloadSpec
from .exceptions import (
    CycleTimeout,
    ExecutionConflict,
    ExecutionError,
    TransientExecutionError,
    WorkloadNotFound,
)
from .logging_config import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_status(status: Optional[int], message: str, workload_id: str) -> ExecutionError:
    """Map an HTTP status from a scale call to an execution error"""
    if status == 409:
        return ExecutionConflict(f"Conflict updating scale: {message}", workload_id, status=status)
    if status == 404:
        return WorkloadNotFound(f"Scale target not found: {message}", workload_id, status=status)
    if status is None or status in TRANSIENT_STATUSES:
        return TransientExecutionError(f"Transient scale failure: {message}", workload_id, status=status)
    return ExecutionError(f"Scale failure ({status}): {message}", workload_id, status=status)


class ScaleTarget:
    """Interface for the workload controller behind the scale subresource"""

    def read_replicas(self, workload: WorkloadSpec, timeout: Optional[float] = None) -> int:
        raise NotImplementedError

    def patch_replicas(self, workload: WorkloadSpec, replicas: int,
                       timeout: Optional[float] = None) -> None:
        raise NotImplementedError


class KubernetesScaleTarget(ScaleTarget):
    """Reads and patches the scale subresource through AppsV1Api"""

    def __init__(self, apps_api=None, request_timeout: float = 5):
        self.apps_api = apps_api or client.AppsV1Api()
        self.request_timeout = request_timeout

    def _call(self, verb: str, workload: WorkloadSpec, timeout: Optional[float], *args):
        plural = {
            "Deployment": "deployment",
            "StatefulSet": "stateful_set",
            "ReplicaSet": "replica_set",
        }[workload.kind]
        method = getattr(self.apps_api, f"{verb}_namespaced_{plural}_scale")
        timeout = self.request_timeout if timeout is None else min(timeout, self.request_timeout)
        try:
            return method(workload.target_name, workload.namespace, *args, _request_timeout=timeout)
        except ApiException as e:
            raise classify_status(e.status, str(e.reason), workload.workload_id) from e
        except Exception as e:
            # urllib3 connection errors and the like
            raise classify_status(None, str(e), workload.workload_id) from e

    def read_replicas(self, workload: WorkloadSpec, timeout: Optional[float] = None) -> int:
        scale = self._call("read", workload, timeout)
        return int(scale.spec.replicas or 0)

    def patch_replicas(self, workload: WorkloadSpec, replicas: int,
                       timeout: Optional[float] = None) -> None:
        self._call("patch", workload, timeout, {"spec": {"replicas": replicas}})


class HttpScaleTarget(ScaleTarget):
    """
    Reads and patches a scale endpoint over HTTP

    GET   {base}/workloads/{id}/scale -> {"replicas": N}
    PATCH {base}/workloads/{id}/scale    {"replicas": N}
    """

    def __init__(self, base_url: str, timeout: int = 5, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, workload: WorkloadSpec, timeout: Optional[float] = None, **kwargs):
        url = f"{self.base_url}/workloads/{workload.workload_id}/scale"
        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise classify_status(status, str(e), workload.workload_id) from e
        except requests.exceptions.RequestException as e:
            raise classify_status(None, str(e), workload.workload_id) from e

    def read_replicas(self, workload: WorkloadSpec, timeout: Optional[float] = None) -> int:
        return int(self._request("GET", workload, timeout).json()["replicas"])

    def patch_replicas(self, workload: WorkloadSpec, replicas: int,
                       timeout: Optional[float] = None) -> None:
        self._request("PATCH", workload, timeout, json={"replicas": replicas})


class ScaleExecutor:
    """Applies approved decisions to the scale target"""

    def __init__(self, target: ScaleTarget, workload_lookup: Callable[[str], WorkloadSpec],
                 max_attempts: int = 3, base_delay: float = 0.2, dry_run: bool = False,
                 sleep: Callable[[float], None] = time.sleep,
                 monotonic: Callable[[], float] = time.monotonic):
        """
        Initialize the scale executor

        Args:
            target: Scale subresource backend
            workload_lookup: Returns the WorkloadSpec for a workload id
            max_attempts: Attempts for transient failures (including the first)
            base_delay: Backoff before the second attempt, doubled afterwards
            dry_run: Acknowledge without patching
            sleep: Sleep function (injected in tests)
            monotonic: Monotonic clock used against cycle deadlines
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.target = target
        self.workload_lookup = workload_lookup
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.dry_run = dry_run
        self.sleep = sleep
        self.monotonic = monotonic

    def _remaining(self, deadline: Optional[float], workload_id: str, action: str) -> Optional[float]:
        """Seconds left before the deadline, used as the request timeout"""
        if deadline is None:
            return None
        remaining = deadline - self.monotonic()
        if remaining <= 0:
            raise CycleTimeout(f"deadline passed before {action}", workload_id)
        return remaining

    def observe(self, workload: WorkloadSpec, deadline: Optional[float] = None) -> int:
        """Read the live replica count of a workload"""
        timeout = self._remaining(deadline, workload.workload_id, "reading replicas")
        return self.target.read_replicas(workload, timeout=timeout)

    def apply(self, decision: ScalingDecision, deadline: Optional[float] = None) -> ScaleAck:
        """
        Apply a decision's desired replica count

        Args:
            decision: Approved scaling decision
            deadline: Monotonic time after which no further attempt is made;
                      each call to the target is bounded by the time left

        Returns:
            ScaleAck with the replica count observed after patching

        Raises:
            ExecutionConflict / TransientExecutionError: Retries exhausted
            WorkloadNotFound: The scale target is gone (not retried)
            ExecutionError: Any other non-transient failure (not retried)
            CycleTimeout: The deadline passed before the patch succeeded
        """
        workload = self.workload_lookup(decision.workload_id)
        replicas = decision.desired_replicas

        if self.dry_run:
            logger.info(f"[{workload.workload_id}] dry-run: would scale to {replicas}")
            return ScaleAck(workload_id=workload.workload_id, requested_replicas=replicas,
                            observed_replicas=None, attempts=0, dry_run=True, applied_at=_utcnow())

        attempt = 0
        while True:
            attempt += 1
            try:
                timeout = self._remaining(deadline, workload.workload_id, "patching replicas")
                self.target.patch_replicas(workload, replicas, timeout=timeout)
                break
            except TransientExecutionError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"[{workload.workload_id}] giving up after {attempt} attempts: {e}")
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                if deadline is not None and self.monotonic() + delay > deadline:
                    raise CycleTimeout(f"Deadline reached while retrying scale: {e}", workload.workload_id) from e
                logger.warning(f"[{workload.workload_id}] attempt {attempt}/{self.max_attempts} failed: {e}; "
                               f"retrying in {delay:.2f}s")
                self.sleep(delay)
            except ExecutionError as e:
                logger.error(f"[{workload.workload_id}] scale to {replicas} failed: {e}")
                raise

        observed = None
        try:
            timeout = self._remaining(deadline, workload.workload_id, "reading back replicas")
            observed = self.target.read_replicas(workload, timeout=timeout)
        except (ExecutionError, CycleTimeout) as e:
            logger.warning(f"[{workload.workload_id}] could not read back scale after patch: {e}")

        if observed is not None and observed != replicas:
            logger.warning(f"[{workload.workload_id}] scale not yet converged: requested {replicas}, observed {observed}")

        logger.info(f"[{workload.workload_id}] scaled to {replicas} (attempts={attempt})")
        return ScaleAck(workload_id=workload.workload_id, requested_replicas=replicas,
                        observed_replicas=observed, attempts=attempt, dry_run=False, applied_at=_utcnow())
