#!/usr/bin/env python3
"""
Metric sampler module for gathering per-replica resource usage

The sampler polls a metrics source (metrics.k8s.io through the Kubernetes
API, or a plain HTTP endpoint) and turns the response into immutable
MetricSample records.
"""

import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import requests
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException

from ..models import MetricKind, MetricSample, WorkloadSpec
from .exceptions import CycleTimeout, MetricsUnavailable, WorkloadNotFound
from .logging_config import get_logger
from .quantity import parse_quantity

logger = get_logger(__name__)

RESOURCE_KEYS = ("cpu", "memory")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an RFC3339 timestamp as returned by metrics.k8s.io"""
    if not value:
        return _utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class PodObservation:
    """Usage and requests of one pod as reported by a metrics source"""
    pod_name: str
    ready: bool
    usage: Dict[str, float] = field(default_factory=dict)
    requests: Dict[str, float] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)


class MetricsSource:
    """Interface for metrics backends"""

    def fetch(self, workload: WorkloadSpec, kinds: List[MetricKind],
              timeout: Optional[float] = None) -> List[PodObservation]:
        raise NotImplementedError


class KubernetesMetricsSource(MetricsSource):
    """Reads pod usage from the metrics.k8s.io API and requests from the pod specs"""

    METRICS_GROUP = "metrics.k8s.io"
    METRICS_VERSION = "v1beta1"

    def __init__(self, in_cluster: bool = False, kubeconfig_path: Optional[str] = None,
                 core_api=None, apps_api=None, custom_api=None, request_timeout: float = 5):
        """
        Initialize the Kubernetes metrics source

        Args:
            in_cluster: Load the in-cluster service account config
            kubeconfig_path: Kubeconfig file used outside the cluster
            core_api: Optional CoreV1Api (injected in tests)
            apps_api: Optional AppsV1Api (injected in tests)
            custom_api: Optional CustomObjectsApi (injected in tests)
            request_timeout: Upper bound in seconds for each API call
        """
        if core_api is None or apps_api is None or custom_api is None:
            load_kubernetes_config(in_cluster, kubeconfig_path)
        self.core_api = core_api or client.CoreV1Api()
        self.apps_api = apps_api or client.AppsV1Api()
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.request_timeout = request_timeout

    def fetch(self, workload: WorkloadSpec, kinds: List[MetricKind],
              timeout: Optional[float] = None) -> List[PodObservation]:
        for kind in kinds:
            if not kind.is_resource:
                logger.warning(f"[{workload.workload_id}] metric {kind} is not served by metrics.k8s.io, ignoring")

        timeout = self.request_timeout if timeout is None else min(timeout, self.request_timeout)

        # Only the scale subresource identifies the workload itself
        try:
            selector = self._get_selector(workload, timeout)
        except ApiException as e:
            if e.status == 404:
                raise WorkloadNotFound(
                    f"{workload.kind} {workload.namespace}/{workload.target_name} not found",
                    workload.workload_id, status=404,
                ) from e
            raise MetricsUnavailable(f"Kubernetes API error: {e.status} {e.reason}", workload.workload_id) from e
        except Exception as e:
            raise MetricsUnavailable(f"Kubernetes API unreachable: {e}", workload.workload_id) from e

        try:
            pods = self.core_api.list_namespaced_pod(workload.namespace, label_selector=selector,
                                                     _request_timeout=timeout)
            pod_metrics = self.custom_api.list_namespaced_custom_object(
                self.METRICS_GROUP,
                self.METRICS_VERSION,
                workload.namespace,
                "pods",
                label_selector=selector,
                _request_timeout=timeout,
            )
        except ApiException as e:
            if e.status == 404:
                raise MetricsUnavailable(
                    f"{self.METRICS_GROUP}/{self.METRICS_VERSION} is not served: {e.reason}",
                    workload.workload_id,
                ) from e
            raise MetricsUnavailable(f"Kubernetes API error: {e.status} {e.reason}", workload.workload_id) from e
        except Exception as e:
            raise MetricsUnavailable(f"Kubernetes API unreachable: {e}", workload.workload_id) from e

        usage_by_pod = {}
        for item in pod_metrics.get("items", []):
            name = item.get("metadata", {}).get("name")
            usage = {key: 0.0 for key in RESOURCE_KEYS}
            for container in item.get("containers", []):
                for key in RESOURCE_KEYS:
                    if key in container.get("usage", {}):
                        usage[key] += parse_quantity(key, container["usage"][key])
            usage_by_pod[name] = (usage, _parse_timestamp(item.get("timestamp")))

        observations = []
        for pod in pods.items:
            pod_name = pod.metadata.name
            if pod.metadata.deletion_timestamp is not None:
                logger.debug(f"[{workload.workload_id}] skipping terminating pod {pod_name}")
                continue
            if pod.status.phase in ("Failed", "Succeeded"):
                continue
            if pod_name not in usage_by_pod:
                logger.debug(f"[{workload.workload_id}] no metrics reported for pod {pod_name}")
                continue

            usage, timestamp = usage_by_pod[pod_name]
            observations.append(PodObservation(
                pod_name=pod_name,
                ready=self._is_ready(pod),
                usage=usage,
                requests=self._get_requests(pod),
                timestamp=timestamp,
            ))

        logger.debug(f"[{workload.workload_id}] {len(observations)} pods observed via metrics.k8s.io")
        return observations

    def _get_selector(self, workload: WorkloadSpec, timeout: Optional[float]) -> str:
        """Resolve the pod label selector from the scale subresource"""
        readers = {
            "Deployment": self.apps_api.read_namespaced_deployment_scale,
            "StatefulSet": self.apps_api.read_namespaced_stateful_set_scale,
            "ReplicaSet": self.apps_api.read_namespaced_replica_set_scale,
        }
        scale = readers[workload.kind](workload.target_name, workload.namespace, _request_timeout=timeout)
        return scale.status.selector or ""

    @staticmethod
    def _is_ready(pod) -> bool:
        for condition in pod.status.conditions or []:
            if condition.type == "Ready":
                return condition.status == "True"
        return False

    @staticmethod
    def _get_requests(pod) -> Dict[str, float]:
        """Sum container requests; a resource is only reported if every container requests it"""
        totals = {}
        containers = pod.spec.containers or []
        for key in RESOURCE_KEYS:
            values = []
            for container in containers:
                requested = (container.resources.requests or {}) if container.resources else {}
                if key not in requested:
                    break
                values.append(parse_quantity(key, requested[key]))
            else:
                if values:
                    totals[key] = sum(values)
        return totals


class HttpMetricsSource(MetricsSource):
    """
    Reads pod usage from a plain HTTP metrics endpoint

    GET {base}/workloads/{id}/pods -> [{"id": ..., "ready": ..., "requests": {...}}]
    GET {base}/pods/{id}/metrics   -> {"cpu": <millicores>, "memory": <bytes>, ...}

    Numeric values are taken as millicores / bytes; strings are parsed as
    Kubernetes quantities.
    """

    def __init__(self, base_url: str, timeout: int = 5, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, workload: WorkloadSpec, kinds: List[MetricKind],
              timeout: Optional[float] = None) -> List[PodObservation]:
        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        try:
            pods = self._get_json(f"/workloads/{workload.workload_id}/pods", timeout)
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                raise WorkloadNotFound(f"{workload.workload_id} not known to metrics endpoint",
                                       workload.workload_id, status=404) from e
            raise MetricsUnavailable(f"Error listing pods: {e}", workload.workload_id) from e
        except requests.exceptions.RequestException as e:
            raise MetricsUnavailable(f"Error listing pods: {e}", workload.workload_id) from e

        keys = [kind.key for kind in kinds]
        observations = []
        for pod in pods:
            pod_id = pod["id"]
            try:
                metrics = self._get_json(f"/pods/{pod_id}/metrics", timeout)
            except requests.exceptions.HTTPError as e:
                if e.response is not None and e.response.status_code == 404:
                    logger.debug(f"[{workload.workload_id}] pod {pod_id} has no metrics")
                    continue
                raise MetricsUnavailable(f"Error querying metrics for {pod_id}: {e}", workload.workload_id) from e
            except requests.exceptions.RequestException as e:
                raise MetricsUnavailable(f"Error querying metrics for {pod_id}: {e}", workload.workload_id) from e

            usage = {key: self._to_units(key, metrics[key]) for key in keys if metrics.get(key) is not None}
            requests_ = {
                key: self._to_units(key, value)
                for key, value in (pod.get("requests") or {}).items()
                if value is not None
            }
            observations.append(PodObservation(
                pod_name=pod_id,
                ready=bool(pod.get("ready", True)),
                usage=usage,
                requests=requests_,
                timestamp=_parse_timestamp(metrics.get("timestamp")),
            ))

        return observations

    def _get_json(self, path: str, timeout: float):
        response = self.session.get(f"{self.base_url}{path}", timeout=timeout)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _to_units(key: str, value) -> float:
        if isinstance(value, str):
            return parse_quantity(key, value)
        return float(value)


def load_kubernetes_config(in_cluster: bool = False, kubeconfig_path: Optional[str] = None) -> None:
    """Load in-cluster or kubeconfig credentials for the kubernetes client"""
    if in_cluster:
        logger.info("Loading in-cluster config")
        k8s_config.load_incluster_config()
        return

    if kubeconfig_path and not os.path.exists(kubeconfig_path):
        logger.error(f"Kubeconfig file not found at: {kubeconfig_path}")
        raise FileNotFoundError(f"Kubeconfig file not found: {kubeconfig_path}")

    logger.info(f"Loading kubeconfig from: {kubeconfig_path or 'default location'}")
    k8s_config.load_kube_config(config_file=kubeconfig_path)


class MetricSampler:
    """Polls a metrics source and keeps a bounded history of samples per workload"""

    def __init__(self, source: MetricsSource, workload_lookup: Callable[[str], WorkloadSpec],
                 evaluation_interval: float = 15, retention_factor: int = 5,
                 clock: Callable[[], datetime] = _utcnow,
                 monotonic: Callable[[], float] = time.monotonic):
        """
        Initialize the sampler

        Args:
            source: Metrics backend
            workload_lookup: Returns the WorkloadSpec for a workload id
            evaluation_interval: Seconds between evaluation cycles
            retention_factor: Samples older than factor x interval are discarded
            clock: Returns the current (timezone aware) time
            monotonic: Monotonic clock used against cycle deadlines
        """
        self.source = source
        self.workload_lookup = workload_lookup
        self.retention = timedelta(seconds=evaluation_interval * retention_factor)
        self.clock = clock
        self.monotonic = monotonic
        self._history: Dict[str, List[MetricSample]] = {}
        self._lock = threading.Lock()

    def sample(self, workload_id: str, deadline: Optional[float] = None) -> List[MetricSample]:
        """
        Poll the metrics source for one workload

        Args:
            workload_id: Workload to sample
            deadline: Monotonic time bounding the backend calls

        Returns:
            Fresh samples for every replica and every metric kind the workload targets

        Raises:
            MetricsUnavailable: The metrics backend could not be reached
            WorkloadNotFound: The scale target no longer exists
            CycleTimeout: The deadline passed before the backend was called
        """
        workload = self.workload_lookup(workload_id)
        kinds = [target.kind for target in workload.metric_targets()]

        timeout = None
        if deadline is not None:
            timeout = deadline - self.monotonic()
            if timeout <= 0:
                raise CycleTimeout("deadline passed before sampling", workload_id)

        try:
            observations = self.source.fetch(workload, kinds, timeout=timeout)
        except (MetricsUnavailable, WorkloadNotFound):
            raise
        except Exception as e:
            raise MetricsUnavailable(f"Metrics source failed: {e}", workload_id) from e

        now = self.clock()
        cutoff = now - self.retention
        samples = []
        stale = 0
        for observation in observations:
            if observation.timestamp < cutoff:
                stale += 1
                continue
            for kind in kinds:
                if kind.key not in observation.usage:
                    continue
                samples.append(MetricSample(
                    workload_id=workload_id,
                    replica_id=observation.pod_name,
                    kind=kind,
                    raw_value=observation.usage[kind.key],
                    requested_value=observation.requests.get(kind.key) if kind.is_resource else None,
                    ready=observation.ready,
                    timestamp=observation.timestamp,
                ))

        if stale:
            logger.warning(f"[{workload_id}] discarded {stale} stale pod observations older than {self.retention}")

        with self._lock:
            retained = [s for s in self._history.get(workload_id, []) if s.timestamp >= cutoff]
            self._history[workload_id] = retained + samples

        logger.debug(f"[{workload_id}] sampled {len(samples)} metric values from {len(observations)} pods")
        return samples

    def history(self, workload_id: str) -> List[MetricSample]:
        """Samples retained for a workload within the retention window"""
        cutoff = self.clock() - self.retention
        with self._lock:
            return [s for s in self._history.get(workload_id, []) if s.timestamp >= cutoff]

    def forget(self, workload_id: str) -> None:
        with self._lock:
            self._history.pop(workload_id, None)
