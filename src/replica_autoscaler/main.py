#!/usr/bin/env python3
"""
Replica Autoscaler - Main Entry Point
Scales workloads horizontally by comparing per-replica utilization with a target
"""

import asyncio
import os
import signal
import sys
import threading
from typing import Optional

from prometheus_client import start_http_server

from .api.server import APIServer
from .config import Settings
from .core.aggregator import UtilizationAggregator, build_reducer
from .core.autoscaler import Autoscaler
from .core.exceptions import InvalidConfiguration
from .core.executor import HttpScaleTarget, KubernetesScaleTarget, ScaleExecutor, ScaleTarget
from .core.logging_config import get_logger, setup_logging
from .core.registry import WorkloadRegistry
from .core.sampler import (
    HttpMetricsSource,
    KubernetesMetricsSource,
    MetricSampler,
    MetricsSource,
    load_kubernetes_config,
)
from .core.scaling import ScalingDecisionEngine
from .core.scheduler import EvaluationScheduler
from .core.stabilization import StabilizationWindow
from .database import RedisClient, RedisEventSink, RedisStabilizationStore
from .events import EventRecorder, EventType


class AutoscalerService:
    """Main autoscaler service that coordinates all components"""

    def __init__(self, config_path: Optional[str] = None, dry_run: bool = False):
        """Initialize the autoscaler service"""
        # Load settings using Pydantic
        if config_path and os.path.exists(config_path):
            self.settings = Settings.load_from_yaml_with_env_override(config_path)
        else:
            self.settings = Settings()
        if dry_run:
            self.settings.autoscaler.dry_run = True

        self.config = self.settings.get_config_dict()

        # Setup logging
        setup_logging(
            level=self.settings.logging.level,
            log_file=self.settings.logging.file,
            enable_colors=self.settings.logging.colors
        )
        self.logger = get_logger(__name__)
        if config_path and not os.path.exists(config_path):
            self.logger.warning(f"Config file {config_path} not found, using environment settings")

        # Optional Redis persistence
        self.redis = self._init_redis()
        store = RedisStabilizationStore(self.redis) if self.redis else None
        sinks = [RedisEventSink(self.redis, self.settings.redis.events_stream,
                                self.settings.redis.stream_maxlen)] if self.redis else []

        autoscaler_settings = self.settings.autoscaler
        self.registry = WorkloadRegistry(store=store)
        self.recorder = EventRecorder(history_size=autoscaler_settings.event_history_size, sinks=sinks)

        self.sampler = MetricSampler(
            self._build_metrics_source(),
            self.registry.spec,
            evaluation_interval=autoscaler_settings.evaluation_interval,
            retention_factor=autoscaler_settings.retention_factor,
        )
        self.executor = ScaleExecutor(
            self._build_scale_target(),
            self.registry.spec,
            max_attempts=autoscaler_settings.retry_attempts,
            base_delay=autoscaler_settings.retry_base_delay,
            dry_run=autoscaler_settings.dry_run,
        )
        self.autoscaler = Autoscaler(
            registry=self.registry,
            sampler=self.sampler,
            aggregator=UtilizationAggregator(build_reducer(
                autoscaler_settings.aggregation,
                trim_fraction=autoscaler_settings.trim_fraction,
                percentile=autoscaler_settings.percentile,
            )),
            engine=ScalingDecisionEngine.from_settings(autoscaler_settings),
            window=StabilizationWindow(
                scale_up_cooldown=autoscaler_settings.scale_up_cooldown,
                scale_down_cooldown=autoscaler_settings.scale_down_cooldown,
            ),
            executor=self.executor,
            recorder=self.recorder,
        )
        self.scheduler = EvaluationScheduler(
            self.autoscaler,
            self.registry,
            interval=autoscaler_settings.evaluation_interval,
            cycle_timeout=autoscaler_settings.cycle_timeout,
            max_concurrency=autoscaler_settings.max_concurrency,
        )

        # Initialize API server
        self.api_server = APIServer(self.autoscaler, self.scheduler, self.config)

        self._register_workloads()

        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.logger.info(f"Replica Autoscaler Service initialized with {len(self.registry)} workloads")
        if self.settings.debug:
            self.logger.info(f"Debug mode enabled. Settings: {self.config}")

    def _init_redis(self) -> Optional[RedisClient]:
        """Connect to Redis when enabled; the service runs in memory otherwise"""
        redis_settings = self.settings.redis
        if not redis_settings.enabled:
            self.logger.info("Redis disabled, stabilization state is kept in memory")
            return None
        try:
            return RedisClient(
                host=redis_settings.host,
                port=redis_settings.port,
                db=redis_settings.db,
                password=redis_settings.password,
                key_prefix=redis_settings.key_prefix,
                connection_timeout=redis_settings.connection_timeout,
            )
        except Exception as e:
            self.logger.error(f"Redis unavailable, continuing without persistence: {e}")
            return None

    def _build_metrics_source(self) -> MetricsSource:
        metrics_settings = self.settings.metrics
        if metrics_settings.source == "http":
            self.logger.info(f"Reading metrics over HTTP from {metrics_settings.http_url}")
            return HttpMetricsSource(metrics_settings.http_url, timeout=metrics_settings.timeout)
        if metrics_settings.source != "kubernetes":
            raise InvalidConfiguration(f"Unknown metrics source: {metrics_settings.source}")
        self.logger.info("Reading metrics from metrics.k8s.io")
        return KubernetesMetricsSource(
            in_cluster=self.settings.kubernetes.in_cluster,
            kubeconfig_path=self.settings.kubernetes.kubeconfig_path,
            request_timeout=metrics_settings.timeout,
        )

    def _build_scale_target(self) -> ScaleTarget:
        autoscaler_settings = self.settings.autoscaler
        if autoscaler_settings.scale_target == "http":
            self.logger.info(f"Applying replica counts over HTTP at {autoscaler_settings.scale_http_url}")
            return HttpScaleTarget(autoscaler_settings.scale_http_url, timeout=self.settings.metrics.timeout)
        if autoscaler_settings.scale_target != "kubernetes":
            raise InvalidConfiguration(f"Unknown scale target: {autoscaler_settings.scale_target}")
        if self.settings.metrics.source != "kubernetes":
            load_kubernetes_config(self.settings.kubernetes.in_cluster, self.settings.kubernetes.kubeconfig_path)
        return KubernetesScaleTarget(request_timeout=self.settings.metrics.timeout)

    def _register_workloads(self):
        """Register the workloads listed in the configuration"""
        for spec in self.settings.workloads:
            try:
                state = self.registry.register(spec)
            except InvalidConfiguration as e:
                self.logger.error(f"Skipping invalid workload: {e}")
                continue
            self.recorder.record(EventType.WORKLOAD_REGISTERED, state.workload_id,
                                 "workload registered from configuration")

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.scheduler.stop()

    def run(self):
        """Main run loop"""
        self.logger.info("Starting Replica Autoscaler Service...")
        autoscaler_settings = self.settings.autoscaler

        # Start Prometheus metrics server
        start_http_server(autoscaler_settings.metrics_port)
        self.logger.info(f"Prometheus metrics server started on :{autoscaler_settings.metrics_port}")

        # Start API server in background
        api_thread = threading.Thread(
            target=self.api_server.run,
            kwargs={'host': autoscaler_settings.api_host, 'port': autoscaler_settings.api_port}
        )
        api_thread.daemon = True
        api_thread.start()
        self.logger.info(f"API server started on :{autoscaler_settings.api_port}")

        if autoscaler_settings.dry_run:
            self.logger.info("Dry-run mode: decisions are computed but never applied")

        asyncio.run(self.scheduler.run())
        self.logger.info("Autoscaler service stopped")

    def cleanup(self):
        """Cleanup resources"""
        try:
            self.scheduler.shutdown()
            if self.redis:
                self.redis.close()
            self.logger.info("Cleanup completed")
        except Exception as e:
            self.logger.error(f"Error during cleanup: {e}")


def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Replica Autoscaler')
    parser.add_argument(
        '--config',
        default=os.getenv('CONFIG_PATH', 'config/autoscaler.yaml'),
        help='Path to configuration file'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Run in dry-run mode (no actual scaling)'
    )

    args = parser.parse_args()

    # Create and run autoscaler service
    service = AutoscalerService(args.config, dry_run=args.dry_run)

    try:
        service.run()
    except KeyboardInterrupt:
        service.logger.info("Received keyboard interrupt")
    except Exception as e:
        service.logger.error(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        service.cleanup()


if __name__ == "__main__":
    main()
