#!/usr/bin/env python3
"""
Prometheus metrics for the autoscaling loop
"""

from prometheus_client import Counter, Gauge, Histogram

SCALING_DECISIONS = Counter(
    'autoscaler_scaling_decisions_total',
    'Total scaling decisions computed',
    ['workload', 'direction']
)

DESIRED_REPLICAS = Gauge(
    'autoscaler_desired_replicas',
    'Desired replica count of the last decision',
    ['workload']
)

CURRENT_REPLICAS = Gauge(
    'autoscaler_current_replicas',
    'Replica count observed at the start of the last cycle',
    ['workload']
)

CYCLE_RESULTS = Counter(
    'autoscaler_cycle_results_total',
    'Evaluation cycles by outcome',
    ['workload', 'status']
)

CYCLE_ERRORS = Counter(
    'autoscaler_cycle_errors_total',
    'Evaluation cycle errors',
    ['workload', 'type']
)

MISSED_CYCLES = Counter(
    'autoscaler_missed_cycles_total',
    'Cycles skipped because the previous one was still running or overran',
    ['workload']
)

CYCLE_DURATION = Histogram(
    'autoscaler_cycle_duration_seconds',
    'Time taken by one evaluation cycle',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)
