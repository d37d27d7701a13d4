"""
Replica autoscaler

Horizontal autoscaling decision loop: samples per-replica metrics,
computes the desired replica count against a utilization target,
stabilizes it and applies it through the scale subresource.
"""

__version__ = "1.0.0"
