"""
Configuration module for autoscaler settings
"""

from .settings import (
    Settings,
    settings,
    KubernetesSettings,
    MetricsSettings,
    RedisSettings,
    AutoscalerSettings,
    LoggingSettings,
)

__all__ = [
    "Settings",
    "settings",
    "KubernetesSettings",
    "MetricsSettings",
    "RedisSettings",
    "AutoscalerSettings",
    "LoggingSettings",
]
