#!/usr/bin/env python3
"""
Configuration settings using Pydantic for environment variable loading
"""

import os
from typing import Optional, Dict, Any, List

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration settings"""
    in_cluster: bool = os.getenv("KUBERNETES_IN_CLUSTER", "false").lower() == "true"
    kubeconfig_path: Optional[str] = os.getenv("KUBECONFIG_PATH", None)

    class Config:
        env_prefix = "KUBERNETES_"
        extra = "ignore"


class MetricsSettings(BaseSettings):
    """Metrics source configuration settings"""
    # "kubernetes" reads metrics.k8s.io, "http" reads GET /pods/{id}/metrics
    source: str = os.getenv("METRICS_SOURCE", "kubernetes")
    http_url: str = os.getenv("METRICS_HTTP_URL", "http://localhost:8000")
    timeout: int = int(os.getenv("METRICS_TIMEOUT", "5"))

    class Config:
        env_prefix = "METRICS_"
        extra = "ignore"


class RedisSettings(BaseSettings):
    """Redis configuration settings"""
    enabled: bool = os.getenv("REDIS_ENABLED", "false").lower() == "true"
    host: str = os.getenv("REDIS_HOST", "localhost")
    port: int = int(os.getenv("REDIS_PORT", "6379"))
    db: int = int(os.getenv("REDIS_DB", "0"))
    password: Optional[str] = os.getenv("REDIS_PASSWORD", None)
    connection_timeout: int = int(os.getenv("REDIS_CONNECTION_TIMEOUT", "5"))
    key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "autoscaler:")
    events_stream: str = os.getenv("REDIS_EVENTS_STREAM", "events")
    stream_maxlen: int = int(os.getenv("REDIS_STREAM_MAXLEN", "10000"))

    class Config:
        env_prefix = "REDIS_"
        extra = "ignore"


class AutoscalerSettings(BaseSettings):
    """Main autoscaler configuration settings"""
    evaluation_interval: int = int(os.getenv("AUTOSCALER_EVALUATION_INTERVAL", "15"))
    cycle_timeout: float = float(os.getenv("AUTOSCALER_CYCLE_TIMEOUT", "10"))
    max_concurrency: int = int(os.getenv("AUTOSCALER_MAX_CONCURRENCY", "8"))
    dry_run: bool = os.getenv("AUTOSCALER_DRY_RUN", "false").lower() == "true"

    # Sampling and aggregation
    retention_factor: int = int(os.getenv("AUTOSCALER_RETENTION_FACTOR", "5"))
    aggregation: str = os.getenv("AUTOSCALER_AGGREGATION", "mean")
    trim_fraction: float = float(os.getenv("AUTOSCALER_TRIM_FRACTION", "0.1"))
    percentile: float = float(os.getenv("AUTOSCALER_PERCENTILE", "90"))

    # Decision settings
    tolerance: float = float(os.getenv("AUTOSCALER_TOLERANCE", "0.1"))
    scale_up_max_percent: float = float(os.getenv("AUTOSCALER_SCALE_UP_MAX_PERCENT", "100"))
    scale_up_max_pods: int = int(os.getenv("AUTOSCALER_SCALE_UP_MAX_PODS", "4"))
    scale_down_max_percent: float = float(os.getenv("AUTOSCALER_SCALE_DOWN_MAX_PERCENT", "10"))

    # Stabilization settings
    scale_up_cooldown: int = int(os.getenv("AUTOSCALER_SCALE_UP_COOLDOWN", "60"))
    scale_down_cooldown: int = int(os.getenv("AUTOSCALER_SCALE_DOWN_COOLDOWN", "300"))

    # Execution settings
    retry_attempts: int = int(os.getenv("AUTOSCALER_RETRY_ATTEMPTS", "3"))
    retry_base_delay: float = float(os.getenv("AUTOSCALER_RETRY_BASE_DELAY", "0.2"))
    scale_target: str = os.getenv("AUTOSCALER_SCALE_TARGET", "kubernetes")
    scale_http_url: str = os.getenv("AUTOSCALER_SCALE_HTTP_URL", "http://localhost:8000")

    # API settings
    api_host: str = os.getenv("AUTOSCALER_API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("AUTOSCALER_API_PORT", "8080"))
    metrics_port: int = int(os.getenv("AUTOSCALER_METRICS_PORT", "9091"))

    # Event history kept in memory per workload
    event_history_size: int = int(os.getenv("AUTOSCALER_EVENT_HISTORY_SIZE", "100"))

    class Config:
        env_prefix = "AUTOSCALER_"
        extra = "ignore"


class LoggingSettings(BaseSettings):
    """Logging configuration settings"""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    file: Optional[str] = os.getenv("LOG_FILE", None)
    colors: bool = os.getenv("LOG_COLORS", "true").lower() == "true"

    class Config:
        env_prefix = "LOG_"
        extra = "ignore"


class Settings(BaseSettings):
    """Main settings class that includes all sub-settings"""
    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Component settings
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    autoscaler: AutoscalerSettings = Field(default_factory=AutoscalerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Workloads registered at startup
    workloads: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields to avoid validation errors

    def get_config_dict(self) -> Dict[str, Any]:
        """Sanitized configuration view (no credentials)"""
        return {
            "autoscaler": {
                "evaluation_interval": self.autoscaler.evaluation_interval,
                "cycle_timeout": self.autoscaler.cycle_timeout,
                "max_concurrency": self.autoscaler.max_concurrency,
                "dry_run": self.autoscaler.dry_run,
                "aggregation": self.autoscaler.aggregation,
                "tolerance": self.autoscaler.tolerance,
                "limits": {
                    "scale_up_max_percent": self.autoscaler.scale_up_max_percent,
                    "scale_up_max_pods": self.autoscaler.scale_up_max_pods,
                    "scale_down_max_percent": self.autoscaler.scale_down_max_percent,
                },
                "stabilization": {
                    "scale_up_cooldown": self.autoscaler.scale_up_cooldown,
                    "scale_down_cooldown": self.autoscaler.scale_down_cooldown,
                },
                "retry": {
                    "attempts": self.autoscaler.retry_attempts,
                    "base_delay": self.autoscaler.retry_base_delay,
                },
            },
            "metrics": {
                "source": self.metrics.source,
                "timeout": self.metrics.timeout,
            },
            "redis": {
                "enabled": self.redis.enabled,
                "host": self.redis.host,
                "port": self.redis.port,
                "db": self.redis.db,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
            "workloads": len(self.workloads),
        }

    @classmethod
    def load_from_yaml_with_env_override(cls, yaml_path: str) -> "Settings":
        """Load settings from YAML file and override with environment variables"""
        import yaml

        # Load YAML if it exists
        yaml_config = {}
        if os.path.exists(yaml_path):
            with open(yaml_path, 'r') as f:
                # Process environment variables in YAML
                yaml_content = f.read()
                for key, value in os.environ.items():
                    yaml_content = yaml_content.replace(f"${{{key}}}", value)
                yaml_config = yaml.safe_load(yaml_content) or {}

        return Settings(
            environment=yaml_config.get("environment", "development"),
            debug=yaml_config.get("debug", False),
            kubernetes=KubernetesSettings(**yaml_config.get("kubernetes", {})),
            metrics=MetricsSettings(**yaml_config.get("metrics", {})),
            redis=RedisSettings(**yaml_config.get("redis", {})),
            autoscaler=AutoscalerSettings(**yaml_config.get("autoscaler", {})),
            logging=LoggingSettings(**yaml_config.get("logging", {})),
            workloads=yaml_config.get("workloads", []) or [],
        )


# Global settings instance
settings = Settings()
