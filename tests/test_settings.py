"""
Tests for configuration loading
"""

import pytest

from replica_autoscaler.config import AutoscalerSettings, Settings


class TestSettings:
    """Defaults, environment and YAML"""

    def test_defaults(self):
        settings = AutoscalerSettings()

        assert settings.evaluation_interval == 15
        assert settings.tolerance == 0.1
        assert settings.scale_up_cooldown == 60
        assert settings.scale_down_cooldown == 300
        assert settings.retry_attempts == 3

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("AUTOSCALER_TOLERANCE", "0.2")
        monkeypatch.setenv("AUTOSCALER_DRY_RUN", "true")

        settings = AutoscalerSettings()

        assert settings.tolerance == 0.2
        assert settings.dry_run is True

    def test_yaml_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_REDIS_HOST", "redis.internal")
        config = tmp_path / "autoscaler.yaml"
        config.write_text(
            "autoscaler:\n"
            "  evaluation_interval: 30\n"
            "  scale_down_cooldown: 120\n"
            "redis:\n"
            "  host: ${TEST_REDIS_HOST}\n"
            "workloads:\n"
            "  - workloadId: web-app\n"
            "    maxReplicas: 10\n"
        )

        settings = Settings.load_from_yaml_with_env_override(str(config))

        assert settings.autoscaler.evaluation_interval == 30
        assert settings.autoscaler.scale_down_cooldown == 120
        assert settings.redis.host == "redis.internal"
        assert settings.workloads == [{"workloadId": "web-app", "maxReplicas": 10}]

    def test_missing_yaml_falls_back_to_defaults(self, tmp_path):
        settings = Settings.load_from_yaml_with_env_override(str(tmp_path / "missing.yaml"))

        assert settings.autoscaler.evaluation_interval == AutoscalerSettings().evaluation_interval
        assert settings.workloads == []

    def test_config_dict_has_no_credentials(self):
        settings = Settings()
        settings.redis.password = "secret"

        config = settings.get_config_dict()

        assert "password" not in config["redis"]
        assert config["autoscaler"]["stabilization"] == {
            "scale_up_cooldown": settings.autoscaler.scale_up_cooldown,
            "scale_down_cooldown": settings.autoscaler.scale_down_cooldown,
        }
