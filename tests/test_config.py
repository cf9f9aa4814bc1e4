import pytest

from context_planner.domain.models.plan_state import ThinkLevel
from context_planner.infrastructure.config import CONFIG_ENV_VAR, ConfigError, Settings, load_settings

CONFIG_YAML = """
planner:
  always_include: [message, read]
  complex_threshold: 250
  fallback_to_full: false
  default_think_level: minimal
  categories:
    monitoring:
      extra_patterns: ['\\bnvtop\\b']
      think_level: high
    casual:
      disabled: true
memory_service:
  enabled: true
  host: memory.internal
  recall_timeout_ms: 150
logging:
  format: console
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (CONFIG_ENV_VAR, "MEMORY_SERVICE_HOST", "MEMORY_SERVICE_PORT", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "planner.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings()

        assert settings == Settings()
        assert settings.memory_service.enabled is False
        assert settings.memory_service.recall_timeout_ms == 200
        assert settings.memory_service.synthesis_cache_ttl_s == 300
        assert settings.planner.always_include == ["message"]

    def test_yaml_file(self, config_file):
        settings = load_settings(str(config_file))

        assert settings.planner.always_include == ["message", "read"]
        assert settings.planner.complex_threshold == 250
        assert settings.planner.fallback_to_full is False
        assert settings.planner.default_think_level == ThinkLevel.MINIMAL
        assert settings.planner.override_for("monitoring").think_level == ThinkLevel.HIGH
        assert settings.planner.override_for("monitoring").extra_patterns == [r"\bnvtop\b"]
        assert settings.planner.override_for("casual").disabled is True
        assert settings.planner.override_for("coding") is None
        assert settings.memory_service.base_url == "http://memory.internal:8300"
        assert settings.memory_service.recall_timeout_ms == 150
        assert settings.logging.format == "console"

    def test_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config_file))

        assert load_settings().memory_service.host == "memory.internal"

    def test_environment_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("MEMORY_SERVICE_HOST", "10.0.0.5")
        monkeypatch.setenv("MEMORY_SERVICE_PORT", "9100")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = load_settings(str(config_file))

        assert settings.memory_service.base_url == "http://10.0.0.5:9100"
        assert settings.logging.level == "DEBUG"

    def test_empty_sections_with_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "empty_sections.yaml"
        path.write_text("memory_service:\nlogging:\n", encoding="utf-8")
        monkeypatch.setenv("MEMORY_SERVICE_HOST", "10.0.0.5")
        monkeypatch.setenv("LOG_FORMAT", "console")

        settings = load_settings(str(path))

        assert settings.memory_service.host == "10.0.0.5"
        assert settings.logging.format == "console"

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_settings(str(tmp_path / "nope.yaml")) == Settings()

    def test_invalid_values_raise(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("memory_service:\n  recall_timeout_ms: -5\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(str(path))

    def test_unknown_think_level_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("planner:\n  default_think_level: extreme\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(str(path))

    def test_non_mapping_root_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(str(path))
