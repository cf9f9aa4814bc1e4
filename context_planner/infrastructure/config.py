"""
Configuration for the context planner.

Settings are plain pydantic models so every component can be built from
defaults in tests. ``load_settings`` reads an optional YAML file (explicit path
or ``CONTEXT_PLANNER_CONFIG``) and applies a handful of environment overrides.
"""

from typing import Dict, Any, List, Optional
from pathlib import Path
import os

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from context_planner.domain.models.plan_state import MemoryPolicy, ThinkLevel

logger = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "CONTEXT_PLANNER_CONFIG"


class ConfigError(Exception):
    """Raised when a configuration file is present but invalid"""


class CategoryOverride(BaseModel):
    """Per-deployment adjustments to one built-in category"""
    extra_patterns: List[str] = Field(default_factory=list, description="Extra regexes, matched case-insensitively")
    extra_tools: List[str] = Field(default_factory=list)
    think_level: Optional[ThinkLevel] = None
    disabled: bool = False


class PlannerConfig(BaseModel):
    """Classification and plan synthesis switches"""
    enabled: bool = True
    tool_filtering: bool = True
    memory_tuning: bool = True
    think_tuning: bool = True
    prompt_annotation: bool = True
    always_include: List[str] = Field(default_factory=lambda: ["message"])
    complex_threshold: int = Field(default=300, ge=0, description="Messages shorter than this are discounted for 'complex'")
    fallback_to_full: bool = Field(default=True, description="Unrestricted tools when no category matches")
    fallback_memory: MemoryPolicy = Field(default_factory=MemoryPolicy)
    default_think_level: ThinkLevel = ThinkLevel.LOW
    categories: Dict[str, CategoryOverride] = Field(default_factory=dict)

    def override_for(self, name: str) -> Optional[CategoryOverride]:
        return self.categories.get(name)


class MemoryServiceConfig(BaseModel):
    """Connection and budget settings for the external memory service"""
    enabled: bool = False
    host: str = "localhost"
    port: int = 8300
    auto_recall: bool = True
    auto_ingest: bool = True
    skip_background_runs: bool = True
    recall_timeout_ms: int = Field(default=200, gt=0)
    synthesis_timeout_s: float = Field(default=10.0, gt=0)
    ingest_timeout_s: float = Field(default=5.0, gt=0)
    synthesis_cache_ttl_s: float = Field(default=300.0, ge=0)
    min_query_length: int = Field(default=3, ge=0)
    synthesis_min_query_length: int = Field(default=10, ge=0)
    chars_per_token: int = Field(default=4, gt=0)
    session_idle_ttl_s: float = Field(default=3600.0, gt=0, description="Cached session state is evicted after this long without activity")
    cache_prune_interval_s: float = Field(default=60.0, gt=0)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    service_name: str = "context-planner"


class Settings(BaseModel):
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    memory_service: MemoryServiceConfig = Field(default_factory=MemoryServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    # A section written as a bare key loads as None
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(section).__name__}")
    raw[name] = section
    return section


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    memory = _section(raw, "memory_service")
    log = _section(raw, "logging")

    if os.getenv("MEMORY_SERVICE_HOST"):
        memory["host"] = os.environ["MEMORY_SERVICE_HOST"]
    if os.getenv("MEMORY_SERVICE_PORT"):
        memory["port"] = os.environ["MEMORY_SERVICE_PORT"]
    if os.getenv("LOG_LEVEL"):
        log["level"] = os.environ["LOG_LEVEL"]
    if os.getenv("LOG_FORMAT"):
        log["format"] = os.environ["LOG_FORMAT"]

    return raw


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from YAML plus environment overrides.

    A missing or unreadable file falls back to defaults; a file that parses but
    does not validate raises ``ConfigError``.
    """
    raw: Dict[str, Any] = {}
    config_path = path or os.getenv(CONFIG_ENV_VAR)

    if config_path:
        try:
            raw = _read_yaml(Path(config_path))
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to read config, using defaults", path=config_path, error=str(e))
            raw = {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(raw).__name__}")

    try:
        return Settings.model_validate(_apply_env_overrides(raw))
    except ValidationError as e:
        raise ConfigError(str(e)) from e
