"""Configuration management for the fleet remediator.

Runtime settings come from environment variables and .env files using
pydantic-settings and are exposed as a cached, frozen singleton via
get_config(). Thresholds and remediation rules live in a separate JSON file
loaded once per run by load_monitor_config().
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleet_remediator.exceptions import ConfigError
from fleet_remediator.models import MonitorConfig


class FleetConfig(BaseSettings):
    """Application configuration sourced from environment variables."""

    hosts_file: str = Field("hosts.csv", alias="FLEET_HOSTS_FILE")
    monitor_config_file: str = Field("monitor.json", alias="FLEET_MONITOR_CONFIG")
    max_concurrency: int = Field(8, alias="FLEET_MAX_CONCURRENCY", ge=1)
    collection_timeout: float = Field(30.0, alias="FLEET_COLLECTION_TIMEOUT", gt=0)
    probe_timeout: float = Field(3.0, alias="FLEET_PROBE_TIMEOUT", gt=0)
    ssh_connect_timeout: int = Field(10, alias="FLEET_SSH_CONNECT_TIMEOUT", ge=1)
    ssh_binary: str = Field("ssh", alias="FLEET_SSH_BINARY")
    storage_path: str = Field(".fleet-remediator", alias="FLEET_STORAGE_PATH")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )


@lru_cache(maxsize=1)
def get_config() -> FleetConfig:
    """Return a cached singleton of FleetConfig."""
    return FleetConfig()


def load_monitor_config(path: str | Path) -> MonitorConfig:
    """Load and validate thresholds and remediation rules from a JSON file.

    Every rule is parsed into its typed action up front, so an unknown action
    type or a missing parameter fails here rather than when the rule fires.

    Args:
        path: Path to the JSON monitor configuration.

    Returns:
        The validated, immutable MonitorConfig.

    Raises:
        ConfigError: If the file is missing, is not JSON, or fails validation.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"Monitor config not found: {file_path}", details={"path": str(file_path)})
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Monitor config is not valid JSON: {exc}", details={"path": str(file_path)}) from exc
    try:
        return MonitorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid monitor config {file_path}: {exc.error_count()} error(s)",
            details={"path": str(file_path), "errors": exc.errors(include_url=False)},
        ) from exc
