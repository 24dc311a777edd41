# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for every recognized option of the engine,
reconciler and autoscaler. Environment variables use the SHIPYARD_ prefix.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shipyard.core.errors import ConfigurationError
from shipyard.core.models import Severity


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SHIPYARD_",
        extra="ignore",
    )

    # === Pipeline: quality gate ===
    quality_gate_threshold: Severity = Severity.HIGH

    # === Pipeline: retries & timeouts ===
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_backoff_factor: float = 2.0
    retry_max_delay_s: float = 30.0
    retry_jitter: bool = True
    stage_timeout_s: float = 600.0
    manifest_cas_max_attempts: int = 5
    pipeline_best_effort_continue: bool = True
    supersede_policy: Literal["queue", "cancel"] = "queue"

    # === GitOps reconciler ===
    auto_sync: bool = True
    self_heal: bool = True
    prune: bool = True
    sync_wave_timeout_s: float = 120.0
    sync_timeout_s: float = 600.0
    health_poll_interval_s: float = 2.0
    reconcile_interval_s: float = 180.0
    reconcile_history_limit: int = 50
    ignore_paths: str = (
        "status,metadata.resourceVersion,metadata.uid,"
        "metadata.generation,metadata.creationTimestamp,spec.clusterIP,spec.clusterIPs"
    )
    managed_namespaces: str = ""

    # === Autoscaler ===
    min_replicas: int = 1
    max_replicas: int = 10
    target_utilization: float = 70.0
    scale_cooldown_s: float = 300.0
    stabilization_ticks: int = 2
    autoscale_interval_s: float = 30.0
    decision_log_limit: int = 500

    # === Backends ===
    artifact_store: Literal["memory", "local"] = "memory"
    artifact_root: Path = Path("~/.shipyard/artifacts")
    manifest_repository: Literal["memory", "yaml"] = "memory"
    manifest_root: Path = Path("./manifests")
    scanner_backend: Literal["static", "command"] = "static"
    scanner_commands: str = ""
    build_commands: str = ""
    build_work_root: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("quality_gate_threshold", mode="before")
    @classmethod
    def normalize_threshold(cls, v: object) -> object:  # noqa: N805
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator(
        "retry_max_attempts", "manifest_cas_max_attempts", "stabilization_ticks"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.min_replicas < 0:
            errors.append("MIN_REPLICAS must be >= 0")

        if self.min_replicas > self.max_replicas:
            errors.append("MIN_REPLICAS must be <= MAX_REPLICAS")

        if self.target_utilization <= 0:
            errors.append("TARGET_UTILIZATION must be > 0")

        if self.retry_base_delay_s < 0 or self.retry_max_delay_s < self.retry_base_delay_s:
            errors.append("RETRY_MAX_DELAY_S must be >= RETRY_BASE_DELAY_S >= 0")

        if self.sync_wave_timeout_s > self.sync_timeout_s:
            errors.append("SYNC_WAVE_TIMEOUT_S must be <= SYNC_TIMEOUT_S")

        if self.scanner_backend == "command" and not self.scanner_commands:
            errors.append("SCANNER_BACKEND=command requires SCANNER_COMMANDS")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def ignore_paths_list(self) -> list[str]:
        """Parse comma-separated ignore paths."""
        return [p.strip() for p in self.ignore_paths.split(",") if p.strip()]

    @property
    def managed_namespaces_list(self) -> list[str]:
        """Parse comma-separated managed namespaces (empty = all)."""
        return [n.strip() for n in self.managed_namespaces.split(",") if n.strip()]

    @property
    def scanner_commands_map(self) -> dict[str, str]:
        """Parse ``kind=command`` pairs separated by ';'."""
        return _parse_pairs(self.scanner_commands)

    @property
    def build_commands_map(self) -> dict[str, str]:
        """Parse ``step=command`` pairs separated by ';'."""
        return _parse_pairs(self.build_commands)


def _parse_pairs(raw: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for entry in raw.split(";"):
        key, sep, value = entry.partition("=")
        if sep and key.strip() and value.strip():
            pairs[key.strip()] = value.strip()
    return pairs


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
