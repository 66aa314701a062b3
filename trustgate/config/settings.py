"""Configuration settings using Pydantic."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOME = Path.home() / ".local" / "share" / "trustgate"


class Settings(BaseSettings):
    """TrustGate settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    home_dir: Path = Field(
        default=DEFAULT_HOME,
        alias="TRUSTGATE_HOME",
        description="Root directory for TrustGate state",
    )
    audit_log_path: Path | None = Field(
        default=None,
        alias="TRUSTGATE_AUDIT_LOG_PATH",
        description="Path to the hash-chained audit log (JSONL). Defaults to <home>/audit.jsonl",
    )
    staging_root: Path | None = Field(
        default=None,
        alias="TRUSTGATE_STAGING_ROOT",
        description="Directory holding overlay workspaces. Defaults to <home>/staging",
    )
    drafts_dir: Path | None = Field(
        default=None,
        alias="TRUSTGATE_DRAFTS_DIR",
        description="Directory holding persisted drafts. Defaults to <home>/drafts",
    )
    manifest_dir: Path | None = Field(
        default=None,
        alias="TRUSTGATE_MANIFEST_DIR",
        description="Directory of capability manifests (*.yaml, *.json) loaded on open",
    )

    # Audit
    redact_audit: bool = Field(
        default=True,
        alias="TRUSTGATE_REDACT_AUDIT",
        description="Redact secrets from audit payloads before hashing",
    )
    fsync_audit: bool = Field(
        default=False,
        alias="TRUSTGATE_FSYNC_AUDIT",
        description="fsync the audit log after every append",
    )

    # Workspace / apply
    conflict_resolution: Literal["abort", "force_overwrite", "merge"] = Field(
        default="abort",
        alias="TRUSTGATE_CONFLICT_RESOLUTION",
    )
    retain_baseline: bool = Field(
        default=True,
        alias="TRUSTGATE_RETAIN_BASELINE",
        description="Keep pristine copies of source files for diffs and merges",
    )

    # Logging
    log_level: str = Field(default="INFO", alias="TRUSTGATE_LOG_LEVEL")

    @model_validator(mode="after")
    def fill_derived_paths(self) -> "Settings":
        """Derive unset paths from home_dir."""
        if self.audit_log_path is None:
            self.audit_log_path = self.home_dir / "audit.jsonl"
        if self.staging_root is None:
            self.staging_root = self.home_dir / "staging"
        if self.drafts_dir is None:
            self.drafts_dir = self.home_dir / "drafts"
        return self


@lru_cache
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return Settings()
