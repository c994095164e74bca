# src/config/settings.py - v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: cache backend,
parallelism, source layout, toolchain commands and logging.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from depforge.core.errors import DepforgeError


class ConfigurationError(DepforgeError):
    """Raised when configuration is internally inconsistent."""


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Platform ===
    # Empty means "detect from the running interpreter".
    platform: str = ""

    # === Cache ===
    cache_backend: Literal["memory", "json", "sqlite"] = "json"
    cache_root: Path = Path("~/.depforge/cache")

    # === Source layout ===
    source_denylist: str = ".git,.hg,.svn,target,result,.direnv,__pycache__"
    manifest_files: str = "Cargo.toml"
    lock_files: str = "Cargo.lock"

    # === Tasks ===
    tasks_file: Path | None = None
    tasks_enabled: str = ""
    max_parallel_tasks: int = 1
    diagnostic_excerpt_lines: int = 20
    advisory_db_path: str = "~/.cargo/advisory-db"

    # === Toolchain ===
    toolchain_build_command: str = "cargo build --release --locked"
    toolchain_output_dir: str = "target"
    toolchain_version_command: str = "rustc --version"

    # === Report ===
    report_file: Path | None = None

    # === Dev shell ===
    dev_shell_packages: str = "git,ripgrep,fzf,neovim"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("max_parallel_tasks", "diagnostic_excerpt_lines")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field consistency rules."""
        errors: list[str] = []

        if not self.manifest_files_list:
            errors.append("MANIFEST_FILES must list at least one file name")

        overlap = set(self.manifest_files_list) & set(self.lock_files_list)
        if overlap:
            errors.append(
                f"MANIFEST_FILES and LOCK_FILES overlap: {sorted(overlap)}"
            )

        if not self.toolchain_build_argv:
            errors.append("TOOLCHAIN_BUILD_COMMAND must not be empty")

        if self.tasks_file is not None and not self.tasks_file.expanduser().is_file():
            errors.append(f"TASKS_FILE does not exist: {self.tasks_file}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def source_denylist_list(self) -> list[str]:
        return _split_csv(self.source_denylist)

    @property
    def manifest_files_list(self) -> list[str]:
        return _split_csv(self.manifest_files)

    @property
    def lock_files_list(self) -> list[str]:
        return _split_csv(self.lock_files)

    @property
    def tasks_enabled_list(self) -> list[str]:
        return _split_csv(self.tasks_enabled)

    @property
    def dev_shell_packages_list(self) -> list[str]:
        return _split_csv(self.dev_shell_packages)

    @property
    def toolchain_build_argv(self) -> list[str]:
        return shlex.split(self.toolchain_build_command)

    @property
    def toolchain_version_argv(self) -> list[str]:
        return shlex.split(self.toolchain_version_command)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
