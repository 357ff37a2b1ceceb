"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the repository, the external
command-line tools, the verification commands and the workflow behavior.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_warden.exceptions import ConfigurationError
from repo_warden.policy.rules import DEFAULT_DOCS_FILE_PATTERNS, DEFAULT_TEST_FILE_PATTERNS

DEFAULT_CONFIG_PATH = ".warden/config.yaml"


class RepositoryConfig(BaseModel):
    """Repository configuration."""

    path: str = Field(default=".", description="Path to the repository working tree")
    remote: str = Field(default="origin", description="Remote name")
    trunk: str = Field(default="master", description="Trunk branch name")
    host_repo: str | None = Field(default=None, description="OWNER/NAME passed to gh as --repo")


class AdapterConfig(BaseModel):
    """External command-line tool configuration."""

    git_binary: str = Field(default="git", description="git executable")
    gh_binary: str = Field(default="gh", description="gh executable")
    timeout: float = Field(default=120.0, gt=0, description="Seconds allowed for each git/gh call")
    check_timeout: float = Field(default=1800.0, gt=0, description="Seconds allowed for each verification command")
    ci_timeout: float = Field(default=1800.0, gt=0, description="Seconds allowed when waiting for a CI run")


class VerificationConfig(BaseModel):
    """Verification commands and file conventions.

    ``commands`` is an ordered mapping of name to shell command; every
    command must exit 0 for the Verify gate to pass.
    """

    commands: dict[str, str] = Field(default_factory=dict, description="Verification commands, run in order")
    test_file_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TEST_FILE_PATTERNS),
        description="Globs identifying test files (trailing / matches a directory)",
    )
    docs_file_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOCS_FILE_PATTERNS),
        description="Globs identifying documentation files",
    )

    @field_validator("commands")
    @classmethod
    def validate_commands(cls, value: dict[str, str]) -> dict[str, str]:
        """Reject empty command strings."""
        for name, command in value.items():
            if not command or not command.strip():
                raise ValueError(f"verification command '{name}' is empty")
        return value


class WorkflowConfig(BaseModel):
    """Workflow behavior configuration."""

    state_directory: str = Field(default=".warden/state", description="Directory for task state files")
    report_to_issue: bool = Field(default=False, description="Comment on the issue when a task blocks or completes")
    wait_for_ci: bool = Field(default=False, description="Wait for in-progress CI runs during review")
    delete_remote_branch: bool = Field(default=True, description="Delete the remote branch during cleanup")
    split_file_threshold: int = Field(default=20, ge=1, description="Changed files before a split is advised")
    split_criteria_threshold: int = Field(default=6, ge=1, description="Checklist items before a split is advised")


class WardenSettings(BaseSettings):
    """Main repo-warden settings.

    Combines all configuration sections and provides loading from YAML
    files with environment variable interpolation. Every section has
    defaults, so an empty file (or no file) yields a usable configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="WARDEN_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    adapter: AdapterConfig = Field(default_factory=AdapterConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    @property
    def repo_path(self) -> Path:
        """Repository working tree as a Path."""
        return Path(self.repository.path)

    @property
    def state_dir(self) -> Path:
        """State directory, relative to the repository unless absolute."""
        state_dir = Path(self.workflow.state_directory)
        if state_dir.is_absolute():
            return state_dir
        return self.repo_path / state_dir

    @classmethod
    def load(cls, config_path: str | None = None) -> WardenSettings:
        """Load settings from ``config_path`` or the default location.

        A missing file at the default location yields defaults; an explicitly
        given path must exist.

        Raises:
            ConfigurationError: If the file is missing (explicit path) or invalid
        """
        if config_path is not None:
            return cls.from_yaml(config_path)
        if Path(DEFAULT_CONFIG_PATH).exists():
            return cls.from_yaml(DEFAULT_CONFIG_PATH)
        try:
            return cls()
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str) -> WardenSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            WardenSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
