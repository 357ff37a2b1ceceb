"""Configuration system for repo-warden.

Key Components:
    - WardenSettings: Main configuration container with YAML loading support
    - RepositoryConfig: Repository path, remote and trunk
    - AdapterConfig: git/gh binaries and call timeouts
    - VerificationConfig: Verification commands and file conventions
    - WorkflowConfig: Workflow behavior settings

Example:
    >>> from repo_warden.config import WardenSettings
    >>> settings = WardenSettings.from_yaml(".warden/config.yaml")
    >>> trunk = settings.repository.trunk
"""

from repo_warden.config.settings import (
    AdapterConfig,
    RepositoryConfig,
    VerificationConfig,
    WardenSettings,
    WorkflowConfig,
)

__all__ = [
    "AdapterConfig",
    "RepositoryConfig",
    "VerificationConfig",
    "WardenSettings",
    "WorkflowConfig",
]
