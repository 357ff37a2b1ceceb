"""External collaborator adapters.

    - VersionControlClient / IssueHostClient: capability interfaces
    - GitCliClient: ``git`` command-line implementation
    - GhCliClient: ``gh`` command-line implementation
"""

from repo_warden.adapters.base import IssueHostClient, VersionControlClient
from repo_warden.adapters.gh_cli import GhCliClient
from repo_warden.adapters.git_cli import GitCliClient

__all__ = [
    "GhCliClient",
    "GitCliClient",
    "IssueHostClient",
    "VersionControlClient",
]
