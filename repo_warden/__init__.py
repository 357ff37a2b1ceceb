"""repo-warden: workflow-policy enforcement for trunk-based development."""

__version__ = "0.1.0"
