"""Template rendering for issue and pull-request bodies.

Key Exports:
    TemplateEngine: Sandboxed Jinja2 engine with the built-in templates.
"""

from repo_warden.rendering.engine import ISSUE_TEMPLATE, PULL_REQUEST_TEMPLATE, TemplateEngine

__all__ = ["ISSUE_TEMPLATE", "PULL_REQUEST_TEMPLATE", "TemplateEngine"]
