"""Sandboxed Jinja2 rendering for issue and pull-request text.

Security Features:
    - Sandboxed environment prevents arbitrary code execution
    - StrictUndefined catches missing variables early (fail-fast)
    - Template path validation prevents directory traversal

Bodies rendered here go to the hosting service verbatim, so autoescape is
off (the output is Markdown, not HTML).

Example:
    >>> engine = TemplateEngine()
    >>> body = engine.render_pull_request_body(issue_number=123, commits=commits)
    >>> "Closes #123" in body
    True
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Any, cast

from jinja2 import FileSystemLoader, StrictUndefined, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment

from repo_warden.models.domain import Commit

PULL_REQUEST_TEMPLATE = "pull_request.md.j2"
ISSUE_TEMPLATE = "issue.md.j2"


def short_sha(value: str, length: int = 7) -> str:
    """Abbreviate a commit SHA."""
    return (value or "")[:length]


class TemplateEngine:
    """Jinja2 rendering engine with a hardened configuration.

    Attributes:
        template_dir: Resolved path to the template directory.
        env: The SandboxedEnvironment instance.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        """Initialize the engine.

        Args:
            template_dir: Root directory for templates. If None, uses the
                package's built-in templates directory.

        Raises:
            ValueError: If template_dir doesn't exist or isn't a directory.
        """
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / "templates"

        self.template_dir = template_dir.resolve()
        if not self.template_dir.exists():
            raise ValueError(f"Template directory does not exist: {self.template_dir}")
        if not self.template_dir.is_dir():
            raise ValueError(f"Template path is not a directory: {self.template_dir}")

        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["short_sha"] = short_sha

    def validate_template_path(self, template_path: str) -> Path:
        """Resolve ``template_path`` inside the template directory.

        Raises:
            ValueError: If the path escapes the template directory.
            TemplateNotFound: If the template file doesn't exist.
        """
        requested_path = (self.template_dir / template_path).resolve()
        try:
            requested_path.relative_to(self.template_dir)
        except ValueError as e:
            raise ValueError(f"Template path escapes template directory: {template_path}") from e

        if not requested_path.exists():
            raise TemplateNotFound(template_path)
        return requested_path

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a template with the given context.

        Raises:
            TemplateNotFound: If template doesn't exist.
            jinja2.UndefinedError: If the template uses an undefined variable.
        """
        self.validate_template_path(template_path)
        template = self.env.get_template(template_path)
        return cast(str, template.render(**context))

    def render_pull_request_body(
        self,
        issue_number: int,
        commits: Sequence[Commit] = (),
        summary: str = "",
        verification: dict[str, int] | None = None,
    ) -> str:
        """Default PR body: closing reference, commit list and test plan."""
        return self.render(
            PULL_REQUEST_TEMPLATE,
            {
                "issue_number": issue_number,
                "commits": list(commits),
                "summary": summary,
                "verification": verification or {},
            },
        )

    def render_issue_body(self, summary: str, criteria: Sequence[str]) -> str:
        """Issue body with the acceptance criteria as a checklist."""
        return self.render(ISSUE_TEMPLATE, {"summary": summary, "criteria": list(criteria)})
