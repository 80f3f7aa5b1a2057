"""Template rendering for operation manifests."""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from jinja2.exceptions import TemplateError as JinjaTemplateError

logger = logging.getLogger(__name__)


class TemplateError(Exception):
    """Template could not be loaded or rendered."""


class TemplateRenderer:
    """Renders manifest templates with user_name and namespace substitutions."""

    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, username: str = '', namespace: str = '') -> str:
        """Render one template.

        Raises:
            TemplateError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(template_name)
            return template.render(user_name=username, namespace=namespace)
        except JinjaTemplateError as e:
            logger.error("Unable to render template %s: %s", template_name, e)
            raise TemplateError(f"unable to render template {template_name}: {e}") from e

    def read(self, name: str) -> str:
        """Read a static (non-template) file from the templates directory."""
        path = self.templates_dir / name
        try:
            return path.read_text(encoding='utf-8')
        except OSError as e:
            raise TemplateError(f"unable to read {path}: {e}") from e
