"""Jinja2 prompt templates for the text-completion collaborator."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

_TEMPLATES_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATES_DIR)),
    undefined=StrictUndefined,
    keep_trailing_newline=False,
    autoescape=False,
)


def render_prompt(name: str, **context: Any) -> str:
    """Render a prompt template by name.

    Args:
        name: Template file name without the .j2 suffix.
        **context: Template variables.

    Returns:
        Rendered prompt text.
    """
    return _env.get_template(f"{name}.j2").render(**context).strip()
