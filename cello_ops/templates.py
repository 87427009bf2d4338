"""Template materialization.

This module handles:
- Finding the placeholder tokens of a build template
- Validating that every placeholder is bound and that no bound value
  smuggles in another placeholder
- Rendering the template in a single substitution pass
- Writing the result to its staging location, replacing any prior output

Two placeholder syntaxes are supported: `_NAME_` (Dockerfile.in templates)
and `${NAME}` / `$NAME` (the compose environment template).
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from cello_ops.errors import TemplateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateSyntax:
    """Placeholder syntax of a template family.

    Attributes:
        name: Short name for diagnostics.
        pattern: Regex matching one placeholder; group 'name' is the key.
        token_format: Format string producing the canonical token of a key.
    """

    name: str
    pattern: re.Pattern[str]
    token_format: str

    def token(self, key: str) -> str:
        """Return the canonical placeholder token for a key."""
        return self.token_format.format(key)


UNDERSCORE = TemplateSyntax(
    name="underscore",
    pattern=re.compile(
        r"(?<![A-Za-z0-9_])_(?P<name>[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*)_(?![A-Za-z0-9_])"
    ),
    token_format="_{}_",
)

SHELL = TemplateSyntax(
    name="shell",
    pattern=re.compile(r"\$(?P<brace>\{)?(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?(brace)\})"),
    token_format="${{{}}}",
)


def find_placeholders(text: str, syntax: TemplateSyntax = UNDERSCORE) -> list[str]:
    """Return the distinct placeholder keys of a template, in order of appearance."""
    seen: dict[str, None] = {}
    for match in syntax.pattern.finditer(text):
        seen.setdefault(match.group("name"), None)
    return list(seen)


def render(
    text: str,
    bindings: Mapping[str, str],
    syntax: TemplateSyntax = UNDERSCORE,
    source: str | None = None,
) -> str:
    """Substitute every placeholder of a template.

    Args:
        text: Template content.
        bindings: Placeholder key to value.
        syntax: Placeholder syntax of the template.
        source: Template path, for diagnostics.

    Returns:
        Rendered content.

    Raises:
        TemplateError: If a placeholder is unbound or a used binding value
            itself contains a placeholder.
    """
    keys = find_placeholders(text, syntax)

    unbound = [k for k in keys if k not in bindings]
    if unbound:
        tokens = ", ".join(syntax.token(k) for k in unbound)
        raise TemplateError(
            f"Unbound placeholder(s) in {source or 'template'}: {tokens}",
            code="unbound_placeholder",
            template_path=source,
        )

    for key in keys:
        value = bindings[key]
        if syntax.pattern.search(value):
            raise TemplateError(
                f"Value bound to {syntax.token(key)} contains a placeholder: {value!r}",
                code="placeholder_collision",
                template_path=source,
            )

    return syntax.pattern.sub(lambda m: bindings[m.group("name")], text)


def read_template(template_path: Path) -> str:
    """Read a template file.

    Raises:
        TemplateError: If the template does not exist or cannot be read.
    """
    if not template_path.is_file():
        raise TemplateError(
            f"Template not found: {template_path}",
            code="template_not_found",
            template_path=str(template_path),
        )
    try:
        return template_path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(
            f"Failed to read template {template_path}: {e}",
            code="template_read_error",
            template_path=str(template_path),
        ) from e


def write_output(content: str, output_path: Path) -> Path:
    """Atomically write rendered content, replacing any previous output.

    Raises:
        TemplateError: If the output cannot be written.
    """
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{output_path.name}.", dir=output_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, output_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise TemplateError(
            f"Failed to write {output_path}: {e}",
            code="template_write_error",
        ) from e
    return output_path


def materialize(
    template_path: Path,
    bindings: Mapping[str, str],
    output_path: Path,
    syntax: TemplateSyntax = UNDERSCORE,
) -> Path:
    """Materialize a template into a concrete file.

    Args:
        template_path: Template to read.
        bindings: Placeholder key to value.
        output_path: Staging location of the concrete file.
        syntax: Placeholder syntax of the template.

    Returns:
        output_path.

    Raises:
        TemplateError: If the template is missing, a placeholder is unbound,
            a binding collides, or the output cannot be written.
    """
    text = read_template(template_path)
    content = render(text, bindings, syntax, source=str(template_path))
    write_output(content, output_path)
    logger.info("Materialized %s -> %s", template_path, output_path)
    return output_path


__all__ = [
    "SHELL",
    "UNDERSCORE",
    "TemplateSyntax",
    "find_placeholders",
    "materialize",
    "read_template",
    "render",
    "write_output",
]
