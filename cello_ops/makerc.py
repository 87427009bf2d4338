"""Config fragment loading.

Operators keep site settings in small key=value fragments under .makerc/
(one per concern: service, email, dashboards, worker node, Keycloak,
parse-server). Each fragment may contribute environment bindings for the
compose environment file. Missing fragments are skipped.

Accepted line forms:

    # comment
    KEY=value
    KEY ?= value
    KEY := value
    export KEY?=value

`?=` only binds KEY when nothing (the process environment or an earlier
line) has bound it yet; `=` and `:=` always bind.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Fragments read at start-up, in include order
DEFAULT_FRAGMENTS = (
    "service",
    "email",
    "operator-dashboard",
    "user-dashboard",
    "worker-node",
    "keycloak",
    "parse-server",
)

CONDITIONAL = "?="

_ASSIGNMENT = re.compile(
    r"^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*"
    r"(?P<operator>\?=|:=|=)\s*(?P<value>.*)$"
)


@dataclass(frozen=True)
class Assignment:
    """One KEY<op>value line of a fragment."""

    key: str
    operator: str
    value: str

    def apply(self, bindings: dict[str, str]) -> None:
        """Bind the value, unless conditional and the key is already bound."""
        if self.operator == CONDITIONAL and self.key in bindings:
            return
        bindings[self.key] = self.value


def parse_assignments(text: str) -> list[Assignment]:
    """Parse the assignment lines of one fragment, in file order."""
    assignments = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _ASSIGNMENT.match(line)
        if match is None:
            logger.warning("Ignoring unparsable fragment line %d: %s", lineno, line)
            continue
        value = match.group("value").strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        assignments.append(
            Assignment(match.group("key"), match.group("operator"), value)
        )
    return assignments


def parse_fragment(
    text: str, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Parse one fragment.

    Args:
        text: Fragment file content.
        base: Bindings already in effect; conditional lines do not
            override them.

    Returns:
        base updated with the fragment's assignments.
    """
    bindings = dict(base) if base is not None else {}
    for assignment in parse_assignments(text):
        assignment.apply(bindings)
    return bindings


def load_fragments(
    makerc_dir: Path,
    names: Iterable[str] = DEFAULT_FRAGMENTS,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load and merge the named fragments from a directory.

    Args:
        makerc_dir: Directory holding the fragments.
        names: Fragment file names, in include order.
        base: Bindings in effect before the first fragment, usually the
            process environment.

    Returns:
        base updated with every fragment's assignments.
    """
    merged = dict(base) if base is not None else {}
    for name in names:
        path = makerc_dir / name
        if not path.is_file():
            logger.debug("Config fragment not present: %s", path)
            continue
        assignments = parse_assignments(path.read_text(encoding="utf-8"))
        logger.debug("Loaded %d assignment(s) from %s", len(assignments), path)
        for assignment in assignments:
            assignment.apply(merged)
    return merged


__all__ = [
    "DEFAULT_FRAGMENTS",
    "Assignment",
    "load_fragments",
    "parse_assignments",
    "parse_fragment",
]
