"""Build target graph.

The graph is built from the catalog once per run and validated up front:
every reference must name a declared target and the graph must be acyclic.
plan() turns requested target names into the ordered list of leaf targets
to build, visiting every node at most once.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from cello_ops.builds.catalog import TargetSchema
from cello_ops.errors import ConfigurationError
from cello_ops.types import TargetKind


class BuildGraph:
    """Directed acyclic graph of build targets."""

    def __init__(self, targets: Iterable[TargetSchema]) -> None:
        self._targets: dict[str, TargetSchema] = {}
        for target in targets:
            if target.name in self._targets:
                raise ConfigurationError(
                    f"Target declared twice: {target.name}", code="duplicate_target"
                )
            self._targets[target.name] = target

        for target in self._targets.values():
            for req in target.requires:
                if req not in self._targets:
                    raise ConfigurationError(
                        f"Target {target.name} requires unknown target {req}",
                        code="unknown_target",
                    )
            if target.kind == TargetKind.COMPOSITE and not target.requires:
                raise ConfigurationError(
                    f"Composite target {target.name} has no members",
                    code="empty_composite",
                )

        self._validate_no_cycles()

    def _validate_no_cycles(self) -> None:
        """Verify the graph is a DAG using Kahn's algorithm."""
        in_degree = {name: len(t.requires) for name, t in self._targets.items()}
        dependents: dict[str, list[str]] = {name: [] for name in self._targets}
        for name, target in self._targets.items():
            for req in target.requires:
                dependents[req].append(name)

        queue = deque(name for name, deg in in_degree.items() if deg == 0)
        visited = 0
        while queue:
            node = queue.popleft()
            visited += 1
            for dep in dependents[node]:
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if visited != len(self._targets):
            cyclic = sorted(name for name, deg in in_degree.items() if deg > 0)
            raise ConfigurationError(
                f"Target graph has a cycle through: {', '.join(cyclic)}",
                code="cyclic_targets",
            )

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def get(self, name: str) -> TargetSchema:
        """Return a declared target.

        Raises:
            ConfigurationError: If no such target is declared.
        """
        try:
            return self._targets[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown target: {name}", code="unknown_target"
            ) from None

    @property
    def targets(self) -> list[TargetSchema]:
        """All targets in declaration order."""
        return list(self._targets.values())

    def plan(self, names: Iterable[str]) -> list[TargetSchema]:
        """Return the leaf targets needed for names, in build order.

        Prerequisites come before the targets needing them; otherwise request
        and declaration order are kept. Each leaf appears once even when
        several requested targets share it.

        Raises:
            ConfigurationError: If a requested target is unknown.
        """
        requested = [self.get(name) for name in names]
        ordered: list[TargetSchema] = []
        visited: set[str] = set()

        def visit(target: TargetSchema) -> None:
            if target.name in visited:
                return
            visited.add(target.name)
            for req in target.requires:
                visit(self._targets[req])
            if target.kind == TargetKind.LEAF:
                ordered.append(target)

        for target in requested:
            visit(target)
        return ordered


__all__ = ["BuildGraph"]
