"""Shared type definitions for cello_ops.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    """Deployment mode selecting the service composition file."""

    PRODUCTION = "prod"
    DEVELOPMENT = "dev"


class TargetKind(str, Enum):
    """Kind of node in the build graph."""

    LEAF = "leaf"
    COMPOSITE = "composite"


class LifecycleState(str, Enum):
    """State of the composed service set."""

    STOPPED = "stopped"
    BOOTSTRAPPING = "bootstrapping"
    RUNNING = "running"


class BootstrapState(str, Enum):
    """Whether the one-time identity-provider initialization has run."""

    PENDING = "pending"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ArtifactSpec:
    """Identity of one buildable container image.

    Attributes:
        name: Target name (e.g. 'engine'); empty for a bare run identity.
        base_image: Base image reference substituted into the Dockerfile.
        architecture: Host architecture the image is built for.
        version: Declared platform version.
        snapshot_suffix: 'snapshot-<rev>' outside release mode, else None.
    """

    name: str
    base_image: str
    architecture: str
    version: str
    snapshot_suffix: str | None = None

    @property
    def tag(self) -> str:
        """Image tag, e.g. 'x86_64-0.9.0-snapshot-abc1234'."""
        base = f"{self.architecture}-{self.version}"
        if self.snapshot_suffix:
            return f"{base}-{self.snapshot_suffix}"
        return base


__all__ = [
    "ArtifactSpec",
    "BootstrapState",
    "LifecycleState",
    "Mode",
    "TargetKind",
]
