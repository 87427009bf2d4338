"""Service composition selection.

The deployment mode picks exactly one docker-compose file. The selection
is made once at the start of a lifecycle operation and held for its
duration.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from cello_ops.types import Mode

if TYPE_CHECKING:
    from cello_ops.context import RunConfig

COMPOSE_FILES: dict[Mode, str] = {
    Mode.PRODUCTION: "docker-compose.yml",
    Mode.DEVELOPMENT: "docker-compose-dev.yml",
}

# One-time Keycloak initialization
INITIAL_COMPOSE_FILE = "docker-compose-initial.yml"
# Shared NFS storage service
STORAGE_COMPOSE_FILE = "docker-compose-nfs.yml"


@dataclass(frozen=True)
class ServiceComposition:
    """The active composition of one lifecycle operation.

    Attributes:
        mode: Deployment mode.
        file_path: docker-compose file for the mode.
        environment: Environment the compose actions run with.
    """

    mode: Mode
    file_path: Path
    environment: Mapping[str, str]


def compose_file(config: RunConfig, name: str) -> Path:
    """Path of a file in the compose directory."""
    return config.path(config.settings.compose_dir) / name


def select_composition(config: RunConfig) -> ServiceComposition:
    """Select the composition for the configured mode."""
    return ServiceComposition(
        mode=config.mode,
        file_path=compose_file(config, COMPOSE_FILES[config.mode]),
        environment=MappingProxyType(dict(config.environment)),
    )


__all__ = [
    "COMPOSE_FILES",
    "INITIAL_COMPOSE_FILE",
    "STORAGE_COMPOSE_FILE",
    "ServiceComposition",
    "compose_file",
    "select_composition",
]
