"""First-run bootstrap detection.

Keycloak needs a one-time initialization per host. Its completion is a
host-scoped fact: the presence of a well-known path (by default the
Keycloak database directory). The decision goes through the
BootstrapProbe protocol so it can be tested without touching the host.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from cello_ops.types import BootstrapState

logger = logging.getLogger(__name__)


class BootstrapProbe(Protocol):
    """Reads and records whether the host has been bootstrapped."""

    def is_complete(self) -> bool: ...

    def mark_complete(self) -> None: ...


class FileBootstrapProbe:
    """Bootstrap state backed by the existence of a host path."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def is_complete(self) -> bool:
        return self.path.exists()

    def mark_complete(self) -> None:
        """Create the marker directory if initialization did not.

        Raises:
            OSError: If the marker cannot be created.
        """
        if self.path.exists():
            return
        self.path.mkdir(parents=True, exist_ok=True)
        logger.info("Recorded bootstrap marker %s", self.path)


def decide_bootstrap(probe: BootstrapProbe) -> BootstrapState:
    """Probe the host once and decide whether initialization must run."""
    if probe.is_complete():
        return BootstrapState.COMPLETE
    return BootstrapState.PENDING


__all__ = ["BootstrapProbe", "FileBootstrapProbe", "decide_bootstrap"]
