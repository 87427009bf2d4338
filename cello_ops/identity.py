"""Image identity resolution.

This module handles:
- Mapping the host architecture to the base image of every Cello image
- Deriving the snapshot suffix from the source revision
- Producing the ArtifactSpec (and thus the tag) of a run

resolve() is pure: the same inputs always give the same ArtifactSpec.
Host and git probing happen once, when the run configuration is loaded.
"""

from __future__ import annotations

import logging
import platform
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from cello_ops.errors import CommandExecutionError, ConfigurationError
from cello_ops.types import ArtifactSpec

if TYPE_CHECKING:
    from cello_ops.runner import CommandRunner

logger = logging.getLogger(__name__)

BASE_IMAGES: dict[str, str] = {
    "x86_64": "python:3.6",
    "ppc64le": "ppc64le/python:3.6",
    "s390x": "s390x/python:3.6",
}

SHORT_REVISION_LENGTH = 7
SNAPSHOT_PREFIX = "snapshot-"


def short_revision(revision: str) -> str:
    """Abbreviate a git revision the way `git rev-parse --short` does."""
    return revision.strip()[:SHORT_REVISION_LENGTH]


def resolve(
    host_architecture: str,
    declared_version: str,
    release_mode: bool,
    git_revision: str | None,
    name: str = "",
) -> ArtifactSpec:
    """Resolve the identity of an image for this run.

    Args:
        host_architecture: Architecture to build for (e.g. 'x86_64').
        declared_version: Platform version (e.g. '0.9.0').
        release_mode: Tag without snapshot suffix.
        git_revision: Source revision; required unless release_mode.
        name: Target name of the image.

    Returns:
        ArtifactSpec for the image.

    Raises:
        ConfigurationError: If the architecture is unsupported, or no
            revision is known outside release mode.
    """
    base_image = BASE_IMAGES.get(host_architecture)
    if base_image is None:
        supported = ", ".join(sorted(BASE_IMAGES))
        raise ConfigurationError(
            f'Architecture "{host_architecture}" is unsupported '
            f"(supported: {supported})",
            code="unsupported_architecture",
        )

    if not declared_version:
        raise ConfigurationError("Version must not be empty", code="missing_version")

    snapshot_suffix: str | None = None
    if not release_mode:
        if not git_revision or not git_revision.strip():
            raise ConfigurationError(
                "Snapshot builds need a git revision; "
                "run inside a git checkout or set CELLO_GIT_REVISION",
                code="missing_git_revision",
            )
        snapshot_suffix = SNAPSHOT_PREFIX + short_revision(git_revision)

    return ArtifactSpec(
        name=name,
        base_image=base_image,
        architecture=host_architecture,
        version=declared_version,
        snapshot_suffix=snapshot_suffix,
    )


def for_target(identity: ArtifactSpec, name: str) -> ArtifactSpec:
    """Return the run identity bound to one target name."""
    return replace(identity, name=name)


def detect_host_architecture() -> str:
    """Return the host machine architecture (`uname -m`)."""
    return platform.machine()


def read_git_revision(root: Path, runner: CommandRunner) -> str | None:
    """Read the short HEAD revision of a checkout.

    Args:
        root: Checkout directory.
        runner: Command runner.

    Returns:
        Short revision, or None if git is unavailable or root is no checkout.
    """
    try:
        result = runner.run(
            ["git", "rev-parse", "--short", "HEAD"], cwd=root, capture=True
        )
    except CommandExecutionError:
        logger.warning("git is not available; no source revision")
        return None
    if not result.success or not result.output:
        logger.warning("Could not read git revision in %s", root)
        return None
    return result.output.strip()


__all__ = [
    "BASE_IMAGES",
    "detect_host_architecture",
    "for_target",
    "read_git_revision",
    "resolve",
    "short_revision",
]
