"""Immutable run configuration.

Settings, the process environment, the .makerc config fragments, the host
architecture and the git revision are read exactly once, here, and frozen
into a RunConfig that every component receives explicitly.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from cello_ops.config import Settings, get_settings, parse_mode
from cello_ops.errors import ConfigurationError
from cello_ops.identity import detect_host_architecture, read_git_revision
from cello_ops.makerc import load_fragments
from cello_ops.runner import CommandRunner
from cello_ops.types import Mode

logger = logging.getLogger(__name__)

# Settings fields whose defaults yield to the environment and fragments
_FRAGMENT_DEFAULTED = {
    "mode": "MODE",
    "worker_type": "WORKER_TYPE",
    "server_public_ip": "SERVER_PUBLIC_IP",
}


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs to know about its environment.

    Attributes:
        settings: Effective settings.
        mode: Deployment mode.
        release_mode: Tag images without a snapshot suffix.
        version: Declared platform version.
        architecture: Architecture images are built for.
        git_revision: Short source revision, if known.
        root_path: Checkout root; build context and base of relative paths.
        environment: Process environment merged with config fragments and
            the values derived from settings. MODE and WORKER_TYPE are
            always bound.
    """

    settings: Settings
    mode: Mode
    release_mode: bool
    version: str
    architecture: str
    git_revision: str | None
    root_path: Path
    environment: Mapping[str, str]

    @property
    def image_basename(self) -> str:
        return self.settings.image_basename

    @property
    def worker_type(self) -> str:
        return self.environment["WORKER_TYPE"]

    @property
    def build_dir(self) -> Path:
        return self.path(self.settings.build_dir)

    def path(self, path: Path) -> Path:
        """Resolve a configured path against the checkout root."""
        return path if path.is_absolute() else self.root_path / path


def _derived_bindings(
    settings: Settings, root_path: Path, environment: Mapping[str, str]
) -> dict[str, str]:
    """Bindings computed from settings, applied over the fragments.

    ROOT_PATH, VERSION and DOCKER_NS always come from settings. MODE,
    WORKER_TYPE and SERVER_PUBLIC_IP come from settings when given
    explicitly; otherwise a value from the environment or a fragment is
    kept and the settings default only fills a gap.
    """
    bindings = {
        "ROOT_PATH": str(root_path),
        "VERSION": settings.version,
        "DOCKER_NS": settings.docker_ns,
    }
    for field_name, key in _FRAGMENT_DEFAULTED.items():
        value = getattr(settings, field_name)
        if value is None:
            continue
        value = value.value if isinstance(value, Mode) else str(value)
        if field_name in settings.model_fields_set or key not in environment:
            bindings[key] = value
    return bindings


def _resolve_mode(environment: Mapping[str, str]) -> Mode:
    try:
        return parse_mode(environment["MODE"])
    except ValueError as e:
        raise ConfigurationError(str(e), code="invalid_mode") from e


def load_run_config(
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunConfig:
    """Capture the run configuration.

    Args:
        settings: Settings; loaded from the environment if not provided.
        runner: Command runner used to query git.
        environ: Process environment; os.environ if not provided.

    Returns:
        Frozen RunConfig.

    Raises:
        ConfigurationError: If MODE from a fragment is not a known mode.
    """
    if settings is None:
        settings = get_settings()
    if runner is None:
        runner = CommandRunner()
    if environ is None:
        environ = os.environ

    root_path = settings.root_path.resolve()
    architecture = settings.arch or detect_host_architecture()

    git_revision = settings.git_revision
    if git_revision is None and not settings.is_release:
        git_revision = read_git_revision(root_path, runner)

    environment = load_fragments(
        settings.resolve_path(settings.makerc_dir), base=environ
    )
    environment.update(_derived_bindings(settings, root_path, environment))
    mode = _resolve_mode(environment)

    logger.debug(
        "Run configuration: mode=%s arch=%s version=%s release=%s revision=%s",
        mode.value,
        architecture,
        settings.version,
        settings.is_release,
        git_revision,
    )

    return RunConfig(
        settings=settings,
        mode=mode,
        release_mode=settings.is_release,
        version=settings.version,
        architecture=architecture,
        git_revision=git_revision,
        root_path=root_path,
        environment=MappingProxyType(environment),
    )


__all__ = ["RunConfig", "load_run_config"]
