"""Host setup.

Runs the master/worker node setup scripts shipped with the Cello sources.
The worker flavour comes from WORKER_TYPE (settings or .makerc/worker-node).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cello_ops.errors import CommandExecutionError, LifecycleActionError
from cello_ops.runner import CommandRunner

if TYPE_CHECKING:
    from cello_ops.context import RunConfig

logger = logging.getLogger(__name__)

MASTER_SCRIPT_DIR = "scripts/master_node"
WORKER_SCRIPT_DIR = "scripts/worker_node"


def _run_setup(
    config: RunConfig, runner: CommandRunner, script_dir: str, *args: str
) -> None:
    cwd = config.root_path / script_dir
    step = f"setup:{script_dir}"
    try:
        result = runner.run(
            ["bash", "setup.sh", *args], cwd=cwd, env=config.environment
        )
    except CommandExecutionError as e:
        raise LifecycleActionError(str(e), step=step, code="execution_error") from e
    if not result.success:
        raise LifecycleActionError(
            f"Host setup in {script_dir} failed: {result.error_message}", step=step
        )


def setup_master(config: RunConfig, runner: CommandRunner | None = None) -> None:
    """Install master node dependencies and pull service images."""
    _run_setup(config, runner or CommandRunner(), MASTER_SCRIPT_DIR)


def setup_worker(config: RunConfig, runner: CommandRunner | None = None) -> None:
    """Install worker node dependencies for the configured worker type."""
    worker_type = config.worker_type
    logger.info("Setting up %s worker node", worker_type)
    _run_setup(config, runner or CommandRunner(), WORKER_SCRIPT_DIR, worker_type)


__all__ = ["setup_master", "setup_worker"]
