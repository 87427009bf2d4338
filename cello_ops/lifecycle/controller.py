"""Service lifecycle controller.

Drives the composed Cello services through STOPPED -> (BOOTSTRAPPING ->)
RUNNING and back. Every compose action blocks until it finishes, except
the shared storage launch at the end of start. A failing step aborts the
rest of the transition without undoing the steps before it.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cello_ops.errors import (
    CommandExecutionError,
    ConfigurationError,
    LifecycleActionError,
)
from cello_ops.lifecycle.bootstrap import (
    BootstrapProbe,
    FileBootstrapProbe,
    decide_bootstrap,
)
from cello_ops.lifecycle.composition import (
    INITIAL_COMPOSE_FILE,
    STORAGE_COMPOSE_FILE,
    ServiceComposition,
    compose_file,
    select_composition,
)
from cello_ops.lifecycle.service_secrets import ServiceSecrets
from cello_ops.runner import CommandRunner, compose_compose_command
from cello_ops.templates import SHELL, materialize
from cello_ops.types import BootstrapState, LifecycleState, Mode

if TYPE_CHECKING:
    from cello_ops.context import RunConfig

logger = logging.getLogger(__name__)

PUBLIC_ENDPOINT_VARIABLE = "SERVER_PUBLIC_IP"

# Step names, in the order start() runs them
STEP_VALIDATE = "validate-environment"
STEP_ENV_FILE = "materialize-environment"
STEP_FRONTEND = "build-frontend"
STEP_BOOTSTRAP = "bootstrap-identity-provider"
STEP_SERVICES_UP = "services-up"
STEP_STORAGE_UP = "storage-up"
STEP_SERVICES_STOP = "services-stop"
STEP_SERVICES_REMOVE = "services-remove"


@dataclass
class TransitionResult:
    """Outcome of a lifecycle transition.

    Attributes:
        state: State after the transition.
        composition: Composition the transition acted on.
        steps: Steps run, in order.
        bootstrapped: Whether the one-time initialization ran.
        storage_launched: Whether the storage service launch was issued.
    """

    state: LifecycleState
    composition: ServiceComposition
    steps: list[str] = field(default_factory=list)
    bootstrapped: bool = False
    storage_launched: bool = False


class ServiceLifecycleController:
    """Brings the composed service set up and down."""

    def __init__(
        self,
        config: RunConfig,
        runner: CommandRunner | None = None,
        probe: BootstrapProbe | None = None,
    ) -> None:
        self.config = config
        self.runner = runner if runner is not None else CommandRunner()
        self.probe = (
            probe
            if probe is not None
            else FileBootstrapProbe(config.path(config.settings.bootstrap_marker))
        )
        self.state = LifecycleState.STOPPED
        self.storage_process: subprocess.Popen[bytes] | None = None

    @property
    def _compose(self) -> str:
        return self.config.settings.compose_command

    def _run_step(
        self,
        step: str,
        cmd: Sequence[str],
        steps: list[str],
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Run one blocking step, recording it on success.

        Raises:
            LifecycleActionError: If the command cannot start or fails.
        """
        try:
            result = self.runner.run(
                cmd,
                cwd=self.config.root_path,
                env=env if env is not None else self.config.environment,
            )
        except CommandExecutionError as e:
            raise LifecycleActionError(
                f"Step {step} could not run: {e}",
                step=step,
                completed_steps=list(steps),
                code="execution_error",
            ) from e
        if not result.success:
            raise LifecycleActionError(
                f"Step {step} failed: {result.error_message}",
                step=step,
                completed_steps=list(steps),
            )
        steps.append(step)

    def require_public_endpoint(self, composition: ServiceComposition) -> str:
        """Return the public endpoint address.

        Raises:
            ConfigurationError: If SERVER_PUBLIC_IP is not set.
        """
        value = composition.environment.get(PUBLIC_ENDPOINT_VARIABLE, "").strip()
        if not value:
            raise ConfigurationError(
                f"Environment variable {PUBLIC_ENDPOINT_VARIABLE} not set",
                code="missing_environment",
            )
        return value

    def materialize_environment(self, composition: ServiceComposition) -> None:
        """Write the compose environment file from its template.

        Raises:
            TemplateError: If the template is missing or has unbound values.
        """
        settings = self.config.settings
        materialize(
            self.config.path(settings.env_template),
            composition.environment,
            self.config.path(settings.env_file),
            syntax=SHELL,
        )

    def start(self, secrets: ServiceSecrets | None = None) -> TransitionResult:
        """Start all services, bootstrapping Keycloak on the first start.

        Args:
            secrets: Optional dashboard SSO secrets passed to the services.

        Returns:
            TransitionResult in state RUNNING.

        Raises:
            ConfigurationError: If the public endpoint is not set.
            TemplateError: If the environment file cannot be materialized.
            LifecycleActionError: If a compose action fails.
        """
        composition = select_composition(self.config)
        steps: list[str] = []

        self.require_public_endpoint(composition)
        steps.append(STEP_VALIDATE)

        self.materialize_environment(composition)
        steps.append(STEP_ENV_FILE)

        logger.info("Start all services with %s", composition.file_path)

        if composition.mode == Mode.DEVELOPMENT:
            self._run_step(
                STEP_FRONTEND,
                shlex.split(self.config.settings.frontend_build_command),
                steps,
                env=composition.environment,
            )

        bootstrapped = False
        if decide_bootstrap(self.probe) == BootstrapState.PENDING:
            self.state = LifecycleState.BOOTSTRAPPING
            logger.info("Initializing Keycloak (first start on this host)")
            self._run_step(
                STEP_BOOTSTRAP,
                compose_compose_command(
                    self._compose,
                    compose_file(self.config, INITIAL_COMPOSE_FILE),
                    "up",
                    "--abort-on-container-exit",
                ),
                steps,
                env=composition.environment,
            )
            try:
                self.probe.mark_complete()
            except OSError as e:
                raise LifecycleActionError(
                    f"Could not record bootstrap marker: {e}",
                    step=STEP_BOOTSTRAP,
                    completed_steps=list(steps),
                    code="bootstrap_marker_error",
                ) from e
            bootstrapped = True
        else:
            logger.info("Keycloak already initialized; skipping bootstrap")

        services_env = dict(composition.environment)
        if secrets is not None:
            services_env.update(secrets.as_environment())
        self._run_step(
            STEP_SERVICES_UP,
            compose_compose_command(
                self._compose, composition.file_path, "up", "-d", "--force-recreate"
            ),
            steps,
            env=services_env,
        )
        self.state = LifecycleState.RUNNING
        logger.info(
            "Now you can visit operator-dashboard at localhost:8080, "
            "or user-dashboard at localhost:8081"
        )

        storage_launched = self._launch_storage(composition)
        if storage_launched:
            steps.append(STEP_STORAGE_UP)

        return TransitionResult(
            state=self.state,
            composition=composition,
            steps=steps,
            bootstrapped=bootstrapped,
            storage_launched=storage_launched,
        )

    def _launch_storage(self, composition: ServiceComposition) -> bool:
        self.reap_storage()
        cmd = compose_compose_command(
            self._compose,
            compose_file(self.config, STORAGE_COMPOSE_FILE),
            "up",
            "-d",
            "--no-recreate",
        )
        try:
            self.storage_process = self.runner.spawn(
                cmd, cwd=self.config.root_path, env=composition.environment
            )
        except CommandExecutionError as e:
            logger.warning(
                "Storage service launch failed, services keep running: %s", e
            )
            return False
        return True

    def reap_storage(self) -> int | None:
        """Collect the exit status of the storage launch issued by start.

        Never waits. The status is logged once it is known.

        Returns:
            Exit code, or None while the launch runs or if none was issued.
        """
        process = self.storage_process
        if process is None:
            return None
        returncode = process.poll()
        if returncode is None:
            logger.debug("Storage service launch still running (pid %s)", process.pid)
            return None
        self.storage_process = None
        if returncode == 0:
            logger.info("Storage service launch finished")
        else:
            logger.warning("Storage service launch exited with code %s", returncode)
        return returncode

    def stop(self) -> TransitionResult:
        """Stop and remove all service containers.

        The bootstrap marker and the storage service are left alone.

        Raises:
            LifecycleActionError: If a compose action fails.
        """
        composition = select_composition(self.config)
        steps: list[str] = []

        logger.info("Stop all services with %s", composition.file_path)
        self._run_step(
            STEP_SERVICES_STOP,
            compose_compose_command(self._compose, composition.file_path, "stop"),
            steps,
            env=composition.environment,
        )
        logger.info("Remove all services with %s", composition.file_path)
        self._run_step(
            STEP_SERVICES_REMOVE,
            compose_compose_command(
                self._compose, composition.file_path, "rm", "-f", "-a"
            ),
            steps,
            env=composition.environment,
        )
        self.state = LifecycleState.STOPPED
        return TransitionResult(state=self.state, composition=composition, steps=steps)

    def restart(self, secrets: ServiceSecrets | None = None) -> TransitionResult:
        """Stop, then start."""
        stopped = self.stop()
        started = self.start(secrets)
        started.steps = stopped.steps + started.steps
        return started

    def logs(self, service: str | None = None, follow: bool = True) -> None:
        """Tail service logs; all services when service is None.

        Raises:
            LifecycleActionError: If docker-compose fails.
        """
        composition = select_composition(self.config)
        args = ["logs", f"--tail={self.config.settings.log_tail}"]
        if follow:
            args.append("-f")
        if service:
            args.append(service)
        self._run_step(
            "logs",
            compose_compose_command(self._compose, composition.file_path, *args),
            [],
            env=composition.environment,
        )

    def start_storage(self) -> None:
        """Start the shared storage service and wait for docker-compose."""
        self._run_step(
            STEP_STORAGE_UP,
            compose_compose_command(
                self._compose,
                compose_file(self.config, STORAGE_COMPOSE_FILE),
                "up",
                "-d",
                "--no-recreate",
            ),
            [],
        )

    def stop_storage(self) -> None:
        """Stop and remove the shared storage service."""
        self._run_step(
            "storage-down",
            compose_compose_command(
                self._compose, compose_file(self.config, STORAGE_COMPOSE_FILE), "down"
            ),
            [],
        )


__all__ = [
    "PUBLIC_ENDPOINT_VARIABLE",
    "ServiceLifecycleController",
    "TransitionResult",
]
