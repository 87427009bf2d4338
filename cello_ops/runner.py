"""Command runner for the external docker and docker-compose CLIs.

This module handles:
- Composing docker / docker-compose command lines
- Executing them with subprocess, blocking until they finish
- Capturing output to a log file when one is requested
- Launching fire-and-forget commands

Every external collaborator is reached through CommandRunner, so tests
can substitute a recording fake.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from cello_ops.errors import CommandExecutionError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        success: Whether the command exited with status 0.
        exit_code: Process exit code.
        command: The command that was executed, shell-quoted.
        started_at: Start time.
        finished_at: Finish time.
        log_path: Log file the output was captured to, if any.
        output: Captured stdout when capture was requested.
        error_message: Error message if the command failed.
    """

    success: bool
    exit_code: int
    command: str
    started_at: datetime
    finished_at: datetime
    log_path: Path | None = None
    output: str | None = None
    error_message: str | None = None


def compose_docker_build_command(
    docker: str,
    dockerfile: Path,
    image_name: str,
    tag: str,
    context_dir: Path,
) -> list[str]:
    """Compose `docker build`, tagging the image bare and with its tag.

    Args:
        docker: docker CLI executable.
        dockerfile: Concretized Dockerfile.
        image_name: Image name without tag (e.g. 'hyperledger/cello-engine').
        tag: Image tag.
        context_dir: Build context directory.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [
        *shlex.split(docker),
        "build",
        "-f",
        str(dockerfile),
        "-t",
        image_name,
        "-t",
        f"{image_name}:{tag}",
        str(context_dir),
    ]


def compose_compose_command(
    compose: str,
    compose_file: Path,
    *args: str,
) -> list[str]:
    """Compose a docker-compose invocation against one compose file.

    Args:
        compose: docker-compose CLI executable.
        compose_file: Compose file to operate on.
        *args: Subcommand and its arguments.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [*shlex.split(compose), "-f", str(compose_file), *args]


class CommandRunner:
    """Runs external commands with subprocess."""

    def run(
        self,
        cmd: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        log_path: Path | None = None,
        input_text: str | None = None,
        capture: bool = False,
    ) -> CommandResult:
        """Run a command to completion.

        Output goes to log_path when given, is captured when capture is set,
        and is otherwise inherited from this process.

        Args:
            cmd: Command and arguments.
            cwd: Working directory.
            env: Complete environment for the child (inherits ours if None).
            log_path: Optional log file for stdout/stderr.
            input_text: Optional text fed to stdin.
            capture: Capture stdout into CommandResult.output.

        Returns:
            CommandResult with execution details.

        Raises:
            CommandExecutionError: If the command cannot be started.
        """
        cmd_str = shlex.join(cmd)
        logger.info("Executing: %s", cmd_str)
        if cwd is not None:
            logger.debug("Working directory: %s", cwd)

        started_at = datetime.now(timezone.utc)
        env_dict = dict(env) if env is not None else None

        try:
            if log_path is not None:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                with log_path.open("w") as log_file:
                    log_file.write(f"# Command: {cmd_str}\n")
                    log_file.write(f"# Started: {started_at.isoformat()}\n")
                    log_file.write(f"# CWD: {cwd}\n")
                    log_file.write("# " + "=" * 70 + "\n\n")
                    log_file.flush()

                    result = subprocess.run(
                        list(cmd),
                        cwd=cwd,
                        env=env_dict,
                        input=input_text,
                        stdout=log_file,
                        stderr=subprocess.STDOUT,
                        text=True,
                        check=False,
                    )
            else:
                result = subprocess.run(
                    list(cmd),
                    cwd=cwd,
                    env=env_dict,
                    input=input_text,
                    capture_output=capture,
                    text=True,
                    check=False,
                )
        except OSError as e:
            message = f"Failed to execute {cmd[0]}: {e}"
            logger.error(message)
            raise CommandExecutionError(message) from e

        finished_at = datetime.now(timezone.utc)
        exit_code = result.returncode
        success = exit_code == 0
        error_message: str | None = None

        if log_path is not None:
            with log_path.open("a") as log_file:
                log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
                log_file.write(f"# Exit code: {exit_code}\n")
                duration = (finished_at - started_at).total_seconds()
                log_file.write(f"# Duration: {duration:.1f}s\n")

        if not success:
            error_message = f"{cmd[0]} exited with code {exit_code}"
            if log_path is not None:
                logger.error("%s. See log: %s", error_message, log_path)
            else:
                logger.error(error_message)

        return CommandResult(
            success=success,
            exit_code=exit_code,
            command=cmd_str,
            started_at=started_at,
            finished_at=finished_at,
            log_path=log_path,
            output=result.stdout if capture else None,
            error_message=error_message,
        )

    def spawn(
        self,
        cmd: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.Popen[bytes]:
        """Start a command without waiting for it.

        Args:
            cmd: Command and arguments.
            cwd: Working directory.
            env: Complete environment for the child (inherits ours if None).

        Returns:
            The running process.

        Raises:
            CommandExecutionError: If the command cannot be started.
        """
        cmd_str = shlex.join(cmd)
        logger.info("Launching: %s", cmd_str)
        try:
            return subprocess.Popen(
                list(cmd),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            message = f"Failed to launch {cmd[0]}: {e}"
            logger.error(message)
            raise CommandExecutionError(message) from e


__all__ = [
    "CommandResult",
    "CommandRunner",
    "compose_compose_command",
    "compose_docker_build_command",
]
