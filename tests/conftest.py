"""Shared fixtures for cello_ops tests.

External commands never run: FakeRunner records every command and
answers with a canned result.
"""

import os
import shlex
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cello_ops.builds.catalog import DEFAULT_IMAGES
from cello_ops.config import Settings
from cello_ops.context import RunConfig, load_run_config
from cello_ops.runner import CommandResult

# Variables the settings read under their bare names
_BARE_VARIABLES = (
    "MODE",
    "IS_RELEASE",
    "VERSION",
    "ARCH",
    "DOCKER_NS",
    "SERVER_PUBLIC_IP",
    "WORKER_TYPE",
    "DOCKER_HUB_USERNAME",
    "DOCKER_HUB_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell configuration out of the tests."""
    for name in list(os.environ):
        if name.startswith("CELLO_") or name in _BARE_VARIABLES:
            monkeypatch.delenv(name, raising=False)


@dataclass
class RecordedCall:
    cmd: list[str]
    cwd: Path | None
    env: dict[str, str] | None
    log_path: Path | None
    input_text: str | None


class FakeRunner:
    """Recording stand-in for CommandRunner.

    Args:
        fail_on: Predicate selecting commands that exit non-zero.
        outputs: Captured output per command word (e.g. {"images": "id1"}).
        spawn_error: Error raised by spawn() instead of launching.
        spawn_returncode: What poll() of a spawned process reports.
    """

    def __init__(
        self,
        fail_on: Callable[[list[str]], bool] | None = None,
        outputs: dict[str, str] | None = None,
        spawn_error: Exception | None = None,
        spawn_returncode: int | None = None,
    ) -> None:
        self.fail_on = fail_on or (lambda cmd: False)
        self.outputs = outputs or {}
        self.spawn_error = spawn_error
        self.spawn_returncode = spawn_returncode
        self.calls: list[RecordedCall] = []
        self.spawned: list[list[str]] = []

    @property
    def commands(self) -> list[list[str]]:
        return [c.cmd for c in self.calls]

    def run(
        self,
        cmd,
        cwd=None,
        env=None,
        log_path=None,
        input_text=None,
        capture=False,
    ) -> CommandResult:
        cmd = list(cmd)
        self.calls.append(
            RecordedCall(
                cmd=cmd,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                log_path=log_path,
                input_text=input_text,
            )
        )
        failed = self.fail_on(cmd)
        output = None
        if capture:
            output = next((v for k, v in self.outputs.items() if k in cmd), "")
        now = datetime.now(timezone.utc)
        return CommandResult(
            success=not failed,
            exit_code=1 if failed else 0,
            command=shlex.join(cmd),
            started_at=now,
            finished_at=now,
            log_path=log_path,
            output=output,
            error_message=f"{cmd[0]} exited with code 1" if failed else None,
        )

    def spawn(self, cmd, cwd=None, env=None) -> MagicMock:
        if self.spawn_error is not None:
            raise self.spawn_error
        self.spawned.append(list(cmd))
        process = MagicMock(pid=4242)
        process.poll.return_value = self.spawn_returncode
        return process


class MemoryProbe:
    """Bootstrap probe holding its state in memory."""

    def __init__(self, complete: bool = False) -> None:
        self.complete = complete
        self.marked = 0

    def is_complete(self) -> bool:
        return self.complete

    def mark_complete(self) -> None:
        self.complete = True
        self.marked += 1


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A runner where every command succeeds."""
    return FakeRunner()


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    """Factory for runners with failures or canned output."""
    return FakeRunner


@pytest.fixture
def make_probe() -> Callable[..., MemoryProbe]:
    """Factory for in-memory bootstrap probes."""
    return MemoryProbe


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Factory for settings rooted at tmp_path (x86_64, 0.9.0, abc1234)."""

    def factory(**overrides) -> Settings:
        values = {
            "root_path": tmp_path,
            "arch": "x86_64",
            "version": "0.9.0",
            "git_revision": "abc1234",
            "bootstrap_marker": tmp_path / "opt" / "keycloak-mysql",
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def make_run_config(make_settings) -> Callable[..., RunConfig]:
    """Factory for run configurations that never consult the real host."""

    def factory(environ: dict[str, str] | None = None, **overrides) -> RunConfig:
        return load_run_config(
            make_settings(**overrides),
            runner=FakeRunner(),
            environ=environ or {},
        )

    return factory


@pytest.fixture
def image_templates(tmp_path: Path) -> Path:
    """Write a Dockerfile.in template for every default image."""
    for name in DEFAULT_IMAGES:
        template = tmp_path / "build_image" / "docker" / name / "Dockerfile.in"
        template.parent.mkdir(parents=True, exist_ok=True)
        if name == "baseimage":
            template.write_text("FROM _DOCKER_BASE_\nLABEL tag=_TAG_\n")
        else:
            template.write_text("FROM _NS_/cello-baseimage:_TAG_\n")
    return tmp_path


@pytest.fixture
def env_template(tmp_path: Path) -> Path:
    """Write the compose environment template."""
    template = tmp_path / "configs" / "env.tmpl"
    template.parent.mkdir(parents=True, exist_ok=True)
    template.write_text(
        "SERVER_PUBLIC_IP=${SERVER_PUBLIC_IP}\nMODE=$MODE\nROOT_PATH=${ROOT_PATH}\n"
    )
    return template

