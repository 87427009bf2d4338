"""Build engine.

This module provides the high-level build API:
- build(): evaluate requested targets in dependency order
- Memoization by target name, backed by on-disk build markers
- Image cleanup

Identity is resolved and every template rendered before the first image
build runs, so configuration and template errors never leave partial
builds behind. A failing image build stops the run; images built before it
keep their markers.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cello_ops.builds.catalog import TargetSchema, default_targets, load_catalog
from cello_ops.builds.graph import BuildGraph
from cello_ops.builds.markers import (
    BuildMarker,
    clean,
    marker_for,
    target_dir,
    write_marker,
)
from cello_ops.errors import BuildActionError, CommandExecutionError
from cello_ops.identity import for_target, resolve
from cello_ops.runner import CommandRunner, compose_docker_build_command
from cello_ops.templates import UNDERSCORE, read_template, render, write_output
from cello_ops.types import ArtifactSpec

if TYPE_CHECKING:
    from cello_ops.context import RunConfig

logger = logging.getLogger(__name__)


def image_name(basename: str, target: str) -> str:
    """Repository name of a target's image, e.g. 'hyperledger/cello-engine'."""
    return f"{basename}-{target}"


def load_graph(config: RunConfig) -> BuildGraph:
    """Build the target graph from the configured catalog (or the defaults)."""
    targets_file = config.settings.targets_file
    if targets_file is None:
        return BuildGraph(default_targets())
    return BuildGraph(load_catalog(config.path(targets_file)))


@dataclass
class _PreparedBuild:
    target: TargetSchema
    artifact: ArtifactSpec
    marker: BuildMarker
    dockerfile: str


class BuildEngine:
    """Evaluates build targets for one invocation.

    Constructing the engine resolves the run identity, so an unsupported
    architecture fails before anything else happens.
    """

    def __init__(
        self,
        config: RunConfig,
        graph: BuildGraph | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config = config
        self.identity = resolve(
            config.architecture,
            config.version,
            config.release_mode,
            config.git_revision,
        )
        self.graph = graph if graph is not None else load_graph(config)
        self.runner = runner if runner is not None else CommandRunner()
        # Built by this engine vs. found up to date on disk; force only
        # bypasses the latter
        self._built: dict[str, BuildMarker] = {}
        self._satisfied: set[str] = set()

    @property
    def tag(self) -> str:
        return self.identity.tag

    def template_bindings(self) -> dict[str, str]:
        """Placeholder values for Dockerfile.in templates."""
        return {
            "DOCKER_BASE": self.identity.base_image,
            "NS": self.config.settings.docker_ns,
            "TAG": self.identity.tag,
        }

    def marker(self, target: str) -> BuildMarker:
        return marker_for(self.config.build_dir, target, self.identity.tag)

    def is_satisfied(self, target: str) -> bool:
        """Whether a leaf target was built in this invocation or has a marker."""
        return (
            target in self._built
            or target in self._satisfied
            or self.marker(target).exists()
        )

    def build(
        self, target_names: Iterable[str], force: bool = False
    ) -> set[ArtifactSpec]:
        """Build the requested targets.

        Args:
            target_names: Leaf and/or composite target names.
            force: Ignore markers left by earlier invocations. Targets built
                in this invocation are still never rebuilt.

        Returns:
            Artifacts of every leaf target reached from target_names.

        Raises:
            ConfigurationError: If a target is unknown.
            TemplateError: If a template is missing or cannot be rendered.
            BuildActionError: If an image build fails; error.completed holds
                the artifacts already satisfied.
        """
        plan = self.graph.plan(target_names)
        logger.info(
            "Build plan (tag %s): %s",
            self.identity.tag,
            ", ".join(t.name for t in plan) or "(nothing)",
        )

        completed: set[ArtifactSpec] = set()
        pending: list[_PreparedBuild] = []
        bindings = self.template_bindings()

        for target in plan:
            artifact = for_target(self.identity, target.name)
            marker = self.marker(target.name)
            if target.name in self._built:
                logger.debug("Target %s already built in this run", target.name)
                completed.add(artifact)
                continue
            if not force and marker.exists():
                logger.info("Target %s is up to date (%s)", target.name, marker.path)
                self._satisfied.add(target.name)
                completed.add(artifact)
                continue

            template_path = self.config.path(target.template_path())
            dockerfile = render(
                read_template(template_path),
                bindings,
                UNDERSCORE,
                source=str(template_path),
            )
            pending.append(_PreparedBuild(target, artifact, marker, dockerfile))

        for prepared in pending:
            self._build_one(prepared, completed)
            completed.add(prepared.artifact)

        return completed

    def _build_one(
        self, prepared: _PreparedBuild, completed: set[ArtifactSpec]
    ) -> None:
        name = prepared.target.name
        workdir = target_dir(self.config.build_dir, name)
        dockerfile = write_output(prepared.dockerfile, workdir / "Dockerfile")
        log_path = workdir / "build.log"
        repo = image_name(self.config.image_basename, name)

        logger.info("Building docker %s", name)
        cmd = compose_docker_build_command(
            self.config.settings.docker_command,
            dockerfile,
            repo,
            self.identity.tag,
            self.config.root_path,
        )
        try:
            result = self.runner.run(
                cmd,
                cwd=self.config.root_path,
                env=self.config.environment,
                log_path=log_path,
            )
        except CommandExecutionError as e:
            raise BuildActionError(
                f"Could not run image build for {name}: {e}",
                target=name,
                completed=set(completed),
                code="execution_error",
            ) from e

        if not result.success:
            raise BuildActionError(
                f"Image build for {name} failed: {result.error_message}",
                target=name,
                completed=set(completed),
                log_path=str(log_path),
            )

        self._built[name] = write_marker(prepared.marker)
        logger.info("Built %s:%s", repo, self.identity.tag)

    def clean(self, images: bool = False) -> None:
        """Remove build outputs and markers; optionally local images too.

        Raises:
            BuildActionError: If removing images fails.
        """
        clean_build_area(self.config, images=images, runner=self.runner)
        self._built.clear()
        self._satisfied.clear()


def clean_build_area(
    config: RunConfig, images: bool = False, runner: CommandRunner | None = None
) -> None:
    """Remove build outputs and markers; optionally local images too.

    Needs no image identity, so it works outside a git checkout.

    Raises:
        BuildActionError: If removing images fails.
    """
    clean(config.build_dir)
    if images:
        remove_images(config, runner)


def remove_images(config: RunConfig, runner: CommandRunner | None = None) -> list[str]:
    """Remove every local image of this platform.

    Returns:
        Removed image IDs.

    Raises:
        BuildActionError: If listing or removing images fails.
    """
    if runner is None:
        runner = CommandRunner()
    docker = shlex.split(config.settings.docker_command)
    reference = image_name(config.image_basename, "*")
    try:
        listing = runner.run(
            [*docker, "images", "-q", "--filter", f"reference={reference}"],
            env=config.environment,
            capture=True,
        )
        if not listing.success:
            raise BuildActionError(
                f"Could not list images: {listing.error_message}",
                target=reference,
                code="image_clean_failed",
            )
        image_ids = sorted(set((listing.output or "").split()))
        if not image_ids:
            logger.info("No %s images to remove", reference)
            return []
        removal = runner.run([*docker, "rmi", "-f", *image_ids], env=config.environment)
    except CommandExecutionError as e:
        raise BuildActionError(
            str(e), target=reference, code="image_clean_failed"
        ) from e
    if not removal.success:
        raise BuildActionError(
            f"Could not remove images: {removal.error_message}",
            target=reference,
            code="image_clean_failed",
        )
    return image_ids


__all__ = [
    "BuildEngine",
    "clean_build_area",
    "image_name",
    "load_graph",
    "remove_images",
]
