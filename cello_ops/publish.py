"""Registry publishing.

This module handles:
- Registry credentials
- Logging in once per pipeline and reusing the session
- Pushing built images

Publishing never touches local builds: a rejected login or push leaves
every image and marker in place.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import SecretStr

from cello_ops.builds.engine import image_name
from cello_ops.builds.markers import marker_for
from cello_ops.errors import AuthenticationError, CommandExecutionError, PublishError
from cello_ops.runner import CommandRunner
from cello_ops.types import ArtifactSpec

if TYPE_CHECKING:
    from cello_ops.config import Settings
    from cello_ops.context import RunConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryCredentials:
    """Registry login."""

    username: str
    password: SecretStr

    @classmethod
    def from_settings(cls, settings: Settings) -> RegistryCredentials | None:
        """Credentials from DOCKER_HUB_USERNAME / DOCKER_HUB_PASSWORD, if both set."""
        if not settings.docker_hub_username or settings.docker_hub_password is None:
            return None
        return cls(
            username=settings.docker_hub_username,
            password=settings.docker_hub_password,
        )


@dataclass
class PublishResult:
    """Result of pushing one artifact.

    Attributes:
        target: Target name.
        reference: Pushed image reference (name:tag).
    """

    target: str
    reference: str


class PublishPipeline:
    """Pushes built images, authenticating once per pipeline."""

    def __init__(self, config: RunConfig, runner: CommandRunner | None = None) -> None:
        self.config = config
        self.runner = runner if runner is not None else CommandRunner()
        self._authenticated_as: str | None = None

    @property
    def _docker(self) -> list[str]:
        return shlex.split(self.config.settings.docker_command)

    def reference(self, artifact: ArtifactSpec) -> str:
        """Registry reference of an artifact, e.g. 'hyperledger/cello-engine:<tag>'."""
        return f"{image_name(self.config.image_basename, artifact.name)}:{artifact.tag}"

    def login(self, credentials: RegistryCredentials | None) -> None:
        """Log in to the registry unless this pipeline already did.

        Raises:
            AuthenticationError: If credentials are missing or rejected.
        """
        if credentials is None:
            raise AuthenticationError(
                "Registry credentials not configured; "
                "set DOCKER_HUB_USERNAME and DOCKER_HUB_PASSWORD",
                code="missing_credentials",
            )
        if self._authenticated_as == credentials.username:
            return

        cmd = [
            *self._docker,
            "login",
            "--username",
            credentials.username,
            "--password-stdin",
        ]
        try:
            result = self.runner.run(
                cmd,
                env=self.config.environment,
                input_text=credentials.password.get_secret_value(),
                capture=True,
            )
        except CommandExecutionError as e:
            raise AuthenticationError(str(e), code="execution_error") from e
        if not result.success:
            raise AuthenticationError(
                f"Registry rejected credentials for {credentials.username}"
            )
        self._authenticated_as = credentials.username
        logger.info("Logged in to registry as %s", credentials.username)

    def publish(
        self,
        artifacts: Iterable[ArtifactSpec],
        credentials: RegistryCredentials | None,
    ) -> list[PublishResult]:
        """Push artifacts to the registry.

        Args:
            artifacts: Artifacts to push; each must have its build marker.
            credentials: Registry login.

        Returns:
            One PublishResult per artifact, in name order.

        Raises:
            PublishError: If an artifact was not built or the push is rejected.
            AuthenticationError: If credentials are missing or rejected.
        """
        ordered = sorted(artifacts, key=lambda a: a.name)
        for artifact in ordered:
            marker = marker_for(self.config.build_dir, artifact.name, artifact.tag)
            if not marker.exists():
                raise PublishError(
                    f"{artifact.name}:{artifact.tag} has not been built "
                    f"(no marker at {marker.path})",
                    target=artifact.name,
                    code="not_built",
                )

        if not ordered:
            return []

        self.login(credentials)

        results: list[PublishResult] = []
        for artifact in ordered:
            reference = self.reference(artifact)
            try:
                result = self.runner.run(
                    [*self._docker, "push", reference], env=self.config.environment
                )
            except CommandExecutionError as e:
                raise PublishError(
                    str(e), target=artifact.name, code="execution_error"
                ) from e
            if not result.success:
                raise PublishError(
                    f"Registry rejected {reference}: {result.error_message}",
                    target=artifact.name,
                )
            logger.info("Pushed %s", reference)
            results.append(PublishResult(target=artifact.name, reference=reference))
        return results


__all__ = ["PublishPipeline", "PublishResult", "RegistryCredentials"]
