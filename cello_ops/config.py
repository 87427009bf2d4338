"""Configuration settings for cello_ops.

Uses pydantic-settings for config parsing from environment variables
and defaults. Variables use the CELLO_ prefix; the handful of values that
operators historically export without a prefix (MODE, VERSION,
SERVER_PUBLIC_IP, ...) are accepted under their bare names as well.

Settings are read once per process and frozen into a RunConfig
(see cello_ops.context); nothing re-reads the environment mid-run.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cello_ops.types import Mode

_MODE_ALIASES = {
    "prod": Mode.PRODUCTION,
    "production": Mode.PRODUCTION,
    "dev": Mode.DEVELOPMENT,
    "development": Mode.DEVELOPMENT,
}


def parse_mode(value: str) -> Mode:
    """Map a mode name (prod, dev, production, development) to a Mode.

    Raises:
        ValueError: If the name is not a known mode.
    """
    mode = _MODE_ALIASES.get(value.strip().lower())
    if mode is None:
        raise ValueError(f"mode must be one of prod, dev; got '{value}'")
    return mode


def _env(name: str) -> AliasChoices:
    """Accept both CELLO_<NAME> and the bare <NAME> environment variable."""
    return AliasChoices(f"CELLO_{name}", name)


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the CELLO_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="CELLO_",
        extra="ignore",
        populate_by_name=True,
    )

    # Build identity
    mode: Mode = Field(
        default=Mode.PRODUCTION,
        validation_alias=_env("MODE"),
        description="Deployment mode: prod or dev",
    )
    is_release: bool = Field(
        default=False,
        validation_alias=_env("IS_RELEASE"),
        description="Release mode - tag images without a snapshot suffix",
    )
    version: str = Field(
        default="0.9.0",
        validation_alias=_env("VERSION"),
        description="Declared platform version",
    )
    arch: str | None = Field(
        default=None,
        validation_alias=_env("ARCH"),
        description="Target architecture override (uses host architecture if not set)",
    )
    git_revision: str | None = Field(
        default=None,
        description="Source revision override (uses `git rev-parse` if not set)",
    )
    docker_ns: str = Field(
        default="hyperledger",
        validation_alias=_env("DOCKER_NS"),
        description="Docker namespace for image names",
    )
    basename: str | None = Field(
        default=None,
        description="Image base name (defaults to <docker_ns>/cello)",
    )

    # Runtime
    server_public_ip: str | None = Field(
        default=None,
        validation_alias=_env("SERVER_PUBLIC_IP"),
        description="Public address of the master node (required for start)",
    )
    worker_type: str = Field(
        default="docker",
        validation_alias=_env("WORKER_TYPE"),
        description="Worker node type used by setup-worker",
    )

    # Paths
    root_path: Path = Field(
        default_factory=Path.cwd,
        description="Checkout root of the Cello sources",
    )
    build_dir: Path = Field(
        default=Path("build"),
        description="Build output directory (relative to root_path)",
    )
    makerc_dir: Path = Field(
        default=Path(".makerc"),
        description="Directory holding the key=value config fragments",
    )
    targets_file: Path | None = Field(
        default=None,
        description="YAML catalog of build targets (uses built-in targets if not set)",
    )
    env_template: Path = Field(
        default=Path("configs/env.tmpl"),
        description="Template of the compose environment file",
    )
    env_file: Path = Field(
        default=Path(".env"),
        description="Generated compose environment file",
    )
    compose_dir: Path = Field(
        default=Path("bootup/docker-compose-files"),
        description="Directory holding the docker-compose files",
    )
    bootstrap_marker: Path = Field(
        default=Path("/opt/cello/keycloak-mysql"),
        description="Host path whose presence means Keycloak is initialized",
    )
    secrets_file: Path = Field(
        default=Path(".makerc/secrets"),
        description="key=value file holding the dashboard SSO secrets",
    )

    # External commands
    docker_command: str = Field(default="docker", description="docker CLI")
    compose_command: str = Field(
        default="docker-compose", description="docker-compose CLI"
    )
    frontend_build_command: str = Field(
        default="bash scripts/master_node/build_js.sh",
        description="Front-end asset build run before a dev-mode start",
    )
    log_tail: int = Field(
        default=200,
        ge=1,
        description="Number of log lines shown by log/logs",
    )

    # Registry credentials
    docker_hub_username: str | None = Field(
        default=None,
        validation_alias=_env("DOCKER_HUB_USERNAME"),
    )
    docker_hub_password: SecretStr | None = Field(
        default=None,
        validation_alias=_env("DOCKER_HUB_PASSWORD"),
    )

    # Dashboard SSO secrets (optional; see lifecycle.service_secrets)
    operator_dashboard_sso_secret: SecretStr | None = Field(default=None)
    user_dashboard_sso_secret: SecretStr | None = Field(default=None)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: object) -> object:
        """Accept 'production'/'development' as well as 'prod'/'dev'."""
        if isinstance(v, str):
            return parse_mode(v)
        return v

    @property
    def image_basename(self) -> str:
        """Base name shared by all images, e.g. 'hyperledger/cello'."""
        return self.basename or f"{self.docker_ns}/cello"

    def resolve_path(self, path: Path) -> Path:
        """Resolve a configured path against root_path."""
        return path if path.is_absolute() else self.root_path / path


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secret values are masked by pydantic.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "parse_mode", "print_settings_json"]
