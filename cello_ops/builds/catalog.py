"""Build target catalog.

This module defines the pydantic models describing build targets and
provides the built-in catalog of Cello images. A catalog can also be read
from a YAML file:

    images:
      - baseimage
      - engine
    targets:
      - name: docker
        kind: composite
        requires: [baseimage, engine]
        category: Build
        description: Generate docker images locally
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cello_ops.errors import ConfigurationError
from cello_ops.types import TargetKind

TARGET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.\-]*$")

# Images needed to run the Cello services, in build order.
DEFAULT_IMAGES = (
    "baseimage",
    "engine",
    "operator-dashboard",
    "ansible-agent",
    "watchdog",
    "user-dashboard",
    "parse-server",
)

ALL_IMAGES_TARGET = "docker"


class TargetSchema(BaseModel):
    """A named node of the build graph.

    Attributes:
        name: Target name; for leaf targets also the image suffix.
        kind: leaf (builds one image) or composite (aggregates targets).
        requires: Targets that must be satisfied first (members of a composite).
        category: Help category, for discoverability only.
        description: One-line help text, for discoverability only.
        template: Dockerfile template of a leaf, relative to the checkout root.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    kind: TargetKind = TargetKind.LEAF
    requires: tuple[str, ...] = Field(default=())
    category: str | None = None
    description: str | None = None
    template: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate target names are lowercase identifiers."""
        if not TARGET_NAME_PATTERN.match(v):
            raise ValueError(
                f"target name must match {TARGET_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    def template_path(self) -> Path:
        """Template of a leaf target, relative to the checkout root."""
        if self.template:
            return Path(self.template)
        return Path("build_image") / "docker" / self.name / "Dockerfile.in"


class CatalogSchema(BaseModel):
    """A full catalog file: leaf images plus extra targets."""

    model_config = ConfigDict(extra="forbid")

    images: list[str] = Field(default_factory=list)
    targets: list[TargetSchema] = Field(default_factory=list)


def leaf(name: str, **kwargs: Any) -> TargetSchema:
    """Declare a leaf target building one image."""
    kwargs.setdefault("category", "Build")
    kwargs.setdefault("description", f"Build the {name} image")
    return TargetSchema(name=name, kind=TargetKind.LEAF, **kwargs)


def composite(name: str, requires: Iterable[str], **kwargs: Any) -> TargetSchema:
    """Declare a composite target aggregating others."""
    return TargetSchema(
        name=name, kind=TargetKind.COMPOSITE, requires=tuple(requires), **kwargs
    )


def default_targets(images: Iterable[str] = DEFAULT_IMAGES) -> list[TargetSchema]:
    """Return the built-in catalog.

    Args:
        images: Leaf images, in build order.

    Returns:
        One leaf per image, 'docker' aggregating all of them, and
        'docker-operator-dashboard' for the operator dashboard alone.
    """
    images = list(images)
    targets = [leaf(name) for name in images]
    targets.append(
        composite(
            ALL_IMAGES_TARGET,
            images,
            category="Build",
            description="Generate docker images locally",
        )
    )
    if "operator-dashboard" in images:
        targets.append(
            composite(
                "docker-operator-dashboard",
                ["operator-dashboard"],
                category="Build",
                description="Build the operator dashboard image",
            )
        )
    return targets


def parse_catalog(data: dict[str, Any]) -> list[TargetSchema]:
    """Validate catalog data and expand the image list into leaf targets.

    Raises:
        ConfigurationError: If the data does not match the schema.
    """
    try:
        catalog = CatalogSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid target catalog: {e}", code="invalid_catalog"
        ) from e
    return [leaf(name) for name in catalog.images] + list(catalog.targets)


def load_catalog(path: Path) -> list[TargetSchema]:
    """Load a target catalog from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Declared targets.

    Raises:
        ConfigurationError: If the file is missing, not YAML, or invalid.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            f"Target catalog not found: {path}", code="catalog_not_found"
        ) from None
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Target catalog {path} is not valid YAML: {e}", code="invalid_catalog"
        ) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}",
            code="invalid_catalog",
        )
    return parse_catalog(data)


def dump_catalog(targets: Iterable[TargetSchema]) -> str:
    """Render targets as a YAML catalog."""
    data = {"targets": [t.model_dump(mode="json", exclude_none=True) for t in targets]}
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


__all__ = [
    "ALL_IMAGES_TARGET",
    "DEFAULT_IMAGES",
    "CatalogSchema",
    "TargetSchema",
    "composite",
    "default_targets",
    "dump_catalog",
    "leaf",
    "load_catalog",
    "parse_catalog",
]
