"""Tests for the build target catalog and graph.

Covers catalog schema validation, YAML loading and graph planning.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from cello_ops.builds.catalog import (
    ALL_IMAGES_TARGET,
    DEFAULT_IMAGES,
    TargetSchema,
    composite,
    default_targets,
    dump_catalog,
    leaf,
    load_catalog,
    parse_catalog,
)
from cello_ops.builds.graph import BuildGraph
from cello_ops.errors import ConfigurationError
from cello_ops.types import TargetKind


class TestTargetSchema:
    """Tests for TargetSchema model."""

    def test_leaf_defaults(self) -> None:
        target = leaf("engine")
        assert target.kind == TargetKind.LEAF
        assert target.requires == ()
        assert target.template_path() == Path(
            "build_image/docker/engine/Dockerfile.in"
        )

    def test_template_override(self) -> None:
        target = TargetSchema(name="engine", template="docker/engine.in")
        assert target.template_path() == Path("docker/engine.in")

    @pytest.mark.parametrize("name", ["Engine", "-engine", "engine dashboard", ""])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValidationError):
            TargetSchema(name=name)

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TargetSchema(name="engine", flavour="x")


class TestCatalog:
    """Tests for catalog loading."""

    def test_default_targets(self) -> None:
        targets = {t.name: t for t in default_targets()}
        for image in DEFAULT_IMAGES:
            assert targets[image].kind == TargetKind.LEAF
        assert targets[ALL_IMAGES_TARGET].requires == DEFAULT_IMAGES
        assert targets["docker-operator-dashboard"].requires == (
            "operator-dashboard",
        )

    def test_parse_catalog_expands_images(self) -> None:
        targets = parse_catalog(
            {
                "images": ["baseimage", "engine"],
                "targets": [
                    {"name": "all", "kind": "composite", "requires": ["engine"]}
                ],
            }
        )
        assert [t.name for t in targets] == ["baseimage", "engine", "all"]
        assert targets[2].kind == TargetKind.COMPOSITE

    def test_parse_catalog_invalid(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_catalog({"targets": [{"name": "x", "kind": "weird"}]})
        assert exc_info.value.code == "invalid_catalog"

    def test_load_catalog_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "images": ["baseimage", "engine"],
                    "targets": [
                        {
                            "name": "docker",
                            "kind": "composite",
                            "requires": ["baseimage", "engine"],
                        }
                    ],
                }
            )
        )
        graph = BuildGraph(load_catalog(path))
        assert [t.name for t in graph.plan(["docker"])] == ["baseimage", "engine"]

    def test_dump_round_trip(self, tmp_path: Path) -> None:
        """A dumped default catalog should load into the same graph."""
        path = tmp_path / "targets.yaml"
        path.write_text(dump_catalog(default_targets()))

        loaded = BuildGraph(load_catalog(path))
        defaults = BuildGraph(default_targets())
        assert loaded.targets == defaults.targets

    def test_load_catalog_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_catalog(tmp_path / "absent.yaml")
        assert exc_info.value.code == "catalog_not_found"

    def test_load_catalog_not_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text("- engine\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_catalog(path)
        assert exc_info.value.code == "invalid_catalog"

    def test_load_catalog_bad_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text("images: [engine\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_catalog(path)
        assert exc_info.value.code == "invalid_catalog"


class TestBuildGraph:
    """Tests for BuildGraph."""

    def test_plan_composite(self) -> None:
        graph = BuildGraph(default_targets())
        assert [t.name for t in graph.plan([ALL_IMAGES_TARGET])] == list(
            DEFAULT_IMAGES
        )

    def test_plan_deduplicates(self) -> None:
        """Shared leaves should be planned once."""
        graph = BuildGraph(default_targets())
        plan = graph.plan(["engine", ALL_IMAGES_TARGET, "engine"])
        names = [t.name for t in plan]
        assert names.count("engine") == 1
        assert len(names) == len(DEFAULT_IMAGES)
        assert names[0] == "engine"

    def test_prerequisites_first(self) -> None:
        graph = BuildGraph(
            [
                leaf("baseimage"),
                leaf("engine", requires=("baseimage",)),
                composite("all", ["engine"]),
            ]
        )
        assert [t.name for t in graph.plan(["all"])] == ["baseimage", "engine"]

    def test_unknown_requested_target(self) -> None:
        graph = BuildGraph(default_targets())
        with pytest.raises(ConfigurationError) as exc_info:
            graph.plan(["no-such-image"])
        assert exc_info.value.code == "unknown_target"

    def test_unknown_reference(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            BuildGraph([composite("all", ["ghost"])])
        assert exc_info.value.code == "unknown_target"

    def test_duplicate_target(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            BuildGraph([leaf("engine"), leaf("engine")])
        assert exc_info.value.code == "duplicate_target"

    def test_empty_composite(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            BuildGraph([TargetSchema(name="all", kind=TargetKind.COMPOSITE)])
        assert exc_info.value.code == "empty_composite"

    def test_cycle_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            BuildGraph(
                [
                    composite("a", ["b"]),
                    composite("b", ["c"]),
                    composite("c", ["a"]),
                    leaf("d"),
                ]
            )
        assert exc_info.value.code == "cyclic_targets"
        assert "a, b, c" in exc_info.value.message

    def test_contains(self) -> None:
        graph = BuildGraph(default_targets())
        assert "engine" in graph
        assert "ghost" not in graph
