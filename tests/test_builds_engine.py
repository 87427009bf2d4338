"""Tests for builds/engine.py module.

Tests build planning, memoization via build markers, and failure handling.
Uses a recording runner instead of docker.
"""

from pathlib import Path

import pytest

from cello_ops.builds.catalog import ALL_IMAGES_TARGET, DEFAULT_IMAGES
from cello_ops.builds.engine import (
    BuildEngine,
    clean_build_area,
    image_name,
    remove_images,
)
from cello_ops.builds.markers import marker_for
from cello_ops.context import load_run_config
from cello_ops.errors import BuildActionError, ConfigurationError, TemplateError

TAG = "x86_64-0.9.0-snapshot-abc1234"


def _built_images(runner) -> list[str]:
    """Names of the images passed to docker build, in order."""
    names = []
    for cmd in runner.commands:
        if cmd[:2] == ["docker", "build"]:
            names.append(cmd[cmd.index("-t") + 1])
    return names


@pytest.fixture
def engine_factory(make_run_config, fake_runner, image_templates):
    """Create engines sharing one recording runner."""

    def factory(**overrides) -> BuildEngine:
        return BuildEngine(make_run_config(**overrides), runner=fake_runner)

    return factory


class TestImageName:
    """Tests for image_name function."""

    def test_image_name(self) -> None:
        assert image_name("hyperledger/cello", "engine") == "hyperledger/cello-engine"


class TestBuildEngine:
    """Tests for BuildEngine.build."""

    def test_build_leaf(self, engine_factory, fake_runner, tmp_path: Path) -> None:
        """A leaf build should render the Dockerfile, build and mark."""
        engine = engine_factory()
        artifacts = engine.build(["baseimage"])

        assert [a.name for a in artifacts] == ["baseimage"]
        assert engine.tag == TAG

        root = tmp_path.resolve()
        dockerfile = root / "build" / "docker" / "baseimage" / "Dockerfile"
        assert dockerfile.read_text() == f"FROM python:3.6\nLABEL tag={TAG}\n"
        assert fake_runner.commands == [
            [
                "docker",
                "build",
                "-f",
                str(dockerfile),
                "-t",
                "hyperledger/cello-baseimage",
                "-t",
                f"hyperledger/cello-baseimage:{TAG}",
                str(root),
            ]
        ]
        assert fake_runner.calls[0].log_path == dockerfile.parent / "build.log"
        assert marker_for(root / "build", "baseimage", TAG).exists()

    def test_build_composite(self, engine_factory, fake_runner) -> None:
        engine = engine_factory()
        artifacts = engine.build([ALL_IMAGES_TARGET])

        assert {a.name for a in artifacts} == set(DEFAULT_IMAGES)
        assert _built_images(fake_runner) == [
            f"hyperledger/cello-{name}" for name in DEFAULT_IMAGES
        ]

    def test_memoized_within_invocation(self, engine_factory, fake_runner) -> None:
        """Requesting a target twice should build it once."""
        engine = engine_factory()
        engine.build(["engine", "engine"])
        engine.build(["engine"])
        engine.build([ALL_IMAGES_TARGET])

        images = _built_images(fake_runner)
        assert images.count("hyperledger/cello-engine") == 1
        assert len(images) == len(DEFAULT_IMAGES)

    def test_markers_satisfy_later_invocations(
        self, engine_factory, fake_runner
    ) -> None:
        engine_factory().build(["engine"])
        fake_runner.calls.clear()

        second = engine_factory()
        artifacts = second.build(["engine"])
        assert [a.name for a in artifacts] == ["engine"]
        assert fake_runner.calls == []
        assert second.is_satisfied("engine")

    def test_force_ignores_markers(self, engine_factory, fake_runner) -> None:
        engine_factory().build(["engine"])
        fake_runner.calls.clear()

        engine = engine_factory()
        engine.build(["engine"], force=True)
        engine.build(["engine"], force=True)
        assert _built_images(fake_runner) == ["hyperledger/cello-engine"]

    def test_force_after_marker_hit(self, engine_factory, fake_runner) -> None:
        """A target found up to date still rebuilds when forced later."""
        engine_factory().build(["engine"])
        fake_runner.calls.clear()

        engine = engine_factory()
        engine.build(["engine"])
        assert fake_runner.calls == []
        engine.build(["engine"], force=True)
        engine.build(["engine"], force=True)
        assert _built_images(fake_runner) == ["hyperledger/cello-engine"]

    def test_new_revision_rebuilds(self, engine_factory, fake_runner) -> None:
        """Markers are keyed by tag, so a new revision builds again."""
        engine_factory().build(["engine"])
        fake_runner.calls.clear()

        engine_factory(git_revision="fff0000").build(["engine"])
        assert len(fake_runner.calls) == 1

    def test_release_tag(self, engine_factory, fake_runner) -> None:
        engine = engine_factory(is_release=True)
        engine.build(["engine"])
        assert engine.tag == "x86_64-0.9.0"
        assert fake_runner.commands[0][7] == "hyperledger/cello-engine:x86_64-0.9.0"

    def test_failure_reports_completed(
        self, make_run_config, make_runner, image_templates, tmp_path: Path
    ) -> None:
        """A failed build keeps earlier markers and stops the run."""
        runner = make_runner(
            fail_on=lambda cmd: "hyperledger/cello-operator-dashboard" in cmd
        )
        engine = BuildEngine(make_run_config(), runner=runner)

        with pytest.raises(BuildActionError) as exc_info:
            engine.build([ALL_IMAGES_TARGET])

        error = exc_info.value
        assert error.target == "operator-dashboard"
        assert {a.name for a in error.completed} == {"baseimage", "engine"}
        assert error.log_path.endswith("build.log")
        assert len(runner.calls) == 3

        build_dir = tmp_path.resolve() / "build"
        assert marker_for(build_dir, "engine", TAG).exists()
        assert not marker_for(build_dir, "operator-dashboard", TAG).exists()

    def test_template_error_before_any_build(
        self, engine_factory, fake_runner, tmp_path: Path
    ) -> None:
        """All templates are rendered before the first image build."""
        broken = tmp_path / "build_image" / "docker" / "watchdog" / "Dockerfile.in"
        broken.write_text("FROM _UNKNOWN_\n")

        with pytest.raises(TemplateError) as exc_info:
            engine_factory().build([ALL_IMAGES_TARGET])
        assert exc_info.value.code == "unbound_placeholder"
        assert fake_runner.calls == []

    def test_missing_template(
        self, engine_factory, fake_runner, tmp_path: Path
    ) -> None:
        (tmp_path / "build_image" / "docker" / "engine" / "Dockerfile.in").unlink()
        with pytest.raises(TemplateError) as exc_info:
            engine_factory().build(["engine"])
        assert exc_info.value.code == "template_not_found"
        assert fake_runner.calls == []

    def test_unsupported_architecture(self, engine_factory, fake_runner) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            engine_factory(arch="mips")
        assert exc_info.value.code == "unsupported_architecture"
        assert fake_runner.calls == []

    def test_unknown_target(self, engine_factory) -> None:
        with pytest.raises(ConfigurationError):
            engine_factory().build(["nope"])

    def test_catalog_file(self, engine_factory, fake_runner, tmp_path: Path) -> None:
        catalog = tmp_path / "targets.yaml"
        catalog.write_text(
            "images: [baseimage, engine]\n"
            "targets:\n"
            "  - name: core\n"
            "    kind: composite\n"
            "    requires: [engine]\n"
        )
        engine = engine_factory(targets_file=Path("targets.yaml"))
        engine.build(["core"])
        assert _built_images(fake_runner) == ["hyperledger/cello-engine"]


class TestClean:
    """Tests for build area and image cleanup."""

    def test_clean_removes_markers(self, engine_factory, fake_runner) -> None:
        """After clean the next build runs again."""
        engine = engine_factory()
        engine.build(["engine"])
        engine.clean()
        assert not engine.config.build_dir.exists()

        engine.build(["engine"])
        assert len(_built_images(fake_runner)) == 2

    def test_clean_without_revision(
        self, make_settings, make_runner, tmp_path: Path
    ) -> None:
        """Cleaning needs no image tag, so no git checkout either."""
        runner = make_runner(fail_on=lambda cmd: cmd[0] == "git")
        config = load_run_config(
            make_settings(git_revision=None), runner=runner, environ={}
        )
        assert config.git_revision is None
        marker = marker_for(config.build_dir, "engine", TAG)
        marker.path.parent.mkdir(parents=True)
        marker.path.touch()

        clean_build_area(config)
        assert not (tmp_path / "build").exists()

    def test_clean_images(self, make_run_config, make_runner) -> None:
        runner = make_runner(outputs={"images": "aaa\nbbb\naaa\n"})

        clean_build_area(make_run_config(), images=True, runner=runner)
        assert runner.commands == [
            [
                "docker",
                "images",
                "-q",
                "--filter",
                "reference=hyperledger/cello-*",
            ],
            ["docker", "rmi", "-f", "aaa", "bbb"],
        ]

    def test_engine_clean_images(
        self, make_run_config, make_runner, image_templates
    ) -> None:
        runner = make_runner(outputs={"images": "aaa\n"})
        engine = BuildEngine(make_run_config(), runner=runner)
        engine.clean(images=True)
        assert runner.commands[-1] == ["docker", "rmi", "-f", "aaa"]

    def test_clean_images_nothing_to_remove(self, make_run_config, make_runner) -> None:
        runner = make_runner(outputs={"images": ""})
        assert remove_images(make_run_config(), runner) == []
        assert len(runner.calls) == 1

    def test_clean_images_failure(self, make_run_config, make_runner) -> None:
        runner = make_runner(
            outputs={"images": "aaa\n"}, fail_on=lambda cmd: "rmi" in cmd
        )
        with pytest.raises(BuildActionError) as exc_info:
            remove_images(make_run_config(), runner)
        assert exc_info.value.code == "image_clean_failed"
