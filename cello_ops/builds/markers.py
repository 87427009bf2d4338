"""Build markers.

A build marker is an empty receipt file, build/docker/<target>/.<tag>,
written after an image was built successfully. Markers are checked by
existence only, never rewritten, and removed only by clean().
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildMarker:
    """Receipt that (target, tag) was built.

    Attributes:
        target: Target name.
        tag: Image tag the target was built with.
        path: Marker file.
    """

    target: str
    tag: str
    path: Path

    def exists(self) -> bool:
        return self.path.is_file()


def target_dir(build_dir: Path, target: str) -> Path:
    """Working directory of a target (Dockerfile, build log, marker)."""
    return build_dir / "docker" / target


def marker_for(build_dir: Path, target: str, tag: str) -> BuildMarker:
    """Return the marker of a (target, tag) pair."""
    return BuildMarker(
        target=target, tag=tag, path=target_dir(build_dir, target) / f".{tag}"
    )


def write_marker(marker: BuildMarker) -> BuildMarker:
    """Record a successful build."""
    marker.path.parent.mkdir(parents=True, exist_ok=True)
    marker.path.touch()
    logger.debug("Wrote build marker %s", marker.path)
    return marker


def clean(build_dir: Path) -> bool:
    """Remove the build directory with all markers.

    Returns:
        True if there was anything to remove.
    """
    if not build_dir.exists():
        return False
    shutil.rmtree(build_dir)
    logger.info("Removed %s", build_dir)
    return True


__all__ = ["BuildMarker", "clean", "marker_for", "target_dir", "write_marker"]
