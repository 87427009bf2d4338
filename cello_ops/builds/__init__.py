"""Image build orchestration.

This package handles:
- The build target catalog (built-in or YAML)
- The target dependency graph
- Build markers
- The build engine driving `docker build`
"""

from cello_ops.builds.engine import BuildEngine, image_name
from cello_ops.builds.graph import BuildGraph

__all__ = ["BuildEngine", "BuildGraph", "image_name"]
