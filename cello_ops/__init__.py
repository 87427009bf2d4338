"""Cello Ops - build and lifecycle tooling for the Cello service platform.

This package resolves and builds the platform's container images, publishes
them to a registry, and drives start/stop/restart of the composed services.
"""

__version__ = "0.9.0"
__all__ = ["__version__"]
