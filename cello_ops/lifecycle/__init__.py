"""Service lifecycle management.

This package handles:
- Composition file selection by deployment mode
- First-run Keycloak bootstrap detection
- Dashboard SSO secrets
- Start/stop/restart/log operations against docker-compose
- Host setup scripts
"""

from cello_ops.lifecycle.controller import ServiceLifecycleController, TransitionResult

__all__ = ["ServiceLifecycleController", "TransitionResult"]
