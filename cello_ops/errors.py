"""Error taxonomy for cello_ops.

Every error carries a stable ``code`` string so the CLI (and anything else
driving these modules) can report failures without parsing messages.
None of these errors is retried internally.
"""

from __future__ import annotations

from typing import Any


class CelloOpsError(Exception):
    """Base error for all cello_ops operations."""

    def __init__(self, message: str, code: str = "cello_ops_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(CelloOpsError):
    """Raised for unsupported architectures or missing required configuration."""

    def __init__(self, message: str, code: str = "configuration_error") -> None:
        super().__init__(message, code=code)


class TemplateError(CelloOpsError):
    """Raised when a template cannot be materialized."""

    def __init__(
        self,
        message: str,
        code: str = "template_error",
        template_path: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.template_path = template_path


class CommandExecutionError(CelloOpsError):
    """Raised when an external command cannot be launched at all."""

    def __init__(self, message: str, code: str = "execution_error") -> None:
        super().__init__(message, code=code)


class BuildActionError(CelloOpsError):
    """Raised when the external image build fails.

    Attributes:
        target: Target whose build failed.
        completed: Artifacts built (and marked) before the failure.
        log_path: Build log of the failing target, if one was written.
    """

    def __init__(
        self,
        message: str,
        target: str,
        completed: set[Any] | None = None,
        log_path: str | None = None,
        code: str = "build_failed",
    ) -> None:
        super().__init__(message, code=code)
        self.target = target
        self.completed = completed if completed is not None else set()
        self.log_path = log_path


class AuthenticationError(CelloOpsError):
    """Raised when the registry rejects (or lacks) credentials."""

    def __init__(self, message: str, code: str = "authentication_failed") -> None:
        super().__init__(message, code=code)


class PublishError(CelloOpsError):
    """Raised when an artifact cannot be pushed to the registry."""

    def __init__(
        self, message: str, target: str, code: str = "publish_failed"
    ) -> None:
        super().__init__(message, code=code)
        self.target = target


class LifecycleActionError(CelloOpsError):
    """Raised when a compose action of a lifecycle transition fails.

    Attributes:
        step: Name of the transition step that failed.
        completed_steps: Steps that finished before the failure.
    """

    def __init__(
        self,
        message: str,
        step: str,
        completed_steps: list[str] | None = None,
        code: str = "lifecycle_action_failed",
    ) -> None:
        super().__init__(message, code=code)
        self.step = step
        self.completed_steps = completed_steps if completed_steps is not None else []


__all__ = [
    "AuthenticationError",
    "BuildActionError",
    "CelloOpsError",
    "CommandExecutionError",
    "ConfigurationError",
    "LifecycleActionError",
    "PublishError",
    "TemplateError",
]
