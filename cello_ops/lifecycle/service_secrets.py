"""Dashboard SSO secrets.

The two dashboards share an SSO client secret with Keycloak. Both values
are optional. They are an explicit input of the start transition, taken
from settings (CELLO_OPERATOR_DASHBOARD_SSO_SECRET,
CELLO_USER_DASHBOARD_SSO_SECRET) or else from a dedicated key=value
secrets file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import SecretStr

from cello_ops.makerc import parse_fragment

if TYPE_CHECKING:
    from cello_ops.config import Settings

logger = logging.getLogger(__name__)

OPERATOR_DASHBOARD_KEY = "OPERATOR_DASHBOARD_SSO_SECRET"
USER_DASHBOARD_KEY = "USER_DASHBOARD_SSO_SECRET"


@dataclass(frozen=True)
class ServiceSecrets:
    """Secrets handed to the services on start."""

    operator_dashboard_sso_secret: SecretStr | None = None
    user_dashboard_sso_secret: SecretStr | None = None

    def as_environment(self) -> dict[str, str]:
        """Environment entries for the secrets that are set."""
        env: dict[str, str] = {}
        if self.operator_dashboard_sso_secret is not None:
            env[OPERATOR_DASHBOARD_KEY] = (
                self.operator_dashboard_sso_secret.get_secret_value()
            )
        if self.user_dashboard_sso_secret is not None:
            env[USER_DASHBOARD_KEY] = self.user_dashboard_sso_secret.get_secret_value()
        return env


def _from_file(path: Path) -> dict[str, str]:
    if not path.is_file():
        logger.debug("No secrets file at %s", path)
        return {}
    return parse_fragment(path.read_text(encoding="utf-8"))


def load_secrets(settings: Settings) -> ServiceSecrets:
    """Collect the SSO secrets; settings take precedence over the file."""
    from_file = _from_file(settings.resolve_path(settings.secrets_file))

    def pick(explicit: SecretStr | None, key: str) -> SecretStr | None:
        if explicit is not None:
            return explicit
        value = from_file.get(key)
        return SecretStr(value) if value else None

    return ServiceSecrets(
        operator_dashboard_sso_secret=pick(
            settings.operator_dashboard_sso_secret, OPERATOR_DASHBOARD_KEY
        ),
        user_dashboard_sso_secret=pick(
            settings.user_dashboard_sso_secret, USER_DASHBOARD_KEY
        ),
    )


__all__ = [
    "OPERATOR_DASHBOARD_KEY",
    "USER_DASHBOARD_KEY",
    "ServiceSecrets",
    "load_secrets",
]
