"""Session holder: the current credential and cached identity.

A ``Session`` is created once per process entry point and handed to the
components that need it. Nothing reads the credential from global state.
"""

import logging
from typing import Optional

from tenantdeck.models import Identity, Project

logger = logging.getLogger(__name__)


class Session:
    """Credential and identity of the signed-in tenant."""

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        identity: Optional[Identity] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._token = token or None
        self._identity = identity

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    @property
    def identity(self) -> Identity:
        """Cached identity, or the guest placeholder when none is known."""
        return self._identity or Identity.guest()

    @property
    def has_identity(self) -> bool:
        return self._identity is not None

    @property
    def greeting(self) -> str:
        return f"Hi, {self.identity.username}"

    def login(self, token: str) -> None:
        """Install a freshly issued credential, dropping any cached identity."""
        self._token = token
        self._identity = None
        logger.info("Session credential installed")

    def logout(self) -> None:
        """Clear the credential and identity. Purely local, no server call."""
        self._token = None
        self._identity = None
        logger.info("Session cleared")

    def set_identity(self, identity: Optional[Identity]) -> None:
        self._identity = identity

    def public_url(self, project: Project) -> str:
        """Public URL of ``project`` under the tenant's base domain."""
        return project.public_url(self.identity.base_domain)

    def auth_headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    def __repr__(self) -> str:
        state = "authenticated" if self.authenticated else "anonymous"
        return f"<Session {self.api_url} {state} user={self.identity.username!r}>"
