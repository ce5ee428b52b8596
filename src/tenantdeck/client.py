"""Async client for the multi-tenant hosting control plane.

This module provides:
- Typed access to the project and auth endpoints
- Bearer authentication taken from the current ``Session``
- Mapping of transport errors and non-success responses onto the
  ``DeckError`` taxonomy

There is deliberately no retry: a failed call is reported once and the
caller decides what to do.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from tenantdeck.errors import NetworkFailure, ServerRejection
from tenantdeck.models import (
    Identity,
    Project,
    ProjectAction,
    ProjectPayload,
    TokenResponse,
)
from tenantdeck.session import Session

logger = logging.getLogger(__name__)

USER_AGENT = "tenantdeck/0.1.0"


def error_message(response: httpx.Response) -> str:
    """Extract the server's error text from a failed response.

    The control plane answers ``{"error": "..."}``; FastAPI style
    ``{"detail": "..."}`` bodies are understood too.
    """
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("error", "detail", "message"):
            value = data.get(key)
            if value:
                return str(value)
    text = response.text.strip()
    if text:
        return text[:200]
    return response.reason_phrase or f"HTTP {response.status_code}"


class ControlPlaneClient:
    """Client for the control-plane REST API."""

    def __init__(
        self,
        session: Session,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            session: Session supplying the base URL and bearer credential.
                The credential is read on every request, so login and
                logout take effect without rebuilding the client.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, e.g. ``httpx.ASGITransport``
                to talk to an in-process control plane.
        """
        self.session = session
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.session.api_url,
                headers={
                    "Accept": "application/json",
                    "User-Agent": USER_AGENT,
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ControlPlaneClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        project_id: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        """Issue one request and translate failures.

        Raises:
            NetworkFailure: On connection errors and timeouts.
            ServerRejection: On any non-2xx response.
        """
        headers = self.session.auth_headers()
        logger.debug("%s %s", method, url)
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.debug("%s %s transport error: %s", method, url, e)
            raise NetworkFailure(
                str(e) or type(e).__name__, operation, project_id
            ) from e

        if response.is_error:
            message = error_message(response)
            logger.debug("%s %s -> %s %s", method, url, response.status_code, message)
            raise ServerRejection(
                message, operation, project_id, status_code=response.status_code
            )
        return response

    @staticmethod
    def _json(
        response: httpx.Response, operation: str, project_id: Optional[str] = None
    ) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ServerRejection(
                "malformed JSON response",
                operation,
                project_id,
                status_code=response.status_code,
            ) from e

    # -- auth -------------------------------------------------------------

    async def login(self, username: str, password: str) -> str:
        """Exchange credentials for a bearer token.

        Returns:
            The opaque token. The caller installs it on the session.
        """
        response = await self._request(
            "POST", "/auth/login", "login",
            json={"username": username, "password": password},
        )
        data = self._json(response, "login")
        try:
            return TokenResponse.model_validate(data).token
        except ValidationError as e:
            raise ServerRejection("response carried no token", "login") from e

    async def register(self, username: str, email: str, password: str) -> None:
        """Create a tenant account."""
        await self._request(
            "POST", "/auth/register", "register",
            json={"username": username, "email": email, "password": password},
        )

    async def me(self) -> Identity:
        """Fetch the identity behind the current credential."""
        response = await self._request("GET", "/auth/me", "identity")
        data = self._json(response, "identity")
        try:
            return Identity.model_validate(data)
        except ValidationError as e:
            raise ServerRejection("malformed identity", "identity") from e

    # -- projects ---------------------------------------------------------

    async def list_projects(self) -> list[Project]:
        """Fetch the full project collection in server order."""
        response = await self._request("GET", "/projects", "list projects")
        data = self._json(response, "list projects")
        if data is None:
            # An empty collection may be serialized as null
            return []
        if not isinstance(data, list):
            raise ServerRejection(
                "expected a list of projects", "list projects",
                status_code=response.status_code,
            )
        try:
            return [Project.model_validate(item) for item in data]
        except ValidationError as e:
            raise ServerRejection(
                f"malformed project record: {e.errors()[0]['msg']}",
                "list projects",
                status_code=response.status_code,
            ) from e

    async def get_project(self, project_id: str) -> Project:
        """Fetch a single project."""
        response = await self._request(
            "GET", f"/projects/{project_id}", "show", project_id
        )
        data = self._json(response, "show", project_id)
        try:
            return Project.model_validate(data)
        except ValidationError as e:
            raise ServerRejection("malformed project record", "show", project_id) from e

    async def create_project(self, payload: ProjectPayload) -> Optional[Project]:
        """Create a project. Returns the created record when the server echoes one."""
        response = await self._request(
            "POST", "/projects", "create", json=payload.model_dump()
        )
        return self._maybe_project(response)

    async def update_project(
        self, project_id: str, payload: ProjectPayload
    ) -> Optional[Project]:
        """Replace a project's editable fields."""
        response = await self._request(
            "PUT", f"/projects/{project_id}", "update", project_id,
            json=payload.model_dump(),
        )
        return self._maybe_project(response)

    async def delete_project(self, project_id: str) -> None:
        """Delete a project and its runtime container."""
        await self._request("DELETE", f"/projects/{project_id}", "delete", project_id)

    async def run_action(self, project_id: str, action: ProjectAction | str) -> dict:
        """Issue one lifecycle action (start, stop or deploy)."""
        action = ProjectAction(action)
        response = await self._request(
            "POST", f"/projects/{project_id}/{action.value}", action.value, project_id
        )
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _maybe_project(response: httpx.Response) -> Optional[Project]:
        try:
            return Project.model_validate(response.json())
        except (ValueError, ValidationError):
            return None
