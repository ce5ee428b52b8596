"""Workspace: one signed-in tenant's view of the control plane.

Wires the session, client, store, lock table and controllers together so
every surface (CLI, dashboard, tests) builds them the same way.
"""

import logging
from typing import Optional

import httpx

from tenantdeck.client import ControlPlaneClient
from tenantdeck.config import DeckConfig
from tenantdeck.deletion import ConfirmCallback, DeleteController, decline
from tenantdeck.dispatcher import ActionDispatcher
from tenantdeck.forms import FormController
from tenantdeck.locks import KeyedLock
from tenantdeck.session import Session
from tenantdeck.store import ProjectStore

logger = logging.getLogger(__name__)


class Workspace:
    """Container for the project-lifecycle components of one session."""

    def __init__(
        self,
        session: Session,
        client: Optional[ControlPlaneClient] = None,
        confirm: ConfirmCallback = decline,
        close_form_on_send: bool = False,
        config: Optional[DeckConfig] = None,
    ):
        self.session = session
        self.config = config
        self.client = client or ControlPlaneClient(session)
        self.store = ProjectStore(self.client)
        self.locks = KeyedLock()
        self.dispatcher = ActionDispatcher(self.client, self.store, self.locks)
        self.forms = FormController(
            self.client, self.store, close_on_send=close_form_on_send
        )
        self.deleter = DeleteController(
            self.client, self.store, self.locks, confirm=confirm
        )

    @classmethod
    def from_config(
        cls,
        config: DeckConfig,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        confirm: ConfirmCallback = decline,
    ) -> "Workspace":
        """Build a workspace from persisted settings plus overrides."""
        session = Session(api_url or config.api_url, token=token or config.token)
        client = ControlPlaneClient(session, timeout=config.timeout, transport=transport)
        return cls(
            session,
            client=client,
            confirm=confirm,
            close_form_on_send=config.close_form_on_send,
            config=config,
        )

    async def startup(self) -> bool:
        """Initial load of projects and identity."""
        return await self.store.load(self.session)

    async def refresh(self) -> bool:
        return await self.store.invalidate_and_reload()

    async def login(self, username: str, password: str) -> str:
        """Exchange credentials for a token and install it on the session."""
        token = await self.client.login(username, password)
        self.session.login(token)
        if self.config is not None:
            self.config.save_token(token)
        return token

    def logout(self) -> None:
        """Local-only logout: forget the credential and stop tracking responses."""
        self.session.logout()
        self.store.close()
        if self.config is not None and self.config.token:
            self.config.clear_token()

    async def aclose(self) -> None:
        self.store.close()
        await self.client.aclose()

    async def __aenter__(self) -> "Workspace":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
