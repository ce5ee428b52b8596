"""Shared fixtures for tenantdeck tests."""

import asyncio
from typing import Optional

import httpx
import pytest
from fastapi import FastAPI

from tenantdeck.api import create_app
from tenantdeck.client import ControlPlaneClient
from tenantdeck.errors import DeckError
from tenantdeck.locks import KeyedLock
from tenantdeck.models import Identity, Project, ProjectAction, ProjectPayload
from tenantdeck.session import Session
from tenantdeck.store import ProjectStore
from tenantdeck.workspace import Workspace

API_URL = "http://testserver/api/v1"
USERNAME = "alice"
PASSWORD = "wonderland"


def make_project(
    project_id: str = "p1",
    name: str = "Blog",
    subdomain: str = "blog",
    status: str = "stopped",
    **extra,
) -> Project:
    """Build a cached project the way the control plane serializes one."""
    data = {
        "ID": project_id,
        "Name": name,
        "Subdomain": subdomain,
        "ImageName": extra.pop("image", "nginx:alpine"),
        "ContainerPort": extra.pop("port", 80),
        "Status": status,
    }
    data.update(extra)
    return Project.model_validate(data)


class FakeClient:
    """In-memory stand-in for ``ControlPlaneClient``.

    Records every call. A call whose name has an entry in ``gates`` waits
    for that event, and a name in ``failures`` raises the given error.
    """

    def __init__(self, projects: Optional[list[Project]] = None):
        self.projects = list(projects or [])
        self.identity = Identity(username=USERNAME, base_domain="apps.test", id="u1")
        self.calls: list[tuple] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, DeckError] = {}

    async def _enter(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.failures:
            raise self.failures[name]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def list_projects(self) -> list[Project]:
        await self._enter("list")
        return list(self.projects)

    async def me(self) -> Identity:
        await self._enter("me")
        return self.identity

    async def run_action(self, project_id: str, action) -> dict:
        await self._enter("action", project_id, ProjectAction(action).value)
        return {}

    async def create_project(self, payload: ProjectPayload) -> None:
        await self._enter("create", payload)

    async def update_project(self, project_id: str, payload: ProjectPayload) -> None:
        await self._enter("update", project_id, payload)

    async def delete_project(self, project_id: str) -> None:
        await self._enter("delete", project_id)
        self.projects = [p for p in self.projects if p.id != project_id]


class SequencedClient:
    """Client whose list responses are released by the test, in any order.

    Actions succeed at once and are recorded in ``actions``.
    """

    def __init__(self):
        self.pending: list[tuple[asyncio.Event, list]] = []
        self.actions: list[tuple[str, str]] = []

    async def list_projects(self):
        gate = asyncio.Event()
        slot: list = []
        self.pending.append((gate, slot))
        await gate.wait()
        if isinstance(slot[0], DeckError):
            raise slot[0]
        return slot[0]

    async def run_action(self, project_id: str, action) -> dict:
        self.actions.append((project_id, ProjectAction(action).value))
        return {}

    def resolve(self, index: int, projects: list) -> None:
        gate, slot = self.pending[index]
        slot.append(projects)
        gate.set()

    def fail(self, index: int, error: DeckError) -> None:
        self.resolve(index, error)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temporary location for every test."""
    path = tmp_path / "config.json"
    monkeypatch.setenv("TENANTDECK_CONFIG", str(path))
    monkeypatch.delenv("TENANTDECK_API_URL", raising=False)
    monkeypatch.delenv("TENANTDECK_TOKEN", raising=False)
    return path


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient([
        make_project("p1", "Blog", "blog", "running"),
        make_project("p2", "Shop", "shop", "stopped"),
    ])


@pytest.fixture
def fake_store(fake_client: FakeClient) -> ProjectStore:
    return ProjectStore(fake_client)


@pytest.fixture
def locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture
def control_plane() -> FastAPI:
    """In-process control plane with one registered tenant."""
    return create_app(base_domain="apps.test", users={USERNAME: PASSWORD})


@pytest.fixture
def transport(control_plane: FastAPI) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=control_plane)


@pytest.fixture
def token(control_plane: FastAPI) -> str:
    return control_plane.state.control_plane.issue_token(USERNAME, PASSWORD)


@pytest.fixture
def workspace(transport: httpx.ASGITransport, token: str) -> Workspace:
    """Signed-in workspace talking to the in-process control plane."""
    session = Session(API_URL, token=token)
    return Workspace(session, client=ControlPlaneClient(session, transport=transport))
