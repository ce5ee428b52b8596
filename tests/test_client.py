"""Tests for the control-plane HTTP client."""

import json

import httpx
import pytest
import respx
from httpx import Response

from tenantdeck.client import ControlPlaneClient, error_message
from tenantdeck.errors import ErrorKind, NetworkFailure, ServerRejection
from tenantdeck.models import ProjectAction, ProjectPayload
from tenantdeck.session import Session

BASE = "http://cp.test/api/v1"

PROJECT = {
    "ID": "p1",
    "Name": "Blog",
    "Subdomain": "blog",
    "ImageName": "nginx:alpine",
    "ContainerPort": 80,
    "Status": "running",
}


@pytest.fixture
def session() -> Session:
    return Session(BASE, token="secret")


@pytest.fixture
def client(session: Session) -> ControlPlaneClient:
    return ControlPlaneClient(session)


class TestErrorMessage:
    """Tests for error body extraction."""

    def test_error_key(self) -> None:
        """Test the control plane's error key is used."""
        assert error_message(Response(400, json={"error": "bad subdomain"})) == "bad subdomain"

    def test_detail_key(self) -> None:
        """Test FastAPI style detail bodies are understood."""
        assert error_message(Response(404, json={"detail": "Not Found"})) == "Not Found"

    def test_plain_text(self) -> None:
        """Test non-JSON bodies fall back to the text."""
        assert error_message(Response(502, text="Bad gateway")) == "Bad gateway"

    def test_empty_body(self) -> None:
        """Test an empty body falls back to the reason phrase."""
        assert error_message(Response(503)) == "Service Unavailable"


class TestAuth:
    """Tests for auth endpoints."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_returns_token(self) -> None:
        """Test login returns the issued token without sending a stale one."""
        route = respx.post(f"{BASE}/auth/login").mock(
            return_value=Response(200, json={"token": "t-123"})
        )
        async with ControlPlaneClient(Session(BASE)) as client:
            token = await client.login("alice", "pw")
        assert token == "t-123"
        request = route.calls.last.request
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_rejected(self) -> None:
        """Test invalid credentials raise a server rejection."""
        respx.post(f"{BASE}/auth/login").mock(
            return_value=Response(401, json={"error": "invalid credentials"})
        )
        async with ControlPlaneClient(Session(BASE)) as client:
            with pytest.raises(ServerRejection) as exc_info:
                await client.login("alice", "nope")
        assert exc_info.value.is_unauthorized
        assert exc_info.value.message == "invalid credentials"

    @pytest.mark.asyncio
    @respx.mock
    async def test_me(self, client: ControlPlaneClient) -> None:
        """Test identity fetch sends the bearer credential."""
        route = respx.get(f"{BASE}/auth/me").mock(
            return_value=Response(200, json={"id": "u1", "username": "alice", "base_domain": "apps.test"})
        )
        identity = await client.me()
        await client.aclose()
        assert identity.username == "alice"
        assert identity.base_domain == "apps.test"
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @respx.mock
    async def test_credential_read_per_request(self, session: Session, client: ControlPlaneClient) -> None:
        """Test a logout takes effect on the next request."""
        route = respx.get(f"{BASE}/projects").mock(return_value=Response(200, json=[]))
        await client.list_projects()
        session.logout()
        await client.list_projects()
        await client.aclose()
        assert route.calls[0].request.headers["Authorization"] == "Bearer secret"
        assert "Authorization" not in route.calls[1].request.headers


class TestProjects:
    """Tests for project endpoints."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_projects(self, client: ControlPlaneClient) -> None:
        """Test listing parses records in server order."""
        second = {**PROJECT, "ID": "p2", "Name": "Shop", "Subdomain": "shop"}
        respx.get(f"{BASE}/projects").mock(return_value=Response(200, json=[PROJECT, second]))
        projects = await client.list_projects()
        await client.aclose()
        assert [p.id for p in projects] == ["p1", "p2"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_null_is_empty(self, client: ControlPlaneClient) -> None:
        """Test a null body is treated as an empty collection."""
        respx.get(f"{BASE}/projects").mock(return_value=Response(200, content=b"null"))
        assert await client.list_projects() == []
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_malformed(self, client: ControlPlaneClient) -> None:
        """Test a non-list body is rejected."""
        respx.get(f"{BASE}/projects").mock(return_value=Response(200, json={"oops": 1}))
        with pytest.raises(ServerRejection, match="expected a list"):
            await client.list_projects()
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_sends_payload(self, client: ControlPlaneClient) -> None:
        """Test create posts the payload and returns the echoed record."""
        route = respx.post(f"{BASE}/projects").mock(return_value=Response(201, json=PROJECT))
        payload = ProjectPayload(name="Blog", image="nginx:alpine", subdomain="blog", port=80)
        created = await client.create_project(payload)
        await client.aclose()
        assert created is not None and created.id == "p1"
        assert json.loads(route.calls.last.request.content) == payload.model_dump()

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_without_echo(self, client: ControlPlaneClient) -> None:
        """Test update tolerates a body that is not a project."""
        respx.put(f"{BASE}/projects/p1").mock(
            return_value=Response(200, json={"message": "updated"})
        )
        payload = ProjectPayload(name="Blog", image="nginx:1.27", subdomain="blog", port=80)
        assert await client.update_project("p1", payload) is None
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete(self, client: ControlPlaneClient) -> None:
        """Test delete issues DELETE on the project."""
        route = respx.delete(f"{BASE}/projects/p1").mock(
            return_value=Response(200, json={"message": "project deleted"})
        )
        await client.delete_project("p1")
        await client.aclose()
        assert route.called

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", list(ProjectAction))
    async def test_run_action_path(self, client: ControlPlaneClient, action: ProjectAction) -> None:
        """Test each action posts to its own endpoint."""
        with respx.mock:
            route = respx.post(f"{BASE}/projects/p1/{action.value}").mock(
                return_value=Response(200, json={"message": "ok"})
            )
            await client.run_action("p1", action)
        await client.aclose()
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_action_failure_names_operation(self, client: ControlPlaneClient) -> None:
        """Test a rejected stop reports the operation and project."""
        respx.post(f"{BASE}/projects/p9/stop").mock(
            return_value=Response(500, json={"error": "no deployments found for this project"})
        )
        with pytest.raises(ServerRejection) as exc_info:
            await client.run_action("p9", "stop")
        await client.aclose()
        error = exc_info.value
        assert error.kind is ErrorKind.SERVER
        assert error.operation == "stop"
        assert error.project_id == "p9"
        assert error.status_code == 500
        assert "no deployments" in str(error)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_failure(self, client: ControlPlaneClient) -> None:
        """Test transport errors become network failures."""
        respx.post(f"{BASE}/projects/p1/deploy").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        with pytest.raises(NetworkFailure) as exc_info:
            await client.run_action("p1", ProjectAction.DEPLOY)
        await client.aclose()
        assert exc_info.value.kind is ErrorKind.NETWORK
        assert exc_info.value.operation == "deploy"
