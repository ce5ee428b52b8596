"""Local in-memory control plane.

Speaks the same wire protocol as the hosting control plane so the client,
CLI and dashboard can be developed and tested without a container engine.
Runtime handles are simulated: deploy mints a container id instead of
pulling an image.
"""

import hashlib
import os
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

API_PREFIX = "/api/v1"


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class ProjectRequest(BaseModel):
    name: str
    image: str
    subdomain: str
    port: int


@dataclass
class UserRecord:
    id: str
    username: str
    email: str
    password_hash: str


@dataclass
class DeploymentRecord:
    container_id: str
    status: str = "running"
    deployed_at: datetime = field(default_factory=utcnow)


@dataclass
class ProjectRecord:
    id: str
    user_id: str
    name: str
    subdomain: str
    image_name: str
    container_port: int
    status: str = "created"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deployments: list[DeploymentRecord] = field(default_factory=list)

    @property
    def container_id(self) -> str:
        if self.deployments:
            return self.deployments[-1].container_id
        return ""

    def to_wire(self) -> dict:
        """Serialize with the control plane's capitalized keys."""
        return {
            "ID": self.id,
            "UserID": self.user_id,
            "Name": self.name,
            "Subdomain": self.subdomain,
            "ImageName": self.image_name,
            "ContainerPort": self.container_port,
            "Status": self.status,
            "ContainerID": self.container_id,
            "CreatedAt": self.created_at.isoformat(),
            "UpdatedAt": self.updated_at.isoformat(),
        }


def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()


class ControlPlaneState:
    """Users, tokens and projects of one control plane instance."""

    def __init__(self, base_domain: str = "localhost"):
        self.base_domain = base_domain
        self.users: dict[str, UserRecord] = {}
        self.tokens: dict[str, str] = {}  # token -> user id
        self.projects: dict[str, ProjectRecord] = {}  # insertion ordered
        self._salt = secrets.token_hex(8)

    def add_user(self, username: str, password: str, email: Optional[str] = None) -> UserRecord:
        if any(u.username == username for u in self.users.values()):
            raise HTTPException(status_code=409, detail="username already taken")
        email = email or f"{username}@example.com"
        if any(u.email == email for u in self.users.values()):
            raise HTTPException(status_code=409, detail="email already registered")
        user = UserRecord(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=hash_password(password, self._salt),
        )
        self.users[user.id] = user
        return user

    def issue_token(self, username: str, password: str) -> str:
        for user in self.users.values():
            if user.username == username and user.password_hash == hash_password(password, self._salt):
                token = secrets.token_urlsafe(24)
                self.tokens[token] = user.id
                return token
        raise HTTPException(status_code=401, detail="invalid credentials")

    def user_for_token(self, token: str) -> Optional[UserRecord]:
        user_id = self.tokens.get(token)
        return self.users.get(user_id) if user_id else None

    def owned(self, user: UserRecord, project_id: str) -> ProjectRecord:
        project = self.projects.get(project_id)
        if project is None or project.user_id != user.id:
            raise HTTPException(status_code=404, detail="project not found")
        return project

    def check_subdomain(self, subdomain: str, exclude: Optional[str] = None) -> None:
        if not subdomain or any(c.isspace() for c in subdomain):
            raise HTTPException(status_code=400, detail="subdomain cannot contain spaces")
        for project in self.projects.values():
            if project.subdomain == subdomain and project.id != exclude:
                raise HTTPException(status_code=409, detail=f"subdomain '{subdomain}' is already in use")


def get_state(request: Request) -> ControlPlaneState:
    return request.app.state.control_plane


def current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> UserRecord:
    """Bearer authentication, mirroring the control plane's middleware."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(status_code=401, detail="Invalid auth header format")
    user = get_state(request).user_for_token(parts[1])
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


router = APIRouter(prefix=API_PREFIX)


@router.post("/auth/register", status_code=201)
def register(body: RegisterRequest, request: Request) -> dict:
    """Register a tenant."""
    get_state(request).add_user(body.username, body.password, body.email)
    return {"message": "user registered"}


@router.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    """Issue a bearer token."""
    return {"token": get_state(request).issue_token(body.username, body.password)}


@router.get("/auth/me")
def me(request: Request, user: UserRecord = Depends(current_user)) -> dict:
    """Identity behind the presented token."""
    return {
        "id": user.id,
        "username": user.username,
        "base_domain": get_state(request).base_domain,
    }


@router.get("/projects")
def list_projects(request: Request, user: UserRecord = Depends(current_user)) -> list[dict]:
    """List the caller's projects in creation order."""
    state = get_state(request)
    return [p.to_wire() for p in state.projects.values() if p.user_id == user.id]


@router.post("/projects", status_code=201)
def create_project(
    body: ProjectRequest, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    """Store project metadata. Nothing is deployed yet."""
    state = get_state(request)
    state.check_subdomain(body.subdomain)
    project = ProjectRecord(
        id=str(uuid.uuid4()),
        user_id=user.id,
        name=body.name,
        subdomain=body.subdomain,
        image_name=body.image,
        container_port=body.port,
    )
    state.projects[project.id] = project
    return project.to_wire()


@router.get("/projects/{project_id}")
def get_project(
    project_id: str, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    return get_state(request).owned(user, project_id).to_wire()


@router.put("/projects/{project_id}")
def update_project(
    project_id: str,
    body: ProjectRequest,
    request: Request,
    user: UserRecord = Depends(current_user),
) -> dict:
    """Replace editable fields. Takes effect on the next deploy."""
    state = get_state(request)
    project = state.owned(user, project_id)
    state.check_subdomain(body.subdomain, exclude=project.id)
    project.name = body.name
    project.image_name = body.image
    project.subdomain = body.subdomain
    project.container_port = body.port
    project.updated_at = utcnow()
    return project.to_wire()


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: str, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    """Stop and remove the runtime container, then forget the project."""
    state = get_state(request)
    project = state.owned(user, project_id)
    for deployment in project.deployments:
        deployment.status = "removed"
    del state.projects[project.id]
    return {"message": "project deleted"}


@router.post("/projects/{project_id}/deploy")
def deploy_project(
    project_id: str, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    """Create and start a fresh container for the project's current config."""
    project = get_state(request).owned(user, project_id)
    for previous in project.deployments:
        if previous.status == "running":
            previous.status = "exited"
    deployment = DeploymentRecord(container_id=uuid.uuid4().hex[:12])
    project.deployments.append(deployment)
    project.status = "running"
    project.updated_at = utcnow()
    return {
        "ProjectID": project.id,
        "ContainerID": deployment.container_id,
        "Status": deployment.status,
        "DeployedAt": deployment.deployed_at.isoformat(),
    }


@router.post("/projects/{project_id}/start")
def start_project(
    project_id: str, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    project = get_state(request).owned(user, project_id)
    if not project.deployments:
        raise HTTPException(status_code=500, detail="no deployments found for this project")
    project.deployments[-1].status = "running"
    project.status = "running"
    project.updated_at = utcnow()
    return {"message": "project started"}


@router.post("/projects/{project_id}/stop")
def stop_project(
    project_id: str, request: Request, user: UserRecord = Depends(current_user)
) -> dict:
    project = get_state(request).owned(user, project_id)
    if not project.deployments:
        raise HTTPException(status_code=500, detail="no deployments found for this project")
    project.deployments[-1].status = "exited"
    project.status = "stopped"
    project.updated_at = utcnow()
    return {"message": "project stopped"}


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render errors as ``{"error": ...}`` like the control plane does."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


def create_app(
    base_domain: Optional[str] = None,
    users: Optional[dict[str, str]] = None,
) -> FastAPI:
    """Build a control plane with its own empty state.

    Args:
        base_domain: Domain projects are routed under; defaults to the
            ``BASE_DOMAIN`` environment variable, then ``localhost``.
        users: Optional ``{username: password}`` accounts to pre-register.
    """
    app = FastAPI(
        title="tenantdeck local control plane",
        description="In-memory stand-in for the multi-tenant hosting control plane",
        version="0.1.0",
    )
    state = ControlPlaneState(base_domain or os.environ.get("BASE_DOMAIN") or "localhost")
    for username, password in (users or {}).items():
        state.add_user(username, password)
    app.state.control_plane = state
    app.include_router(router)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
