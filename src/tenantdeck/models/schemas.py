"""Pydantic schemas for the control-plane wire format."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


GUEST_USERNAME = "Guest"
DEFAULT_BASE_DOMAIN = "localhost"
DEFAULT_IMAGE = "nginx:alpine"
DEFAULT_PORT = 80


class ProjectStatus(str, Enum):
    """Status values reported by the control plane."""

    CREATED = "created"  # Metadata stored, never deployed
    STOPPED = "stopped"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"


class ProjectAction(str, Enum):
    """Lifecycle actions accepted by ``POST /projects/{id}/{action}``."""

    START = "start"
    STOP = "stop"
    DEPLOY = "deploy"


class Project(BaseModel):
    """A deployed application as reported by the control plane.

    The control plane serializes its records with capitalized keys
    (``ID``, ``ImageName``, ...); snake_case keys are accepted as well.
    Instances are frozen: the client never edits a cached project, it
    replaces the whole cache on resync.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("ID", "id"))
    name: str = Field(validation_alias=AliasChoices("Name", "name"))
    subdomain: str = Field(validation_alias=AliasChoices("Subdomain", "subdomain"))
    image_name: str = Field(
        validation_alias=AliasChoices("ImageName", "image_name", "image"),
    )
    container_port: int = Field(
        validation_alias=AliasChoices("ContainerPort", "container_port", "port"),
    )
    status: str = Field(
        default=ProjectStatus.STOPPED.value,
        validation_alias=AliasChoices("Status", "status"),
    )
    container_id: str = Field(
        default="",
        validation_alias=AliasChoices("ContainerID", "container_id"),
    )
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("CreatedAt", "created_at"),
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("UpdatedAt", "updated_at"),
    )

    @property
    def is_running(self) -> bool:
        """Anything other than ``running`` counts as stopped."""
        return self.status == ProjectStatus.RUNNING.value

    @property
    def image_label(self) -> str:
        """Image reference with the exposed port, e.g. ``nginx:alpine:80``."""
        return f"{self.image_name}:{self.container_port}"

    def public_host(self, base_domain: str = DEFAULT_BASE_DOMAIN) -> str:
        """Host name the project is routed under."""
        return f"{self.subdomain}.{base_domain}"

    def public_url(self, base_domain: str = DEFAULT_BASE_DOMAIN) -> str:
        """Public URL of the project."""
        return f"http://{self.public_host(base_domain)}"


class Identity(BaseModel):
    """The signed-in tenant as reported by ``GET /auth/me``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str = GUEST_USERNAME
    base_domain: str = DEFAULT_BASE_DOMAIN
    id: Optional[str] = None

    @classmethod
    def guest(cls) -> "Identity":
        """Placeholder identity used when ``/auth/me`` is unavailable."""
        return cls()

    @property
    def is_guest(self) -> bool:
        return self.id is None and self.username == GUEST_USERNAME


class ProjectPayload(BaseModel):
    """Body of create and update requests."""

    name: str
    image: str
    subdomain: str
    port: int = Field(ge=1, le=65535)


class TokenResponse(BaseModel):
    """Body returned by ``POST /auth/login``."""

    token: str
