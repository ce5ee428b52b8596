"""Data models for tenantdeck."""

from .schemas import (
    DEFAULT_BASE_DOMAIN,
    DEFAULT_IMAGE,
    DEFAULT_PORT,
    GUEST_USERNAME,
    Identity,
    Project,
    ProjectAction,
    ProjectPayload,
    ProjectStatus,
    TokenResponse,
)

__all__ = [
    "DEFAULT_BASE_DOMAIN",
    "DEFAULT_IMAGE",
    "DEFAULT_PORT",
    "GUEST_USERNAME",
    "Identity",
    "Project",
    "ProjectAction",
    "ProjectPayload",
    "ProjectStatus",
    "TokenResponse",
]
