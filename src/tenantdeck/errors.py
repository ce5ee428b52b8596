"""Error taxonomy for tenantdeck.

Every failure the core reports is a ``DeckError`` carrying an ``ErrorKind``,
the attempted operation and the target project, so callers can branch on
the kind instead of matching message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Categories of failure surfaced to the user."""

    VALIDATION = "validation"  # Caught client-side, no call issued
    NETWORK = "network"  # Transport error or timeout
    SERVER = "server"  # Non-success response from the control plane


class DeckError(Exception):
    """Base class for all tenantdeck failures."""

    kind: ErrorKind = ErrorKind.SERVER

    def __init__(
        self,
        message: str,
        operation: str,
        project_id: Optional[str] = None,
    ):
        self.message = message
        self.operation = operation
        self.project_id = project_id
        super().__init__(self.describe())

    def describe(self) -> str:
        """Human readable summary naming the operation and target project."""
        target = f" for project {self.project_id}" if self.project_id else ""
        return f"{self.operation} failed{target}: {self.message}"


class ValidationFailure(DeckError):
    """A required form field is missing or invalid."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        operation: str,
        project_id: Optional[str] = None,
        field: Optional[str] = None,
    ):
        self.field = field
        super().__init__(message, operation, project_id)


class NetworkFailure(DeckError):
    """The control plane could not be reached."""

    kind = ErrorKind.NETWORK


class ServerRejection(DeckError):
    """The control plane answered with a non-success status."""

    kind = ErrorKind.SERVER

    def __init__(
        self,
        message: str,
        operation: str,
        project_id: Optional[str] = None,
        status_code: int = 0,
    ):
        self.status_code = status_code
        super().__init__(message, operation, project_id)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401
