"""Structured results returned by the controllers."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tenantdeck.errors import DeckError, ErrorKind


class OutcomeStatus(str, Enum):
    """How an intent ended."""

    OK = "ok"
    BUSY = "busy"  # Dropped: another mutation holds the project
    CANCELLED = "cancelled"  # Confirmation declined
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """Result of one controller intent."""

    status: OutcomeStatus
    operation: str
    project_id: Optional[str] = None
    error: Optional[DeckError] = None

    @classmethod
    def ok(cls, operation: str, project_id: Optional[str] = None) -> "Outcome":
        return cls(OutcomeStatus.OK, operation, project_id)

    @classmethod
    def busy(cls, operation: str, project_id: Optional[str] = None) -> "Outcome":
        return cls(OutcomeStatus.BUSY, operation, project_id)

    @classmethod
    def cancelled(cls, operation: str, project_id: Optional[str] = None) -> "Outcome":
        return cls(OutcomeStatus.CANCELLED, operation, project_id)

    @classmethod
    def failed(cls, error: DeckError) -> "Outcome":
        return cls(OutcomeStatus.FAILED, error.operation, error.project_id, error)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def __str__(self) -> str:
        if self.error:
            return self.error.describe()
        target = f" {self.project_id}" if self.project_id else ""
        return f"{self.operation}{target}: {self.status.value}"
