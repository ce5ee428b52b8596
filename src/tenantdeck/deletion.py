"""Delete controller: confirmation-gated project deletion."""

import logging
from typing import Awaitable, Callable, Optional

from tenantdeck.client import ControlPlaneClient
from tenantdeck.errors import DeckError
from tenantdeck.locks import KeyedLock, LockKind
from tenantdeck.models import Project
from tenantdeck.outcome import Outcome
from tenantdeck.store import ProjectStore

logger = logging.getLogger(__name__)

DELETE_WARNING = "This will stop and remove the container."

# Receives the cached project (None if unknown) and its id
ConfirmCallback = Callable[[Optional[Project], str], Awaitable[bool]]


async def decline(project: Optional[Project], project_id: str) -> bool:
    """Confirmation callback that never confirms."""
    return False


class DeleteController:
    """Deletes projects behind an explicit confirmation step.

    Shares the project lock with the dispatcher: a project with an action
    in flight cannot be deleted, and a project being deleted cannot be
    dispatched.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        store: ProjectStore,
        locks: KeyedLock,
        confirm: ConfirmCallback = decline,
    ):
        self.client = client
        self.store = store
        self.locks = locks
        self.confirm = confirm

    def is_deleting(self, project_id: str) -> bool:
        return self.locks.deleting(project_id)

    def can_delete(self, project_id: str) -> bool:
        return project_id not in self.locks

    @staticmethod
    def prompt(project: Optional[Project], project_id: str) -> str:
        """Confirmation question shown to the user."""
        label = f"'{project.name}'" if project else project_id
        return f"Delete project {label}? {DELETE_WARNING}"

    async def request_delete(
        self,
        project_id: str,
        confirm: Optional[ConfirmCallback] = None,
    ) -> Outcome:
        """Ask for confirmation, then delete and resync.

        Args:
            project_id: Project to delete.
            confirm: Overrides the controller's confirmation callback for
                this call.
        """
        if not self.can_delete(project_id):
            return Outcome.busy("delete", project_id)

        project = self.store.get(project_id)
        confirmed = await (confirm or self.confirm)(project, project_id)
        if not confirmed:
            logger.debug("Delete of %s declined", project_id)
            return Outcome.cancelled("delete", project_id)

        # The lock may have been taken while the confirmation was pending
        if not self.locks.try_acquire(project_id, LockKind.DELETING):
            return Outcome.busy("delete", project_id)

        try:
            try:
                await self.client.delete_project(project_id)
            except DeckError as e:
                logger.warning("%s", e)
                return Outcome.failed(e)

            logger.info("Deleted project %s", project_id)
            try:
                await self.store.invalidate_and_reload()
            except DeckError as e:
                return Outcome.failed(e)
            return Outcome.ok("delete", project_id)
        finally:
            self.locks.release(project_id)
