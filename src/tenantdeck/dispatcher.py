"""Lifecycle action dispatcher (start / stop / deploy)."""

import logging

from tenantdeck.client import ControlPlaneClient
from tenantdeck.errors import DeckError, ValidationFailure
from tenantdeck.locks import KeyedLock, LockKind
from tenantdeck.models import Project, ProjectAction
from tenantdeck.outcome import Outcome
from tenantdeck.store import ProjectStore

logger = logging.getLogger(__name__)


def legal_actions(project: Project) -> tuple[ProjectAction, ...]:
    """Actions exposed for a project in its current status.

    ``deploy`` is always legal (redeploy semantics).
    """
    if project.is_running:
        return (ProjectAction.STOP, ProjectAction.DEPLOY)
    return (ProjectAction.START, ProjectAction.DEPLOY)


class ActionDispatcher:
    """Issues lifecycle actions with per-project mutual exclusion.

    A dispatch on a project that already holds a lock is dropped, not
    queued. On success the lock stays held until the store resync
    completes, so a busy indicator covers the whole round trip.
    """

    def __init__(self, client: ControlPlaneClient, store: ProjectStore, locks: KeyedLock):
        self.client = client
        self.store = store
        self.locks = locks

    def is_busy(self, project_id: str) -> bool:
        return self.locks.busy(project_id)

    def can_dispatch(self, project_id: str, action: ProjectAction | str) -> bool:
        """Whether a control for ``action`` should be enabled right now."""
        if project_id in self.locks:
            return False
        try:
            action = ProjectAction(action)
        except ValueError:
            return False
        project = self.store.get(project_id)
        return project is None or action in legal_actions(project)

    async def dispatch(self, project_id: str, action: ProjectAction | str) -> Outcome:
        """Run one lifecycle action for one project.

        Returns:
            ``busy`` if the project is locked (no call made), ``failed`` with
            the error on validation or remote failure, ``ok`` otherwise.
        """
        operation = action.value if isinstance(action, ProjectAction) else str(action)
        try:
            action = ProjectAction(action)
        except ValueError:
            return Outcome.failed(ValidationFailure(
                f"unknown action {operation!r}", operation, project_id, field="action",
            ))

        project = self.store.get(project_id)
        if project is not None and action not in legal_actions(project):
            return Outcome.failed(ValidationFailure(
                f"cannot {action.value} a project that is {project.status}",
                action.value, project_id, field="action",
            ))

        if not self.locks.try_acquire(project_id, LockKind.ACTION):
            logger.debug("Dropped %s for %s: project busy", action.value, project_id)
            return Outcome.busy(action.value, project_id)

        try:
            try:
                await self.client.run_action(project_id, action)
            except DeckError as e:
                logger.warning("%s", e)
                return Outcome.failed(e)

            logger.info("%s accepted for %s", action.value, project_id)
            try:
                await self.store.invalidate_and_reload()
            except DeckError as e:
                return Outcome.failed(e)
            return Outcome.ok(action.value, project_id)
        finally:
            self.locks.release(project_id)
