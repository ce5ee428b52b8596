"""Project store: the client's cache of the tenant's projects.

The cache is only ever replaced as a whole from the control plane's list.
Every mutation path ends in ``invalidate_and_reload()``, so what the UI
shows is server-authoritative data, never an inferred state.
"""

import asyncio
import logging
from typing import Callable, Iterator, Optional

from tenantdeck.client import ControlPlaneClient
from tenantdeck.errors import DeckError
from tenantdeck.models import Identity, Project
from tenantdeck.session import Session

logger = logging.getLogger(__name__)

StoreListener = Callable[[tuple[Project, ...]], None]


class ProjectStore:
    """Wholesale-replaceable cache of Project entities.

    Each ``fetch_all`` call takes a sequence number. A response is applied
    only if no newer request was issued while it was in flight, so a slow
    stale response can never overwrite a newer snapshot.
    """

    def __init__(self, client: ControlPlaneClient):
        self.client = client
        self._projects: tuple[Project, ...] = ()
        self._index: dict[str, Project] = {}
        self._issued = 0
        self._applied = 0
        # settles with the newest fetch's applied flag
        self._pending: Optional[asyncio.Future] = None
        self._listeners: list[StoreListener] = []
        self.loaded = False
        self.last_error: Optional[DeckError] = None

    # -- reads ------------------------------------------------------------

    @property
    def projects(self) -> tuple[Project, ...]:
        """Cached projects in server order."""
        return self._projects

    def get(self, project_id: str) -> Optional[Project]:
        return self._index.get(project_id)

    def __iter__(self) -> Iterator[Project]:
        return iter(self._projects)

    def __len__(self) -> int:
        return len(self._projects)

    def __contains__(self, project_id: object) -> bool:
        return project_id in self._index

    @property
    def generation(self) -> int:
        """Sequence number of the snapshot currently held."""
        return self._applied

    # -- resync -----------------------------------------------------------

    async def fetch_all(self) -> bool:
        """Replace the cache with the control plane's full project list.

        Returns:
            True if the response was applied, False if a newer request was
            issued meanwhile and this response (or failure) was discarded.

        Raises:
            DeckError: If the latest request could not be fetched. The
                previous cache is kept unchanged.
        """
        self._issued += 1
        seq = self._issued
        settled = asyncio.get_running_loop().create_future()
        self._pending = settled
        applied = False
        try:
            try:
                projects = await self.client.list_projects()
            except DeckError as e:
                if seq != self._issued:
                    logger.warning(
                        "Ignoring failed project list #%d (latest request is #%d): %s",
                        seq, self._issued, e,
                    )
                    return False
                self.last_error = e
                logger.warning("Project resync #%d failed: %s", seq, e)
                raise

            if seq != self._issued:
                logger.warning(
                    "Discarding stale project list #%d (latest request is #%d)",
                    seq, self._issued,
                )
                return False

            self._replace(projects, seq)
            applied = True
            return True
        finally:
            settled.set_result(applied)

    async def invalidate_and_reload(self) -> bool:
        """Drop the current snapshot's authority and reload it.

        This is the single entry point mutation paths use after a
        successful remote call. If this reload is superseded by a newer
        fetch, it waits for that fetch to settle, so a caller holding a
        project lock only releases it once the cache reflects its change.

        Returns:
            True once a snapshot issued after the call was applied. False if
            the newest fetch failed for its own caller or the store was
            closed.
        """
        applied = await self.fetch_all()
        while not applied and self._pending is not None:
            pending = self._pending
            applied = await asyncio.shield(pending)
            if pending is self._pending:
                break
        return applied

    async def load(self, session: Session) -> bool:
        """Startup load: projects and identity fetched concurrently.

        An identity failure degrades to the guest placeholder and does not
        abort the project load. A project failure is raised.
        """
        projects_result, identity_result = await asyncio.gather(
            self.fetch_all(),
            self.client.me(),
            return_exceptions=True,
        )

        if isinstance(identity_result, Identity):
            session.set_identity(identity_result)
        else:
            logger.warning("Identity unavailable, using guest: %s", identity_result)
            session.set_identity(None)

        if isinstance(projects_result, BaseException):
            raise projects_result
        return projects_result

    def close(self) -> None:
        """Invalidate every in-flight fetch; late responses will be ignored."""
        self._issued += 1
        self._pending = None

    def _replace(self, projects: list[Project], seq: int) -> None:
        self._projects = tuple(projects)
        self._index = {p.id: p for p in self._projects}
        self._applied = seq
        self.loaded = True
        self.last_error = None
        logger.info("Project cache replaced (#%d, %d projects)", seq, len(self._projects))
        for listener in list(self._listeners):
            listener(self._projects)

    # -- subscribers ------------------------------------------------------

    def subscribe(self, callback: StoreListener) -> Callable[[], None]:
        """Call ``callback(projects)`` after each applied replacement."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe
