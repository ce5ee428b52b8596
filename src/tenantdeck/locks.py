"""Per-project mutual exclusion.

A ``KeyedLock`` maps project ids to the kind of mutation currently in
flight for that project. Acquisition never waits: a second attempt on a
held key is refused and the caller drops the request.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


class LockKind(str, Enum):
    """What a held project lock is protecting."""

    ACTION = "action"  # start / stop / deploy in flight
    DELETING = "deleting"  # delete in flight


class LockHeld(Exception):
    """Raised by ``KeyedLock.hold`` when the key is already held."""

    def __init__(self, key: str, held_by: LockKind):
        self.key = key
        self.held_by = held_by
        super().__init__(f"{key} is busy ({held_by.value})")


class KeyedLock:
    """Map from project id to lock state.

    All state changes happen between await points, so on a single event
    loop ``try_acquire`` is atomic.
    """

    def __init__(self) -> None:
        self._held: dict[str, LockKind] = {}
        self._listeners: list[Callable[[str, Optional[LockKind]], None]] = []

    def try_acquire(self, key: str, kind: LockKind) -> bool:
        """Take the lock for ``key`` unless any kind is already held."""
        if key in self._held:
            logger.debug("Lock for %s refused (%s held)", key, self._held[key].value)
            return False
        self._held[key] = kind
        self._changed(key, kind)
        return True

    def release(self, key: str) -> None:
        if self._held.pop(key, None) is not None:
            self._changed(key, None)

    @contextmanager
    def hold(self, key: str, kind: LockKind) -> Iterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            LockHeld: If ``key`` is already held.
        """
        if not self.try_acquire(key, kind):
            raise LockHeld(key, self._held[key])
        try:
            yield
        finally:
            self.release(key)

    def state(self, key: str) -> Optional[LockKind]:
        return self._held.get(key)

    def is_held(self, key: str, kind: Optional[LockKind] = None) -> bool:
        held = self._held.get(key)
        if kind is None:
            return held is not None
        return held is kind

    def busy(self, key: str) -> bool:
        """True while a lifecycle action is in flight for ``key``."""
        return self.is_held(key, LockKind.ACTION)

    def deleting(self, key: str) -> bool:
        return self.is_held(key, LockKind.DELETING)

    def held_keys(self) -> frozenset[str]:
        return frozenset(self._held)

    def subscribe(
        self, callback: Callable[[str, Optional[LockKind]], None]
    ) -> Callable[[], None]:
        """Call ``callback(key, kind)`` on every change; ``kind`` is None on release."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _changed(self, key: str, kind: Optional[LockKind]) -> None:
        for listener in list(self._listeners):
            listener(key, kind)

    def __contains__(self, key: object) -> bool:
        return key in self._held

    def __len__(self) -> int:
        return len(self._held)
