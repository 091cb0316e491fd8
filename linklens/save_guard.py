"""
Re-entrancy guard for the create-article submission.

The guard is ``idle`` or ``saving``. A second submission while ``saving``
is rejected only if the busy indicator (the disabled save control)
corroborates that a save is really in flight. A flag left set without a
busy indicator is a leftover from an interrupted submission; the guard
resets itself and lets the new submission through rather than locking the
form forever.

Each scope owns the guard only until the guard is reset; a scope that
outlives a reset (sign-out, self-heal) leaves the guard alone on exit so
it cannot release a newer submission.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from .protocol import BusyIndicator

logger = logging.getLogger(__name__)


class SaveGuard:

    def __init__(self, indicator: BusyIndicator):
        self._indicator = indicator
        self._saving = False
        self._generation = 0

    @property
    def saving(self) -> bool:
        return self._saving

    def try_acquire(self) -> bool:
        """
        Check whether a new submission may start.

        Returns False if a save is genuinely in flight. A stale flag is
        cleared (self-heal) and True is returned.
        """
        if not self._saving:
            return True
        if self._indicator.busy:
            return False
        logger.warning("Save flag set without busy indicator; resetting")
        self.reset()
        return True

    def reset(self) -> None:
        """Force the guard back to idle and restore the indicator."""
        self._generation += 1
        self._saving = False
        self._indicator.set_busy(False)

    @contextmanager
    def saving_scope(self) -> Iterator[None]:
        """Hold the guard for the duration of a save; released unless reset meanwhile."""
        self._generation += 1
        mine = self._generation
        self._saving = True
        self._indicator.set_busy(True)
        try:
            yield
        finally:
            if self._generation == mine:
                self._indicator.set_busy(False)
                self._saving = False
