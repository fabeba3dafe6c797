from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class StateStore(Generic[T]):
    """Holds one session's state and notifies subscribers after every change.

    snapshot() hands out deep copies so readers can never mutate the store.
    """

    def __init__(self, initial: T | None = None) -> None:
        self._state: T | None = initial
        self._subscribers: list[Callable[[T | None], None]] = []

    def snapshot(self) -> T | None:
        if self._state is None:
            return None
        return self._state.model_copy(deep=True)

    def set(self, state: T | None) -> None:
        self._state = state
        self._notify()

    def update(self, **fields) -> T | None:
        """Shallow-merge fields into the current state and return a copy of it.

        No-op when there is no state.
        """
        if self._state is None:
            return None
        self._state = self._state.model_copy(update=fields)
        self._notify()
        return self.snapshot()

    def subscribe(self, callback: Callable[[T | None], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning("State subscriber %r failed: %s", callback, e)
