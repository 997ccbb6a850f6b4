"""Keeps the resource stores in step with the session."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Sequence

from .models.session import SessionState, SessionStatus
from .session import SessionManager
from .stores.base import ResourceStore

logger = logging.getLogger(__name__)

_SIGNED_OUT = (SessionStatus.UNAUTHENTICATED, SessionStatus.FAILED)


class SessionOrchestrator:
    """
    Reacts to session transitions.

    Entering ``AUTHENTICATED`` drops whatever the stores hold and fetches
    fresh collections. Entering ``UNAUTHENTICATED`` or ``FAILED`` clears
    them synchronously, before the transition returns to its caller.
    """

    def __init__(self, session: SessionManager, stores: Sequence[ResourceStore]):
        self._session = session
        self._stores = list(stores)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._session.subscribe(self._on_transition)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def _on_transition(self, previous: SessionState, current: SessionState) -> None:
        if current.status == previous.status:
            return

        if current.status == SessionStatus.AUTHENTICATED:
            logger.debug("Session established; loading %d stores", len(self._stores))
            for store in self._stores:
                store.reset()
                self._schedule_background(store.load())
        elif current.status in _SIGNED_OUT:
            logger.debug("Session ended (%s); clearing stores", current.status.value)
            for store in self._stores:
                store.reset()

    def _schedule_background(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_task_done)

    def _on_background_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        try:
            task.result()
        except Exception:
            logger.exception("Store load failed")

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        """Wait for the loads started so far."""
        if not self._background_tasks:
            return
        pending = list(self._background_tasks)
        await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=timeout)
