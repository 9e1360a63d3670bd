"""Ordered release actions for one chat session.

Actions run in registration order, each isolated: a failing action is
logged and the next one still runs.  The registry is single-use; after
``run_all()`` it is closed and a second ``run_all()`` does nothing.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

CleanupAction = Callable[[], Union[None, Awaitable[None]]]


def idempotent(action: CleanupAction) -> CleanupAction:
    """Wrap ``action`` so only its first call has any effect."""
    called = False

    if inspect.iscoroutinefunction(action):
        @functools.wraps(action)
        async def _async_once() -> None:
            nonlocal called
            if called:
                return
            called = True
            await action()  # type: ignore[misc]
        return _async_once

    @functools.wraps(action)
    def _once() -> Optional[Awaitable[None]]:
        nonlocal called
        if called:
            return None
        called = True
        return action()
    return _once


class CleanupRegistry:
    """Single-use, ordered list of cleanup actions."""

    def __init__(self, name: str = "session") -> None:
        self.name = name
        self._actions: Optional[list[CleanupAction]] = []

    @property
    def closed(self) -> bool:
        return self._actions is None

    def push(self, action: CleanupAction) -> None:
        if self._actions is None:
            raise RuntimeError(f"Cleanup registry '{self.name}' already ran")
        self._actions.append(action)

    def __len__(self) -> int:
        return len(self._actions) if self._actions is not None else 0

    async def run_all(self) -> int:
        """Run every action once, in order.  Returns the number that raised."""
        if self._actions is None:
            return 0
        actions, self._actions = self._actions, None

        failures = 0
        for action in actions:
            try:
                result = action()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failures += 1
                logger.exception(
                    f"[{self.name}] Error in cleanup action "
                    f"{getattr(action, '__name__', repr(action))}"
                )
        logger.debug(f"[{self.name}] Cleanup completed: {len(actions)} actions, {failures} failed")
        return failures


async def dispose_client(client: Any) -> None:
    """Release a generation client.  Failures are logged, never raised."""
    if client is None:
        return
    try:
        result = client.close()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Error disposing generation client: {e}")
