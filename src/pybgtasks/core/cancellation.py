"""Cooperative cancellation token.

A token is handed to every executor run. The dispatcher signals it on
cancel() or when the run's deadline passes; the executor is expected to
check `is_cancelled` (or await `wait()`) and return promptly. Nothing is
ever terminated preemptively.

The flag is a plain attribute so executors running in a worker thread
(see ThreadedExecutor) can poll it without touching the event loop.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Signal requesting early, voluntary termination of a run."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        """Why the token was signalled ("cancelled", "timeout"), or None."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal the token. Idempotent; the first reason wins.

        Safe to call from any thread.
        """
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is None or self._loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._event.set()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._event.set)

    async def wait(self) -> None:
        """Wait until the token is signalled."""
        if self._event is None:
            self._loop = asyncio.get_running_loop()
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"
