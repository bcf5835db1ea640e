"""
Cooperative cancellation for long-running wallet operations.

A single ``CancellationToken`` is handed to every orchestration call. Loops
check it between steps and pacing delays use ``token.sleep`` so that a stop
request ends the wait immediately. In-flight RPC calls and confirmation
waits are never interrupted.
"""

import asyncio
from typing import Optional


class CancellationToken:
    """Cancellation signal shared by the console and the running operation."""

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    def _get_event(self) -> asyncio.Event:
        # Created lazily so the token can be built outside a running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Request cancellation. Running loops stop at their next check."""
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def reset(self):
        """Clear a previous cancellation before starting a new run."""
        self._cancelled = False
        # Rebuilt on next sleep so it binds to the current loop
        self._event = None

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for ``seconds`` unless cancelled first.

        Returns:
            True if the sleep ended early because of cancellation
        """
        if self._cancelled:
            return True
        if seconds <= 0:
            return False

        try:
            await asyncio.wait_for(self._get_event().wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
