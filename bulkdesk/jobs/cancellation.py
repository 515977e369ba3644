"""Cooperative cancellation shared between a job and its verification tasks."""

import asyncio


class CancellationRequestedError(RuntimeError):
    """Raised when a cancellation request should abort the current unit of work."""


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def request_cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequestedError("Cancelled.")

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``, waking early on cancellation.

        Returns True if the full delay elapsed, False if cancelled.
        """
        if self._event.is_set():
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False
