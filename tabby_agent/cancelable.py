"""
Cancelable task handle.

A CancelableTask wraps an asynchronous computation together with an
explicit cancel callback. Cancelling runs the callback first (so the
cancellation reaches whatever is doing the work, e.g. the HTTP session)
and then cancels the computation itself. Awaiting a canceled task raises
CanceledError.

Usage:
    task = api.completion(payload)
    ...
    task.cancel()          # aborts the HTTP request
    await task             # raises CanceledError
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generator, Generic, Optional, TypeVar

from tabby_agent.errors import CanceledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelableTask(Generic[T]):
    """
    Awaitable handle over a running computation with an explicit cancel.

    Cancellation is idempotent: the callback runs at most once, and
    cancelling a task that already finished does nothing.

    Attributes:
        canceled: True once cancel() took effect
    """

    def __init__(
        self,
        awaitable: Awaitable[T],
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        self._future: asyncio.Future[T] = asyncio.ensure_future(awaitable)
        self._on_cancel = on_cancel
        self._canceled = False
        self._future.add_done_callback(self._consume_after_cancel)

    @classmethod
    def resolved(cls, value: T) -> "CancelableTask[T]":
        """
        Create an already-completed task.

        Used for results produced without any network work; cancelling
        it is a no-op.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        return cls(future)

    def cancel(self) -> None:
        """Cancel the computation and propagate to the cancel callback."""
        if self._canceled or self._future.done():
            return
        self._canceled = True
        try:
            if self._on_cancel is not None:
                self._on_cancel()
        finally:
            self._future.cancel()

    @property
    def canceled(self) -> bool:
        return self._canceled

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> T:
        """Return the result of a finished task (see asyncio.Future.result)."""
        return self._future.result()

    def __await__(self) -> Generator[Any, None, T]:
        return self._wait().__await__()

    async def _wait(self) -> T:
        try:
            return await self._future
        except asyncio.CancelledError:
            if self._canceled:
                raise CanceledError() from None
            raise

    def _consume_after_cancel(self, future: "asyncio.Future[T]") -> None:
        # A canceled handle is often dropped without being awaited.
        if self._canceled and not future.cancelled():
            exc = future.exception()
            if exc is not None and not isinstance(exc, CanceledError):
                logger.debug(f"Canceled task finished with {type(exc).__name__}: {exc}")

    def __repr__(self) -> str:
        state = "canceled" if self._canceled else ("done" if self.done() else "pending")
        return f"<CancelableTask {state}>"
