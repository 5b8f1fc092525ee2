# trigram_search/services/cancellation.py
# Responsibility: Cooperative cancellation tokens shared between racing searches.

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from trigram_search.services.errors import SearchCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    A one-shot cancellation signal.

    Tokens form a tree: a token created with `child()` is cancelled whenever
    its parent is, but cancelling the child leaves the parent untouched.
    The engine uses this to stop the losing branch of a race without
    affecting the caller's own token.

    Usage:
        token = CancellationToken()
        rows = await token.run(store.query(sql))
        ...
        token.cancel()  # from anywhere on the same event loop
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._cancelled = False
        self._callbacks: List[Callable[[], Any]] = []
        self._event: Optional[asyncio.Event] = None
        self._detach_from_parent: Callable[[], None] = lambda: None
        if parent is not None:
            self._detach_from_parent = parent.on_cancel(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self) -> "CancellationToken":
        """Creates a token that is cancelled together with this one."""
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """
        Stops following the parent token. A child that is done with its work
        should detach, otherwise a long-lived parent keeps a listener for it.
        """
        self._detach_from_parent()
        self._detach_from_parent = lambda: None

    def cancel(self) -> None:
        """
        Fires the token. Idempotent; callbacks run at most once, in
        registration order.
        """
        if self._cancelled:
            return
        self._cancelled = True
        self.detach()
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                # A failing listener must not prevent the others from firing
                logger.exception("Cancellation callback %r failed", callback)

    def on_cancel(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """
        Registers `callback` to run when the token fires. If the token has
        already fired, the callback runs immediately.

        Returns:
            Callable: removes the registration when called.
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SearchCancelled()

    async def wait(self) -> None:
        """Suspends until the token fires."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Awaits `awaitable`, abandoning it if the token fires first.

        Raises:
            SearchCancelled: the token fired before the awaitable completed.
                The awaitable is cancelled and awaited before this is raised.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise SearchCancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        # Let the abandoned work unwind before reporting; its outcome is moot.
        await asyncio.gather(work, return_exceptions=True)
        raise SearchCancelled()


async def run_cancellable(awaitable: Awaitable[T], cancellation: Optional[CancellationToken]) -> T:
    """Runs `awaitable` under `cancellation` when one is given."""
    if cancellation is None:
        return await awaitable
    return await cancellation.run(awaitable)
