"""Per-request cancellation.

Each relayed request owns one ``CancellationToken`` that is passed explicitly
down the call chain. The ``CancellationRegistry`` only exists so a caller can
stop an in-flight stream by its correlation ID; entries live exactly as long
as the request that registered them.
"""

import asyncio
from typing import Any, AsyncIterator, Awaitable, Dict, Optional, Tuple, TypeVar

T = TypeVar("T")


class RequestCancelled(Exception):
    """Raised inside the relay when a request's token fires."""

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(reason or "cancelled")
        self.reason = reason or "cancelled"


class CancellationToken:
    """One-shot cancellation signal for a single request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class CancellationRegistry:
    """Maps correlation IDs of in-flight requests to their tokens.

    Each entry remembers the caller that started the request; only the same
    caller can cancel it.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[CancellationToken, Optional[str]]] = {}

    def add(self, request_id: str, token: CancellationToken, owner: Optional[str] = None) -> None:
        self._entries[request_id] = (token, owner)

    def discard(self, request_id: str, token: CancellationToken) -> None:
        """Remove an entry, but only if it still belongs to ``token``."""
        entry = self._entries.get(request_id)
        if entry is not None and entry[0] is token:
            del self._entries[request_id]

    def cancel(
        self, request_id: str, reason: str = "cancelled by caller", owner: Optional[str] = None
    ) -> bool:
        """Cancel a registered request.

        Returns False when the request is unknown or was started by another
        caller; the two cases are indistinguishable to the caller.
        """
        entry = self._entries.get(request_id)
        if entry is None or entry[1] != owner:
            return False
        entry[0].cancel(reason)
        return True

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


async def run_or_cancel(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await ``awaitable`` unless the token fires first.

    Raises ``RequestCancelled`` when the token wins the race; the abandoned
    awaitable is cancelled and reaped before returning.
    """
    if token is None:
        return await awaitable
    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelled(token.reason)

    work = asyncio.ensure_future(awaitable)
    cancel = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, cancel}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        cancel.cancel()
    if work in done:
        return work.result()
    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise RequestCancelled(token.reason)


async def _read_next(iterator: AsyncIterator[Any]) -> Tuple[bool, Any]:
    try:
        return True, await iterator.__anext__()
    except StopAsyncIteration:
        return False, None


async def next_or_cancel(
    iterator: AsyncIterator[T], token: Optional[CancellationToken]
) -> Tuple[bool, Optional[T]]:
    """Read the next item of an async iterator unless the token fires first.

    Returns ``(True, item)``, or ``(False, None)`` once the iterator is exhausted.
    """
    return await run_or_cancel(_read_next(iterator), token)
