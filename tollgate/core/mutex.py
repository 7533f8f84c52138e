"""FIFO mutex with direct hand-off between holders."""

import asyncio
import contextlib
from collections import deque
from collections.abc import AsyncIterator


class LockHandle:
    """Proof of mutex ownership. Releasable exactly once."""

    def __init__(self, mutex: "Mutex") -> None:
        self._mutex = mutex
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the lock, handing it to the longest-waiting caller if any.

        Raises:
            RuntimeError: If this handle was already released.
        """
        if self._released:
            raise RuntimeError("Lock handle already released")
        self._released = True
        self._mutex._release()


class Mutex:
    """Binary lock with a strict FIFO waiter queue.

    Unlike ``asyncio.Lock``, release hands ownership straight to the head
    waiter: the lock never passes through an unlocked state while callers
    are queued, so a newcomer cannot overtake them.

    There is no acquire timeout. A holder that never releases blocks every
    later caller.
    """

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[LockHandle]] = deque()

    def locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        """Number of callers queued for the lock."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> LockHandle:
        """Acquire the lock, suspending until it is handed over if held."""
        if not self._locked:
            self._locked = True
            return LockHandle(self)

        waiter: asyncio.Future[LockHandle] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership arrived just before cancellation; pass it on.
                waiter.result().release()
            else:
                with contextlib.suppress(ValueError):
                    self._waiters.remove(waiter)
            raise

    @contextlib.asynccontextmanager
    async def hold(self) -> AsyncIterator[LockHandle]:
        """Hold the lock for the duration of an ``async with`` block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            if not handle.released:
                handle.release()

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(LockHandle(self))
                return
        self._locked = False
