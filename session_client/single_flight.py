"""Coalesce concurrent calls to one async operation into a single execution."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one call of the wrapped coroutine function runs at a time.

    The first caller starts the work; anyone arriving while it is in flight
    awaits the same future and sees the same result or exception. Once the
    flight lands the next caller starts a fresh one.
    """

    def __init__(self) -> None:
        self._inflight: Optional[asyncio.Future[T]] = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def do(self, fn: Callable[[], Awaitable[T]]) -> T:
        if self._inflight is not None:
            # shield: a cancelled waiter must not cancel the shared flight
            return await asyncio.shield(self._inflight)

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._inflight = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future does not log a warning
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight = None
