from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Result slot for one submitted task, keyed by its submission index."""

    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def clamp_concurrency(limit: int | None, default: int = 1) -> int:
    if limit is None:
        limit = default
    return max(int(limit), 1)


def _settle(index: int, task: asyncio.Task) -> Settled:
    if task.cancelled():
        return Settled(index=index, error=asyncio.CancelledError())
    exc = task.exception()
    if exc is not None:
        return Settled(index=index, error=exc)
    return Settled(index=index, value=task.result())


async def run_bounded(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
    *,
    on_settle: Callable[[Settled[T]], None] | None = None,
) -> list[Settled[T]]:
    """Run coroutine *factories* with at most *limit* in flight.

    A freed slot is refilled as soon as any task settles. Failures are captured in the
    returned :class:`Settled` records, which are ordered by submission index.
    ``on_settle`` is called in completion order.
    """
    limit = clamp_concurrency(limit)
    tasks: list[asyncio.Task] = []
    in_flight: set[asyncio.Task] = set()

    def _on_done(index: int, task: asyncio.Task) -> None:
        in_flight.discard(task)
        if on_settle is not None:
            try:
                on_settle(_settle(index, task))
            except Exception:  # noqa: BLE001
                logger.exception("on_settle hook failed for task %d", index)

    for index, factory in enumerate(factories):
        task = asyncio.ensure_future(factory())
        task.add_done_callback(lambda t, i=index: _on_done(i, t))
        tasks.append(task)
        in_flight.add(task)
        while len(in_flight) >= limit:
            done, _ = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
            in_flight.difference_update(done)

    if in_flight:
        await asyncio.wait(set(in_flight))
    # Let pending done-callbacks run before handing results back.
    await asyncio.sleep(0)
    return [_settle(index, task) for index, task in enumerate(tasks)]
