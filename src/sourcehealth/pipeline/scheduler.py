from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class AdmissionState:
    """Admission control for one run_bounded call."""

    limit: int
    in_flight: int = 0
    next_index: int = 0

    def can_admit(self, total: int) -> bool:
        return self.in_flight < self.limit and self.next_index < total


async def run_bounded(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T | BaseException]:
    """Run zero-argument coroutine factories with at most `limit` in flight.

    Results come back in input order. A task that raises leaves its exception
    at its own index; the other tasks keep running.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    total = len(tasks)
    results: list[T | BaseException | None] = [None] * total
    state = AdmissionState(limit=limit)
    running: dict[asyncio.Future, int] = {}

    def admit() -> None:
        while state.can_admit(total):
            i = state.next_index
            state.next_index += 1
            try:
                fut = asyncio.ensure_future(tasks[i]())
            except Exception as e:
                results[i] = e
                logger.warning("scheduled_task_failed", index=i, error=repr(e))
                continue
            state.in_flight += 1
            running[fut] = i

    try:
        admit()
        while running:
            done, _ = await asyncio.wait(running.keys(), return_when=asyncio.FIRST_COMPLETED)
            for fut in done:
                i = running.pop(fut)
                state.in_flight -= 1
                if fut.cancelled():
                    results[i] = asyncio.CancelledError()
                elif fut.exception() is not None:
                    results[i] = fut.exception()
                    logger.warning("scheduled_task_failed", index=i, error=repr(fut.exception()))
                else:
                    results[i] = fut.result()
            admit()
    finally:
        for fut in running:
            fut.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    return results  # type: ignore[return-value]
