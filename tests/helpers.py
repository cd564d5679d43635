import contextlib
from typing import AsyncIterator, Callable

import anyio

from wsmux.coordinator import Coordinator


@contextlib.asynccontextmanager
async def running(coordinator: Coordinator) -> AsyncIterator[Coordinator]:
    """Run `coordinator` in a task group for the duration of the block."""
    async with anyio.create_task_group() as tg:
        await tg.start(coordinator.run)
        try:
            yield coordinator
        finally:
            coordinator.stop()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.005)


async def settle(ticks: int = 5, interval: float = 0.01) -> None:
    """Give the loop a few ticks to act (used to assert that nothing happens)."""
    await anyio.sleep(ticks * interval)
