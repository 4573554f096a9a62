"""Fan-out of independent checks under a pending-count join barrier."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence

logger = logging.getLogger(__name__)

Check = Callable[[], Awaitable[Any]]


class JoinBarrier:
    """Counts completions; the arrival that brings the count to zero wins.

    ``arrive`` is only ever called from tasks on the owning event loop, so the
    count needs no lock.
    """

    def __init__(self, count: int):
        if count < 1:
            raise ValueError("JoinBarrier needs at least one participant")
        self.pending = count
        self.results: List[Any] = [None] * count

    def arrive(self, index: int, result: Any) -> bool:
        self.results[index] = result
        self.pending -= 1
        return self.pending == 0


async def fan_out(checks: Sequence[Check], combine: Callable[[List[Any]], Any]) -> Any:
    """Run ``checks`` concurrently and return ``combine(results)`` once.

    A check reports failure by raising; its exception becomes its result.
    Results keep the order of ``checks`` whatever order they finish in.
    """
    barrier = JoinBarrier(len(checks))
    done: asyncio.Future = asyncio.get_running_loop().create_future()

    async def _run(index: int, check: Check) -> None:
        try:
            result = await check()
        except Exception as exc:
            logger.debug("check %d failed: %s", index, exc)
            result = exc
        if barrier.arrive(index, result):
            try:
                done.set_result(combine(barrier.results))
            except Exception as exc:
                done.set_exception(exc)

    tasks = [asyncio.create_task(_run(i, check)) for i, check in enumerate(checks)]
    try:
        return await done
    finally:
        await asyncio.gather(*tasks, return_exceptions=True)
