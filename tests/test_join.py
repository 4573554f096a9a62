import asyncio

import pytest

from bas.engine.join import JoinBarrier, fan_out


def test_barrier_reports_last_arrival_only():
    barrier = JoinBarrier(3)
    assert barrier.arrive(2, "c") is False
    assert barrier.arrive(0, "a") is False
    assert barrier.arrive(1, "b") is True
    assert barrier.results == ["a", "b", "c"]


def test_barrier_needs_participants():
    with pytest.raises(ValueError):
        JoinBarrier(0)


@pytest.mark.asyncio
@pytest.mark.parametrize("order", [(0, 1), (1, 0)])
async def test_fan_out_combines_exactly_once(order):
    gates = [asyncio.Event(), asyncio.Event()]
    combined = []

    def check(i):
        async def _check():
            await gates[i].wait()
            return f"result-{i}"

        return _check

    def combine(results):
        combined.append(list(results))
        return "joined"

    task = asyncio.create_task(fan_out([check(0), check(1)], combine))
    await asyncio.sleep(0)
    for i in order:
        gates[i].set()
        await asyncio.sleep(0)

    assert await task == "joined"
    assert combined == [["result-0", "result-1"]]


@pytest.mark.asyncio
async def test_fan_out_turns_exceptions_into_results():
    async def ok():
        return 1

    async def bad():
        raise KeyError("missing")

    results = await fan_out([ok, bad], list)
    assert results[0] == 1
    assert isinstance(results[1], KeyError)


@pytest.mark.asyncio
async def test_fan_out_propagates_combine_failure():
    async def ok():
        return 1

    def combine(results):
        raise RuntimeError("cannot combine")

    with pytest.raises(RuntimeError):
        await fan_out([ok, ok], combine)
