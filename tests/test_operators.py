# tests/test_operators.py
import asyncio
import logging
import operator

import pytest
from queueflow import mark_async
from queueflow.flow_queue import OPEN, CLOSED
from queueflow.queue_manager import QueueManager


@pytest.fixture
def manager():
    return QueueManager()


async def collect(queue):
    result = asyncio.get_running_loop().create_future()
    queue.to_list(result.set_result)
    return await asyncio.wait_for(result, 1)


def is_number(value):
    return isinstance(value, (int, float))


@pytest.mark.asyncio
async def test_map_mixes_sync_and_async_functions(manager):
    async def increment(value):
        await asyncio.sleep(0)
        return value + 1

    def triple(value, done):
        asyncio.get_running_loop().call_later(0.001, done, value * 3)

    out = manager([1, 2, 3]).map(lambda value: value * 2).map(increment).map(mark_async(triple))
    assert await collect(out) == [9, 15, 21]


@pytest.mark.asyncio
async def test_callback_style_failure_kills_queue(manager):
    def refuse(value, done):
        done(error=LookupError("missing"))

    out = manager([1]).map(mark_async(refuse))
    with pytest.raises(LookupError):
        await asyncio.wait_for(out.join(), 1)


@pytest.mark.asyncio
async def test_filter(manager):
    out = manager([1, 2, "skip a few", 99, 100]).filter(is_number)
    assert await collect(out) == [1, 2, 99, 100]


@pytest.mark.asyncio
async def test_each_forwards_original_values(manager):
    seen = []

    def record(value):
        seen.append(value)
        return "ignored"

    out = manager(["a", "b"]).each(record)
    assert await collect(out) == ["a", "b"]
    assert seen == ["a", "b"]


@pytest.mark.asyncio
async def test_reduce_delivers_only_after_close(manager):
    delivered = []
    source = manager("numbers")
    source.reduce(operator.add, delivered.append, 0)
    source.push(1, 2, 3)
    await asyncio.sleep(0.01)
    assert delivered == []
    source.close()
    await asyncio.wait_for(source.join(), 1)
    assert delivered == [6]


@pytest.mark.asyncio
async def test_reduce_into_named_queue(manager):
    manager([1, 2, 3]).reduce(operator.add, "total", 0)
    assert await collect(manager("total").close_on_empty()) == [6]


@pytest.mark.asyncio
async def test_reduce_with_async_sink(manager):
    received = asyncio.get_running_loop().create_future()

    async def sink(value):
        received.set_result(value)

    manager([2, 3]).reduce(operator.mul, sink, 1)
    assert await asyncio.wait_for(received, 1) == 6


@pytest.mark.asyncio
async def test_every_short_circuits(manager):
    calls = []
    result = asyncio.get_running_loop().create_future()

    def is_even(value):
        calls.append(value)
        return value % 2 == 0

    manager([2, 4, 5, 6, 8]).every(is_even, result.set_result)
    assert await asyncio.wait_for(result, 1) is False
    assert calls == [2, 4, 5]


@pytest.mark.asyncio
async def test_every_true_when_all_match(manager):
    result = asyncio.get_running_loop().create_future()
    manager([2, 4]).every(lambda value: value % 2 == 0, result.set_result)
    assert await asyncio.wait_for(result, 1) is True


@pytest.mark.asyncio
async def test_some_short_circuits(manager):
    calls = []
    result = asyncio.get_running_loop().create_future()

    def is_even(value):
        calls.append(value)
        return value % 2 == 0

    manager([1, 3, 4, 5]).some(is_even, result.set_result)
    assert await asyncio.wait_for(result, 1) is True
    assert calls == [1, 3, 4]


@pytest.mark.asyncio
async def test_some_false_on_empty_input(manager):
    result = asyncio.get_running_loop().create_future()
    manager([]).some(bool, result.set_result)
    assert await asyncio.wait_for(result, 1) is False


@pytest.mark.asyncio
async def test_to_list_on_empty_input(manager):
    assert await collect(manager([])) == []


@pytest.mark.asyncio
async def test_flatten_unbounded(manager):
    out = manager([[1, [2, [3]]], 4, "ab", []]).flatten()
    assert await collect(out) == [1, 2, 3, 4, "ab"]


@pytest.mark.asyncio
async def test_flatten_depth(manager):
    assert await collect(manager([[1, [2, [3]]], 4]).flatten(1)) == [1, [2, [3]], 4]
    assert await collect(manager([[1, [2]], (3,)]).flatten(0)) == [[1, [2]], (3,)]


@pytest.mark.asyncio
async def test_flatten_rejects_negative_depth(manager):
    with pytest.raises(ValueError):
        manager("nested").flatten(-1)


@pytest.mark.asyncio
async def test_branch(manager):
    def route(value):
        if is_number(value):
            return "big" if value > 50 else "small"
        return "invalid"

    manager([1, 2, "skip a few", 99, 100]).branch(route)
    big, small, invalid = await asyncio.gather(
        collect(manager("big")), collect(manager("small")), collect(manager("invalid"))
    )
    assert big == [99, 100]
    assert small == [1, 2]
    assert invalid == ["skip a few"]


@pytest.mark.asyncio
async def test_branch_to_several_queues(manager):
    manager(["x"]).branch(lambda value: ["left", "right"])
    left, right = await asyncio.gather(collect(manager("left")), collect(manager("right")))
    assert left == ["x"]
    assert right == ["x"]


@pytest.mark.asyncio
async def test_branch_rejects_non_name(manager):
    source = manager([1])
    source.branch(lambda value: 42)
    with pytest.raises(TypeError):
        await asyncio.wait_for(source.join(), 1)


@pytest.mark.asyncio
async def test_chain_does_not_close_destination(manager):
    manager([1, 2]).chain("merged")
    manager([3]).chain(["merged", "copy"])
    await asyncio.sleep(0.01)
    merged = manager("merged")
    assert merged.state == OPEN
    assert sorted(merged.buffer) == [1, 2, 3]
    assert list(manager("copy").buffer) == [3]
    merged.close()
    assert sorted(await collect(merged)) == [1, 2, 3]


@pytest.mark.asyncio
async def test_chain_rejects_non_string_names(manager):
    with pytest.raises(TypeError):
        manager("source").chain([1])


def add(a, b, callback):
    callback(None, a + b)


def tenfold_except_two(value, callback):
    if value == 2:
        callback(ValueError("two"), None)
    else:
        callback(None, value * 10)


@pytest.mark.asyncio
async def test_exec_spreads_sequences(manager):
    out = manager([[1, 2], (3, 4)]).exec(add)
    assert await collect(out) == [3, 7]


@pytest.mark.asyncio
async def test_exec_ignores_errors_by_default(manager, caplog):
    with caplog.at_level(logging.WARNING):
        out = manager([1, 2, 3]).exec(tenfold_except_two)
        assert await collect(out) == [10, 30]
    assert any("two" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_exec_closes_on_error(manager):
    source = manager("jobs")
    out = source.exec(tenfold_except_two, True)
    source.push(1, 2, 3, 4)
    assert await collect(out) == [10]
    assert source.state == CLOSED


@pytest.mark.asyncio
async def test_exec_error_callback(manager):
    failures = []
    source = manager("jobs")
    out = source.exec(tenfold_except_two, lambda error, result, args: failures.append((str(error), result, args)))
    source.push(1, 2, 3)
    assert await collect(out) == [10]
    assert failures == [("two", None, [2])]


@pytest.mark.asyncio
async def test_exec_routes_errors_to_named_queue(manager):
    out = manager([1, 2, 3, 4]).exec(tenfold_except_two, "errors")
    assert await collect(out) == [10, 30, 40]
    errors = list(manager("errors").buffer)
    assert len(errors) == 1
    error, result, args = errors[0]
    assert isinstance(error, ValueError)
    assert result is None
    assert args == [2]


@pytest.mark.asyncio
async def test_exec_treats_raised_exception_as_error(manager):
    def explode(value, callback):
        raise KeyError(value)

    out = manager([1]).exec(explode, "errors")
    assert await collect(out) == []
    assert manager("errors").qsize() == 1


@pytest.mark.asyncio
async def test_operators_reject_invalid_arguments(manager):
    with pytest.raises(TypeError):
        manager("a").map(5)
    with pytest.raises(TypeError):
        manager("b").reduce(operator.add, 5)
    with pytest.raises(TypeError):
        manager("c").exec(add, 5)


@pytest.mark.asyncio
async def test_flatten_rejects_bool_depth(manager):
    with pytest.raises(ValueError):
        manager("flags").flatten(True)
