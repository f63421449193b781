import asyncio

import pytest

from conftest import TOKEN_A, TOKEN_B, WALLET, FakeClock
from stream import BLOCKS_KEY, TRANSFER_TOPIC, EventStreamManager
from utils.errors import NodeError

OUTSIDER = "0x000000000000000000000000000000000000dEaD"


class StreamNode:
    def __init__(self, head):
        self.head = head
        self.logs = []
        self.log_queries = []

    async def block_number(self):
        value = self.head()
        if isinstance(value, Exception):
            raise value
        return value

    async def get_block(self, number):
        return {"number": number}

    async def get_logs(self, filter_params):
        self.log_queries.append(filter_params)
        return self.logs


class StoppingClock(FakeClock):
    """Parks the polling loop forever after a fixed number of sleeps."""

    def __init__(self, stop_after):
        super().__init__()
        self.stop_after = stop_after
        self.stopped = asyncio.Event()

    async def sleep(self, seconds):
        await super().sleep(seconds)
        if len(self.sleeps) >= self.stop_after:
            self.stopped.set()
            await asyncio.get_running_loop().create_future()


def make_streams(node, contracts, clock, poll_interval):
    return EventStreamManager(
        node, contracts, WALLET, poll_interval=poll_interval, clock=clock, sleep=clock.sleep
    )


@pytest.mark.asyncio
async def test_blocks_are_throttled_to_the_newest(contracts):
    clock = StoppingClock(stop_after=5)
    node = StreamNode(lambda: 100 + int(clock.now / 0.25))
    streams = make_streams(node, contracts, clock, poll_interval=0.25)
    seen = []

    streams.watch_blocks(lambda block: seen.append(block["number"]), throttle_millis=500)
    await clock.stopped.wait()

    assert seen == [100, 102, 104]
    await streams.close()
    assert streams.active_subscriptions == []


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_the_stream(contracts):
    clock = StoppingClock(stop_after=3)
    node = StreamNode(lambda: 100 + int(clock.now))
    streams = make_streams(node, contracts, clock, poll_interval=1.0)
    seen = []

    def callback(block):
        seen.append(block["number"])
        raise RuntimeError("subscriber bug")

    streams.watch_blocks(callback, throttle_millis=0)
    await clock.stopped.wait()

    assert seen == [100, 101, 102]
    await streams.close()


@pytest.mark.asyncio
async def test_new_block_watch_replaces_previous(contracts, clock):
    node = StreamNode(lambda: 1)
    streams = make_streams(node, contracts, clock, poll_interval=1.0)

    first = streams.watch_blocks(lambda block: None)
    second = streams.watch_blocks(lambda block: None)

    with pytest.raises(asyncio.CancelledError):
        await first
    assert not second.done()
    assert streams.active_subscriptions == [BLOCKS_KEY]
    await streams.close()


@pytest.mark.asyncio
async def test_transfer_watches_are_keyed_per_token(contracts, clock):
    node = StreamNode(lambda: 1)
    streams = make_streams(node, contracts, clock, poll_interval=1.0)

    first_a = streams.watch_transfers(TOKEN_A, lambda event: None)
    streams.watch_transfers(TOKEN_B, lambda event: None)
    streams.watch_transfers(TOKEN_A.lower(), lambda event: None)

    with pytest.raises(asyncio.CancelledError):
        await first_a
    assert streams.active_subscriptions == sorted([TOKEN_A, TOKEN_B])
    await streams.close()


@pytest.mark.asyncio
async def test_transfers_filtered_to_wallet(contracts):
    clock = StoppingClock(stop_after=3)
    heads = iter([OSError("connection refused"), 10, 12])
    node = StreamNode(lambda: next(heads))
    received = {"args": {"from": OUTSIDER, "to": WALLET.lower(), "value": 5}}
    node.logs = [
        received,
        {"args": {"from": OUTSIDER, "to": OUTSIDER, "value": 1}},
        {"topics": [TRANSFER_TOPIC]},
    ]
    streams = make_streams(node, contracts, clock, poll_interval=1.0)
    events = []

    async def callback(event):
        events.append(event)

    streams.watch_transfers(TOKEN_A, callback)
    await clock.stopped.wait()

    assert events == [received]
    assert node.log_queries == [{
        "address": TOKEN_A,
        "fromBlock": 11,
        "toBlock": 12,
        "topics": [TRANSFER_TOPIC],
    }]
    await streams.close()


@pytest.mark.asyncio
async def test_log_errors_are_suppressed(contracts):
    clock = StoppingClock(stop_after=3)
    heads = iter([5, 6, 7])
    node = StreamNode(lambda: next(heads))
    streams = make_streams(node, contracts, clock, poll_interval=1.0)

    async def failing_logs(filter_params):
        node.log_queries.append(filter_params)
        raise NodeError("eth_getLogs", "query timeout")

    node.get_logs = failing_logs
    task = streams.watch_transfers(TOKEN_A, lambda event: None)
    await clock.stopped.wait()

    assert [query["fromBlock"] for query in node.log_queries] == [6, 6]
    assert not task.done()
    await streams.close()


@pytest.mark.asyncio
async def test_log_queries_are_split_into_bounded_ranges(contracts):
    clock = StoppingClock(stop_after=2)
    heads = iter([10, 25])
    node = StreamNode(lambda: next(heads))
    streams = EventStreamManager(
        node, contracts, WALLET, poll_interval=1.0, max_log_range=5, clock=clock, sleep=clock.sleep
    )

    async def bounded_logs(filter_params):
        node.log_queries.append(filter_params)
        if filter_params["toBlock"] - filter_params["fromBlock"] + 1 > 5:
            raise NodeError("eth_getLogs", "block range is too wide")
        return [{"args": {"from": OUTSIDER, "to": WALLET, "value": filter_params["fromBlock"]}}]

    node.get_logs = bounded_logs
    events = []
    streams.watch_transfers(TOKEN_A, events.append)
    await clock.stopped.wait()

    assert [(query["fromBlock"], query["toBlock"]) for query in node.log_queries] == [(11, 15), (16, 20), (21, 25)]
    assert [event["args"]["value"] for event in events] == [11, 16, 21]
    await streams.close()
