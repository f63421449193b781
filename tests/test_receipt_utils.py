import asyncio
import gc

import pytest

from utils.errors import NodeError
from utils.receipt_utils import EmptyReceipt, ReceiptPoller, ReceiptState, is_successful

TX_HASH = "0x" + "ab" * 32
OTHER_HASH = "0x" + "cd" * 32


def make_poller(node, clock, poll_interval=5.0, expiry=20.0):
    return ReceiptPoller(node, poll_interval=poll_interval, expiry=expiry, clock=clock, sleep=clock.sleep)


@pytest.mark.asyncio
async def test_expiry_resolves_empty_receipt_once(node, clock):
    poller = make_poller(node, clock)

    pending = poller.track(TX_HASH, "ERC20.approve(spender, amount)")
    receipt = await pending.wait()

    assert receipt == EmptyReceipt(TX_HASH)
    assert receipt.get("transactionHash") == TX_HASH
    assert pending.state is ReceiptState.EXPIRED
    assert node.receipt_calls == 5
    assert clock.now == 20.0

    await asyncio.sleep(0)
    assert poller.pending_count == 0
    assert node.receipt_calls == 5


@pytest.mark.asyncio
async def test_receipt_confirms(node, clock):
    mined = {"transactionHash": TX_HASH, "status": 1}
    node.receipts[TX_HASH] = lambda: mined if clock.now >= 10 else None
    poller = make_poller(node, clock)

    pending = poller.track(TX_HASH)

    assert await pending.wait() is mined
    assert pending.state is ReceiptState.CONFIRMED
    assert node.receipt_calls == 3
    assert is_successful(pending.receipt)


@pytest.mark.asyncio
async def test_transient_errors_are_retried(node, clock):
    outcomes = [OSError("connection reset"), NodeError("eth_getTransactionReceipt", "busy"), {"status": 0}]
    node.receipts[TX_HASH] = lambda: outcomes.pop(0)
    poller = make_poller(node, clock)

    receipt = await poller.track(TX_HASH).wait()

    assert receipt == {"status": 0}
    assert not is_successful(receipt)
    assert clock.sleeps == [5.0, 5.0]


@pytest.mark.asyncio
async def test_unexpected_error_fails_the_wait(node, clock):
    node.receipts[TX_HASH] = RuntimeError("bad receipt")
    poller = make_poller(node, clock)

    with pytest.raises(RuntimeError):
        await poller.track(TX_HASH).wait()


@pytest.mark.asyncio
async def test_pending_transactions_are_independent(node, clock):
    node.receipts[OTHER_HASH] = {"transactionHash": OTHER_HASH, "status": 1}
    poller = make_poller(node, clock, expiry=10.0)

    first = poller.track(TX_HASH)
    second = poller.track(OTHER_HASH)
    assert poller.pending_count == 2
    assert first.session_id != second.session_id

    confirmed, expired = await asyncio.gather(second.wait(), first.wait())

    assert confirmed["status"] == 1
    assert isinstance(expired, EmptyReceipt)
    assert not is_successful(expired)


@pytest.mark.asyncio
async def test_close_stops_polling_and_cancels_waiters(node, clock):
    poller = make_poller(node, clock, expiry=3600.0)
    pending = poller.track(TX_HASH)
    await asyncio.sleep(0)
    unstarted = poller.track(OTHER_HASH)

    await poller.close()
    calls = node.receipt_calls
    await asyncio.sleep(0)

    assert poller.pending_count == 0
    assert node.receipt_calls == calls
    for cancelled in (pending, unstarted):
        with pytest.raises(asyncio.CancelledError):
            await cancelled.wait()


@pytest.mark.asyncio
async def test_unawaited_failure_is_not_reported_as_unretrieved(node, clock):
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _, context: reported.append(context))
    node.receipts[TX_HASH] = RuntimeError("bad receipt")
    poller = make_poller(node, clock)

    try:
        pending = poller.track(TX_HASH)
        while not pending.done():
            await asyncio.sleep(0)
        del pending
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(None)

    assert reported == []
