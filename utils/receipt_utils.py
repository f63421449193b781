"""
Receipt polling: every broadcast transaction gets its own polling task that
resolves to the mined receipt, or to an EmptyReceipt once the expiry window
has passed.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger as log

from utils.rpc_utils import TRANSIENT_ERRORS, NodeClient

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_EXPIRY = 20 * 60.0


class ReceiptState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class EmptyReceipt:
    """
    Stand-in receipt for a transaction that was not mined within the expiry
    window. It may still be mined later; look it up by hash.
    """

    transaction_hash: str
    status: Optional[int] = None

    def get(self, key: str, default: Any = None) -> Any:
        if key == "transactionHash":
            return self.transaction_hash
        return default


def is_successful(receipt: Any) -> bool:
    """True for a mined receipt whose execution did not revert."""
    if receipt is None or isinstance(receipt, EmptyReceipt):
        return False
    return receipt.get("status") == 1


def _mark_retrieved(future: asyncio.Future) -> None:
    # A failure nobody waits for is already logged by the poller
    if not future.cancelled():
        future.exception()


@dataclass
class PendingTransaction:
    tx_hash: str
    submitted_at: float
    poll_interval: float
    expires_at: float
    description: str = ""
    session_id: str = field(default_factory=lambda: f"scheduler-{uuid.uuid4().hex[:5]}")
    state: ReceiptState = ReceiptState.PENDING
    receipt: Any = None

    def __post_init__(self):
        self._future = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(_mark_retrieved)

    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> Any:
        """Wait for the transaction to be confirmed or expire."""
        return await asyncio.shield(self._future)

    def _resolve(self, state: ReceiptState, receipt: Any) -> bool:
        if self._future.done():
            return False
        self.state = state
        self.receipt = receipt
        self._future.set_result(receipt)
        return True

    def _fail(self, error: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    def _cancel(self) -> None:
        self._future.cancel()


class ReceiptPoller:
    """Tracks pending transactions until each is confirmed or expires."""

    def __init__(
        self,
        node: NodeClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        expiry: float = DEFAULT_EXPIRY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize receipt poller.

        Args:
            node: Node client used for eth_getTransactionReceipt
            poll_interval: Seconds between receipt queries
            expiry: Seconds after submission before giving up
            clock: Monotonic clock in seconds
            sleep: Async sleep used between ticks
        """
        self.node = node
        self.poll_interval = poll_interval
        self.expiry = expiry
        self._clock = clock
        self._sleep = sleep
        self._tasks: Dict[asyncio.Task, PendingTransaction] = {}

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def track(self, tx_hash: str, description: str = "") -> PendingTransaction:
        """
        Start polling for a broadcast transaction.

        Args:
            tx_hash: Transaction hash returned by the node
            description: Human-readable label for logs

        Returns:
            PendingTransaction whose wait() resolves with the receipt
        """
        now = self._clock()
        pending = PendingTransaction(
            tx_hash=tx_hash,
            submitted_at=now,
            poll_interval=self.poll_interval,
            expires_at=now + self.expiry,
            description=description,
        )
        task = asyncio.get_running_loop().create_task(self._run(pending), name=pending.session_id)
        self._tasks[task] = pending
        task.add_done_callback(lambda done: self._tasks.pop(done, None))
        return pending

    async def _fetch(self, pending: PendingTransaction) -> Optional[Any]:
        try:
            return await self.node.get_transaction_receipt(pending.tx_hash)
        except TRANSIENT_ERRORS as e:
            log.warning(f"[RECEIPT] {pending.session_id} : get receipt error {e!r}, retrying")
            return None

    async def _run(self, pending: PendingTransaction) -> None:
        try:
            while True:
                receipt = await self._fetch(pending)
                elapsed = self._clock() - pending.submitted_at
                if receipt is not None:
                    pending._resolve(ReceiptState.CONFIRMED, receipt)
                    log.info(
                        f"[RECEIPT] {pending.session_id} : SUCCESS Tx = {pending.tx_hash} "
                        f"in {elapsed:.1f} seconds, status = {receipt.get('status')}"
                    )
                    return
                if self._clock() >= pending.expires_at:
                    pending._resolve(ReceiptState.EXPIRED, EmptyReceipt(pending.tx_hash))
                    log.warning(f"[RECEIPT] {pending.session_id} : Expired Tx = {pending.tx_hash}")
                    return
                await self._sleep(pending.poll_interval)
        except Exception as e:
            log.exception(f"[RECEIPT] {pending.session_id} : polling failed for Tx = {pending.tx_hash}")
            pending._fail(e)

    async def close(self) -> None:
        """Stop polling every pending transaction; their wait() calls are cancelled."""
        tasks = list(self._tasks.items())
        for task, pending in tasks:
            task.cancel()
            pending._cancel()
        await asyncio.gather(*[task for task, _ in tasks], return_exceptions=True)
        if tasks:
            log.info(f"[RECEIPT] Stopped polling {len(tasks)} pending transaction(s)")
