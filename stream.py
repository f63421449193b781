import asyncio
import inspect
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger as log
from web3 import Web3
from web3.exceptions import InvalidEventABI, LogTopicError, MismatchedABI

from utils.contract_utils import ContractBinding, ContractBindingCache, ContractKind
from utils.rpc_utils import TRANSIENT_ERRORS, NodeClient
from utils.token_utils import same_token, to_address

TRANSFER_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))
BLOCKS_KEY = "blocks"

# Widest block range asked of eth_getLogs in one request
MAX_LOG_RANGE = 1000


class EventStreamManager:
    """New-block and token-transfer subscriptions for one wallet."""

    def __init__(
        self,
        node: NodeClient,
        contracts: ContractBindingCache,
        address: str,
        poll_interval: float = 1.0,
        max_log_range: int = MAX_LOG_RANGE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize event stream manager.

        Args:
            node: Node client polled for blocks and logs
            contracts: Contract binding cache (token bindings decode Transfer logs)
            address: Wallet whose transfers are reported
            poll_interval: Seconds between node polls
            max_log_range: Widest block range per eth_getLogs request
            clock: Monotonic clock in seconds
            sleep: Async sleep used between polls
        """
        self.node = node
        self.contracts = contracts
        self.address = address
        self.poll_interval = poll_interval
        self.max_log_range = max_log_range
        self._clock = clock
        self._sleep = sleep
        self._subscriptions: Dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    @property
    def active_subscriptions(self):
        return sorted(key for key, task in self._subscriptions.items() if not task.done())

    def _replace(self, key: str, coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine, name=f"stream-{key}")
        with self._lock:
            previous = self._subscriptions.get(key)
            if previous is not None:
                previous.cancel()
                log.debug(f"[STREAM] Replaced subscription {key}")
            self._subscriptions[key] = task
        return task

    def watch_blocks(self, callback: Callable[[Any], Any], throttle_millis: int = 300) -> asyncio.Task:
        """
        Call callback with the newest block, at most once per throttle window.

        Replaces any block watch started earlier.

        Args:
            callback: Function (or coroutine function) receiving the block
            throttle_millis: Minimum milliseconds between callbacks
        """
        return self._replace(BLOCKS_KEY, self._stream_blocks(callback, throttle_millis / 1000.0))

    def watch_transfers(self, token: str, callback: Callable[[Any], Any]) -> asyncio.Task:
        """
        Call callback for each Transfer of token sent or received by the wallet.

        Replaces any transfer watch started earlier for the same token.

        Args:
            token: Token contract address
            callback: Function (or coroutine function) receiving the decoded event
        """
        token = to_address(token)
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        return self._replace(token, self._stream_transfers(binding, callback))

    async def _dispatch(self, callback: Callable[[Any], Any], item: Any) -> None:
        try:
            result = callback(item)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("[STREAM] Subscriber callback failed")

    async def _stream_blocks(self, callback: Callable[[Any], Any], throttle: float) -> None:
        last_number: Optional[int] = None
        latest = None
        last_emit: Optional[float] = None
        while True:
            try:
                number = await self.node.block_number()
                if last_number is None or number > last_number:
                    latest = await self.node.get_block(number)
                    last_number = number
            except TRANSIENT_ERRORS as e:
                log.debug(f"[STREAM] Block poll error suppressed: {e!r}")

            now = self._clock()
            if latest is not None and (last_emit is None or now - last_emit >= throttle):
                block, latest, last_emit = latest, None, now
                await self._dispatch(callback, block)
            await self._sleep(self.poll_interval)

    def parse_transfer(self, binding: ContractBinding, log_entry: Any) -> Optional[Any]:
        """
        Decode a raw log into a Transfer event involving the wallet.

        Returns:
            Decoded event or None if the log is malformed or unrelated
        """
        try:
            event = binding.decode_event("Transfer", log_entry)
        except (MismatchedABI, LogTopicError, InvalidEventABI, ValueError, KeyError) as e:
            log.debug(f"[STREAM] Malformed Transfer log suppressed: {e!r}")
            return None
        args = event["args"]
        if same_token(args["from"], self.address) or same_token(args["to"], self.address):
            return event
        return None

    async def _stream_transfers(self, binding: ContractBinding, callback: Callable[[Any], Any]) -> None:
        from_block: Optional[int] = None
        while True:
            try:
                head = await self.node.block_number()
                if from_block is None:
                    from_block = head + 1
                while head >= from_block:
                    to_block = min(head, from_block + self.max_log_range - 1)
                    logs = await self.node.get_logs({
                        'address': binding.address,
                        'fromBlock': from_block,
                        'toBlock': to_block,
                        'topics': [TRANSFER_TOPIC],
                    })
                    from_block = to_block + 1
                    for entry in logs:
                        event = self.parse_transfer(binding, entry)
                        if event is not None:
                            await self._dispatch(callback, event)
            except TRANSIENT_ERRORS as e:
                log.debug(f"[STREAM] Transfer poll error suppressed: {e!r}")
            await self._sleep(self.poll_interval)

    async def close(self) -> None:
        """Cancel every active subscription."""
        with self._lock:
            tasks = list(self._subscriptions.values())
            self._subscriptions.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
