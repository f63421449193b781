"""
Transaction utilities: nonce reservation and signed transaction submission.
"""

import asyncio
import heapq
from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger as log

from utils.conversion_utils import NATIVE_DECIMALS, Amount, to_base_units
from utils.gas_utils import GasManager
from utils.receipt_utils import PendingTransaction, ReceiptPoller
from utils.rpc_utils import NodeClient
from utils.token_utils import to_address


class NonceManager:
    """
    Hands out nonces for one account without ever reusing a broadcast one.

    The first reservation reads the pending transaction count from the node;
    later ones count up locally so concurrent submissions never share a nonce.
    A nonce whose transaction failed before broadcast is released and handed
    out again before the counter moves on.
    """

    def __init__(self, node: NodeClient, address: str):
        self.node = node
        self.address = address
        self._next: Optional[int] = None
        self._released: List[int] = []
        self._lock = asyncio.Lock()

    async def reserve(self) -> int:
        async with self._lock:
            if self._released:
                return heapq.heappop(self._released)
            if self._next is None:
                self._next = await self.node.get_transaction_count(self.address)
            nonce = self._next
            self._next += 1
            return nonce

    async def release(self, nonce: int) -> None:
        """Return a nonce that was reserved but never broadcast."""
        async with self._lock:
            if self._next is None or nonce >= self._next or nonce in self._released:
                return
            heapq.heappush(self._released, nonce)
            # Released nonces at the top of the range go back to the counter
            while self._next - 1 in self._released:
                self._next -= 1
                self._released.remove(self._next)
            heapq.heapify(self._released)
            log.debug(f"[TX] Released nonce {nonce}")


class TransactionSubmitter:
    """Builds, gas-estimates, signs and broadcasts transactions."""

    def __init__(
        self,
        node: NodeClient,
        account,
        chain_id: int,
        gas_manager: GasManager,
        nonces: NonceManager,
        poller: ReceiptPoller
    ):
        """
        Initialize transaction submitter.

        Args:
            node: Node client
            account: Account object for signing transactions
            chain_id: Chain id the signature is bound to
            gas_manager: GasManager instance
            nonces: NonceManager for the account
            poller: ReceiptPoller that tracks broadcast transactions
        """
        self.node = node
        self.account = account
        self.address = account.address
        self.chain_id = chain_id
        self.gas_manager = gas_manager
        self.nonces = nonces
        self.poller = poller

    async def _create_transaction(
        self,
        nonce: int,
        contract_address: str,
        data: str,
        value: Amount
    ) -> Dict[str, Any]:
        return {
            'from': self.address,
            'nonce': nonce,
            'gasPrice': await self.gas_manager.get_gas_price(),
            'gas': self.gas_manager.gas_limit,
            'to': to_address(contract_address),
            'value': to_base_units(value, NATIVE_DECIMALS),
            'data': data,
            'chainId': self.chain_id,
        }

    async def submit(
        self,
        contract_address: str,
        data: str,
        value: Amount = Decimal(0),
        description: str = ""
    ) -> PendingTransaction:
        """
        Submit a contract call without waiting for it to be mined.

        Args:
            contract_address: Target contract
            data: Encoded call data
            value: Native currency to send, in human-readable units
            description: Label used in logs, e.g. "ERC20.approve(spender, amount)"

        Returns:
            PendingTransaction tracked by the receipt poller
        """
        nonce = await self.nonces.reserve()
        try:
            draft = await self._create_transaction(nonce, contract_address, data, value)
            gas_limit = await self.node.estimate_gas(draft)
            log.info(f"[TX] \"{description}\" : Estimate gas limit = {gas_limit}")

            transaction = dict(draft, gas=gas_limit, gasPrice=await self.gas_manager.get_gas_price())
            signed = self.account.sign_transaction(transaction)
            tx_hash = await self.node.send_raw_transaction(signed.raw_transaction)
        except Exception:
            await self.nonces.release(nonce)
            raise
        log.info(f"[TX] \"{description}\" : Hash = {tx_hash}")
        return self.poller.track(tx_hash, description)

    async def send(
        self,
        contract_address: str,
        data: str,
        value: Amount = Decimal(0),
        description: str = ""
    ) -> Any:
        """Submit a transaction and wait for its receipt (or EmptyReceipt on expiry)."""
        pending = await self.submit(contract_address, data, value, description)
        return await pending.wait()
