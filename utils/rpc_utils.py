"""
Node access helpers: a thin async wrapper around web3 with normalized errors.
"""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import aiohttp
from loguru import logger as log
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError

from utils.errors import NodeError

T = TypeVar("T")

# Failures that mean "the node could not be reached right now" rather than
# "the node rejected the request"
IO_ERRORS = (OSError, asyncio.TimeoutError, aiohttp.ClientError)

# Failures a polling loop may log and retry on its next tick
TRANSIENT_ERRORS = (NodeError,) + IO_ERRORS


async def node_call(method: str, awaitable: Awaitable[T]) -> T:
    """
    Await a node request, converting JSON-RPC error responses into NodeError.

    Args:
        method: Name of the RPC method or contract function (for logs/errors)
        awaitable: Pending web3 request

    Returns:
        The request result
    """
    try:
        return await awaitable
    except (Web3RPCError, ContractLogicError) as e:
        response = getattr(e, "rpc_response", None)
        log.error(f"[RPC] {method} error {e}")
        raise NodeError(method, str(e), response) from e


class NodeClient:
    """Async JSON-RPC operations used by the trading layer."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    async def is_connected(self) -> bool:
        return await self.w3.is_connected()

    async def chain_id(self) -> int:
        return int(await node_call("eth_chainId", self.w3.eth.chain_id))

    async def block_number(self) -> int:
        return int(await node_call("eth_blockNumber", self.w3.eth.block_number))

    async def gas_price(self) -> int:
        return int(await node_call("eth_gasPrice", self.w3.eth.gas_price))

    async def get_balance(self, address: str) -> int:
        return int(await node_call("eth_getBalance", self.w3.eth.get_balance(address, "latest")))

    async def get_transaction_count(self, address: str) -> int:
        return int(await node_call(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(address, "pending")
        ))

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        return int(await node_call("eth_estimateGas", self.w3.eth.estimate_gas(transaction)))

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        tx_hash = await node_call(
            "eth_sendRawTransaction",
            self.w3.eth.send_raw_transaction(raw_transaction)
        )
        return self.w3.to_hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Any]:
        """
        Fetch a transaction receipt.

        Returns:
            The receipt, or None while the transaction is not mined yet
        """
        try:
            return await node_call(
                "eth_getTransactionReceipt",
                self.w3.eth.get_transaction_receipt(tx_hash)
            )
        except TransactionNotFound:
            return None

    async def get_block(self, block_identifier) -> Any:
        return await node_call("eth_getBlockByNumber", self.w3.eth.get_block(block_identifier))

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[Any]:
        return await node_call("eth_getLogs", self.w3.eth.get_logs(filter_params))
