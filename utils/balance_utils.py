"""
Balance and allowance reads for the trading wallet.
"""

import asyncio
from decimal import Decimal

from utils.contract_utils import ContractBindingCache, ContractKind
from utils.conversion_utils import NATIVE_DECIMALS, from_base_units
from utils.rpc_utils import NodeClient
from utils.token_utils import TokenMetadataCache, to_address


class BalanceReader:
    """Reads native and token balances, always fresh from the node."""

    def __init__(
        self,
        node: NodeClient,
        contracts: ContractBindingCache,
        tokens: TokenMetadataCache,
        address: str
    ):
        """
        Initialize balance reader.

        Args:
            node: Node client
            contracts: Contract binding cache
            tokens: Token metadata cache (for per-token decimals)
            address: Wallet address whose balances are read
        """
        self.node = node
        self.contracts = contracts
        self.tokens = tokens
        self.address = address

    async def get_gas_balance(self) -> Decimal:
        """Native currency balance in human-readable units."""
        balance_wei = await self.node.get_balance(self.address)
        return from_base_units(balance_wei, NATIVE_DECIMALS)

    async def get_token_balance(self, token: str) -> Decimal:
        """
        Get the token balance of the wallet.

        Args:
            token: Token contract address

        Returns:
            Balance adjusted for the token's decimals
        """
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        balance, decimals = await asyncio.gather(
            binding.call("balanceOf", self.address),
            self.tokens.decimals_of(token),
        )
        return from_base_units(balance, decimals)

    async def get_allowance(self, token: str, spender: str) -> Decimal:
        """
        Get the amount of token the spender may move for the wallet.

        Never cached: approvals change with every approve/transferFrom.

        Args:
            token: Token contract address
            spender: Spender (router) address

        Returns:
            Allowance adjusted for the token's decimals
        """
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        allowance, decimals = await asyncio.gather(
            binding.call("allowance", self.address, to_address(spender)),
            self.tokens.decimals_of(token),
        )
        return from_base_units(allowance, decimals)
