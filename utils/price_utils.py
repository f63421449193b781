"""
Price and quote utilities backed by the router's constant-product quote.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Sequence

from loguru import logger as log

from utils.contract_utils import ContractBindingCache, ContractKind
from utils.conversion_utils import Amount, apply_slippage, from_base_units, to_base_units, to_decimal
from utils.token_utils import TokenMetadataCache, same_token, to_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class SwapQuote:
    """A quote taken at one instant; not cached, reserves move every block."""

    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out: Decimal
    amount_out_min: Decimal


class QuoteEngine:
    """Computes AMM output amounts and slippage-bounded minimums."""

    def __init__(self, contracts: ContractBindingCache, tokens: TokenMetadataCache):
        self.contracts = contracts
        self.tokens = tokens

    async def quote(self, router: str, path: Sequence[str], amount_in: Amount) -> Decimal:
        """
        Get the output amount for trading amount_in along path.

        Args:
            router: Router contract address
            path: Token addresses, [token_in, token_out]
            amount_in: Input amount in human-readable units

        Returns:
            Output amount in token_out's human-readable units
        """
        if len(path) < 2:
            raise ValueError(f"path needs at least two tokens, got {list(path)}")
        amount = to_decimal(amount_in)
        token_in, token_out = path[0], path[-1]
        if len(path) == 2 and same_token(token_in, token_out):
            return amount

        path = [to_address(token) for token in path]
        decimals_in, decimals_out = await asyncio.gather(
            self.tokens.decimals_of(token_in),
            self.tokens.decimals_of(token_out),
        )
        binding = self.contracts.get(ContractKind.ROUTER, router)
        amounts = await binding.call("getAmountsOut", to_base_units(amount, decimals_in), path)
        return from_base_units(amounts[-1], decimals_out)

    async def quote_min(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount_in: Amount,
        slippage: Amount
    ) -> Decimal:
        """Quoted output reduced by the slippage tolerance (percent)."""
        amount_out = await self.quote(router, [token_in, token_out], amount_in)
        return apply_slippage(amount_out, slippage)

    async def quote_swap(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount_in: Amount,
        slippage: Amount
    ) -> SwapQuote:
        amount_out = await self.quote(router, [token_in, token_out], amount_in)
        return SwapQuote(
            token_in=to_address(token_in),
            token_out=to_address(token_out),
            amount_in=to_decimal(amount_in),
            amount_out=amount_out,
            amount_out_min=apply_slippage(amount_out, slippage),
        )

    async def price(self, token_a: str, token_b: str, router: str) -> Decimal:
        """Price of one token_a expressed in token_b."""
        return await self.quote(router, [token_a, token_b], Decimal(1))

    async def get_pair(self, factory: str, token_a: str, token_b: str) -> str:
        """
        Look up the liquidity pair of two tokens.

        Returns:
            Pair address, or the zero address when no pool exists
        """
        binding = self.contracts.get(ContractKind.FACTORY, factory)
        pair = await binding.call("getPair", to_address(token_a), to_address(token_b))
        if same_token(pair, ZERO_ADDRESS):
            log.warning(f"[PRICE] No pair for {token_a}/{token_b} on factory {factory}")
        return to_address(pair)

    async def get_reserves(self, pair: str) -> Dict[str, Decimal]:
        """
        Read a pair's reserves.

        Returns:
            Mapping of token address to reserve in that token's units
        """
        binding = self.contracts.get(ContractKind.PAIR, pair)
        token0, token1, reserves = await asyncio.gather(
            binding.call("token0"),
            binding.call("token1"),
            binding.call("getReserves"),
        )
        decimals0, decimals1 = await asyncio.gather(
            self.tokens.decimals_of(token0),
            self.tokens.decimals_of(token1),
        )
        return {
            to_address(token0): from_base_units(reserves[0], decimals0),
            to_address(token1): from_base_units(reserves[1], decimals1),
        }
