"""
Gas price management utilities.
"""

from decimal import Decimal
from typing import Optional

from loguru import logger as log

from utils.conversion_utils import GWEI_DECIMALS, from_base_units, to_base_units
from utils.rpc_utils import NodeClient

# Gas limit of a draft transaction before the node's estimate replaces it
DEFAULT_GAS_LIMIT = 9_000_000


class GasManager:
    """Manages gas price calculations and limits."""

    def __init__(
        self,
        node: NodeClient,
        gas_price_gwei: Optional[Decimal] = None,
        max_gas_price_gwei: Optional[Decimal] = None,
        gas_limit: int = DEFAULT_GAS_LIMIT
    ):
        """
        Initialize gas manager.

        Args:
            node: Node client
            gas_price_gwei: Fixed gas price in Gwei (None to use network price)
            max_gas_price_gwei: Maximum gas price in Gwei (None for no cap)
            gas_limit: Gas limit used for draft transactions
        """
        self.node = node
        self.gas_price_gwei = gas_price_gwei
        self.max_gas_price_gwei = max_gas_price_gwei
        self.gas_limit = gas_limit

    async def get_gas_price(self) -> int:
        """
        Get current gas price in Wei.

        Returns:
            Gas price in Wei
        """
        # Priority 1: Use fixed gas price if set
        if self.gas_price_gwei is not None:
            fixed_gas_wei = to_base_units(self.gas_price_gwei, GWEI_DECIMALS)
            log.debug(f"[GAS] Using FIXED gas price: {self.gas_price_gwei} Gwei")
            return fixed_gas_wei

        # Priority 2: Fetch from network via RPC, capped if configured
        gas_price = await self.node.gas_price()
        if self.max_gas_price_gwei is not None:
            max_gas_price = to_base_units(self.max_gas_price_gwei, GWEI_DECIMALS)
            if gas_price > max_gas_price:
                log.warning(
                    f"[GAS] Using RPC gas price (capped): {from_base_units(gas_price, GWEI_DECIMALS)} Gwei "
                    f"-> {self.max_gas_price_gwei} Gwei (exceeded max)"
                )
                return max_gas_price
        log.debug(f"[GAS] Using gas price from RPC: {from_base_units(gas_price, GWEI_DECIMALS)} Gwei")
        return gas_price

    async def get_gas_price_gwei(self) -> Decimal:
        return from_base_units(await self.get_gas_price(), GWEI_DECIMALS)
