"""
Token utilities for address normalization and cached token metadata.
"""

import asyncio
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Tuple

from eth_utils import to_checksum_address
from loguru import logger as log

from utils.contract_utils import ContractBindingCache, ContractKind
from utils.conversion_utils import from_base_units


def to_address(address: str) -> str:
    """
    Normalize an address string.

    Args:
        address: Hex address in any case

    Returns:
        Checksummed address
    """
    if not address or not isinstance(address, str):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def same_token(token_a: str, token_b: str) -> bool:
    """Compare two token addresses ignoring case."""
    return token_a.lower() == token_b.lower()


def short_address(address: str) -> str:
    """Shorten an address for display, e.g. 0x1234...abcd."""
    return f"{address[:6]}...{address[-4:]}"


@dataclass(frozen=True)
class TokenMetadata:
    address: str
    decimals: int
    name: str
    symbol: str


class TokenMetadataCache:
    """
    Per-token decimals/name/symbol, read from the token contract once.

    These attributes are immutable for standard tokens, so a cached entry is
    never replaced. Concurrent first reads of the same attribute may both hit
    the node; the first stored value is kept and returned to both callers.
    """

    def __init__(self, contracts: ContractBindingCache):
        self.contracts = contracts
        self._values: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    async def _get(self, token: str, attribute: str) -> Any:
        key = (to_address(token), attribute)
        if key in self._values:
            return self._values[key]
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, key[0])
        value = await binding.call(attribute)
        with self._lock:
            stored = self._values.setdefault(key, value)
        if stored is value:
            log.debug(f"[CACHE] {key[0]}.{attribute} = {value}")
        return stored

    async def decimals_of(self, token: str) -> int:
        return int(await self._get(token, "decimals"))

    async def symbol_of(self, token: str) -> str:
        return await self._get(token, "symbol")

    async def name_of(self, token: str) -> str:
        return await self._get(token, "name")

    async def metadata(self, token: str) -> TokenMetadata:
        """Fetch (or reuse) all cached attributes of a token."""
        decimals, name, symbol = await asyncio.gather(
            self.decimals_of(token),
            self.name_of(token),
            self.symbol_of(token),
        )
        return TokenMetadata(address=to_address(token), decimals=decimals, name=name, symbol=symbol)

    async def total_supply_of(self, token: str) -> Decimal:
        """Read total supply (not cached, supply changes with mint/burn)."""
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        supply, decimals = await asyncio.gather(binding.call("totalSupply"), self.decimals_of(token))
        return from_base_units(supply, decimals)

    def cached(self, token: str, attribute: str) -> bool:
        return (to_address(token), attribute) in self._values
