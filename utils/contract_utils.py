"""
Contract binding cache: one web3 contract object per (kind, address).
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple

from eth_utils import to_checksum_address
from loguru import logger as log
from web3 import AsyncWeb3

from utils.abi_utils import (
    get_factory_abi,
    get_pair_abi,
    get_router_abi,
    get_token_abi,
    get_wrapped_gas_abi,
)
from utils.rpc_utils import node_call


class ContractKind(Enum):
    """Logical contract kinds the trading layer talks to."""

    FUNGIBLE_TOKEN = "ERC20"
    ROUTER = "Router"
    FACTORY = "Factory"
    PAIR = "Pair"
    WRAPPED_GAS = "Wrapped"

    def abi(self):
        return _ABI_BY_KIND[self]()


_ABI_BY_KIND = {
    ContractKind.FUNGIBLE_TOKEN: get_token_abi,
    ContractKind.ROUTER: get_router_abi,
    ContractKind.FACTORY: get_factory_abi,
    ContractKind.PAIR: get_pair_abi,
    ContractKind.WRAPPED_GAS: get_wrapped_gas_abi,
}


@dataclass(frozen=True)
class ContractBinding:
    """A contract handle bound to one (kind, address) pair."""

    kind: ContractKind
    address: str
    contract: Any

    async def call(self, function_name: str, *args) -> Any:
        """
        Execute a read-only contract function.

        Args:
            function_name: ABI function name
            *args: Function arguments

        Returns:
            Decoded return value
        """
        function = getattr(self.contract.functions, function_name)(*args)
        return await node_call(f"{self.kind.value}.{function_name}", function.call())

    def encode(self, function_name: str, *args) -> str:
        """Encode call data for a contract function (hex string)."""
        return self.contract.encode_abi(function_name, args=list(args))

    def decode_event(self, event_name: str, log_entry: Any) -> Any:
        """Decode a raw log entry as the named event."""
        return getattr(self.contract.events, event_name)().process_log(log_entry)


class ContractBindingCache:
    """
    Memoizes contract bindings so each (kind, address) is constructed once.

    Reads of populated entries are lock free; a miss takes the cache lock and
    re-checks before constructing.
    """

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3
        self._bindings: Dict[Tuple[ContractKind, str], ContractBinding] = {}
        self._lock = threading.Lock()

    def get(self, kind: ContractKind, address: str) -> ContractBinding:
        key = (kind, to_checksum_address(address))
        binding = self._bindings.get(key)
        if binding is not None:
            return binding
        with self._lock:
            binding = self._bindings.get(key)
            if binding is None:
                binding = self._construct(*key)
                self._bindings[key] = binding
        return binding

    def _construct(self, kind: ContractKind, address: str) -> ContractBinding:
        log.debug(f"[CACHE] New contract binding {kind.value}.{address}")
        contract = self.w3.eth.contract(address=address, abi=kind.abi())
        return ContractBinding(kind=kind, address=address, contract=contract)

    def __len__(self) -> int:
        return len(self._bindings)
