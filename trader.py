"""
DeFi Trader - wallet-level API for balances, prices, approvals, swaps and gas refuelling
on Uniswap V2 style DEXes.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional, Union

from loguru import logger as log
from web3 import AsyncWeb3

from config import NetworkProfile, Settings, configure_logging, get_network
from stream import EventStreamManager
from uniswap.uniswap_v2 import SwapDefaults, SwapOrchestrator
from utils.balance_utils import BalanceReader
from utils.contract_utils import ContractBindingCache
from utils.conversion_utils import Amount
from utils.gas_utils import DEFAULT_GAS_LIMIT, GasManager
from utils.price_utils import QuoteEngine
from utils.receipt_utils import DEFAULT_EXPIRY, DEFAULT_POLL_INTERVAL, ReceiptPoller
from utils.rpc_utils import NodeClient
from utils.token_utils import TokenMetadataCache, short_address, to_address
from utils.transaction_utils import NonceManager, TransactionSubmitter

TokenSelector = Union[str, Callable[[str], str]]


@dataclass(frozen=True)
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: Decimal
    balance: Decimal
    price: Decimal
    value: Decimal
    value_symbol: str


class DeFiTrader:
    """Executes wallet operations against one network."""

    def __init__(
        self,
        network: Union[str, NetworkProfile] = 'bsc_mainnet',
        account=None,
        private_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        gas_price_gwei: Optional[Decimal] = None,
        max_gas_price_gwei: Optional[Decimal] = None,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        receipt_poll_interval: float = DEFAULT_POLL_INTERVAL,
        receipt_expiry: float = DEFAULT_EXPIRY,
        defaults: Optional[SwapDefaults] = None,
        w3: Optional[AsyncWeb3] = None
    ):
        """
        Initialize DeFi trader.

        Args:
            network: Network profile or its name, e.g. 'bsc_mainnet'
            account: Signing account (eth_account LocalAccount); built from private_key if None
            private_key: Private key of the trading wallet, used only when account is None
            rpc_url: RPC URL overriding the profile's endpoint
            gas_price_gwei: Fixed gas price in Gwei (None to use network price)
            max_gas_price_gwei: Maximum gas price in Gwei (None for no cap)
            gas_limit: Gas limit of draft transactions before estimation
            receipt_poll_interval: Seconds between receipt polls
            receipt_expiry: Seconds before a pending transaction is reported as expired
            defaults: Session defaults for swaps
            w3: Preconfigured AsyncWeb3 instance (rpc_url is ignored when given)
        """
        self.network = network if isinstance(network, NetworkProfile) else get_network(network)
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or self.network.rpc_url))

        # Setup wallet
        if account is None:
            if not private_key:
                raise ValueError("PRIVATE_KEY not found in .env file and not provided as parameter")
            if not private_key.startswith('0x'):
                private_key = '0x' + private_key
            account = self.w3.eth.account.from_key(private_key)
        self.account = account
        self.address = to_address(account.address)

        self.node = NodeClient(self.w3)
        self.gas_manager = GasManager(
            node=self.node,
            gas_price_gwei=gas_price_gwei,
            max_gas_price_gwei=max_gas_price_gwei,
            gas_limit=gas_limit
        )
        self.contracts = ContractBindingCache(self.w3)
        self.tokens = TokenMetadataCache(self.contracts)
        self.balances = BalanceReader(self.node, self.contracts, self.tokens, self.address)
        self.quotes = QuoteEngine(self.contracts, self.tokens)
        self.poller = ReceiptPoller(self.node, poll_interval=receipt_poll_interval, expiry=receipt_expiry)
        self.submitter = TransactionSubmitter(
            node=self.node,
            account=self.account,
            chain_id=self.network.chain_id,
            gas_manager=self.gas_manager,
            nonces=NonceManager(self.node, self.address),
            poller=self.poller
        )
        self.swapper = SwapOrchestrator(
            address=self.address,
            contracts=self.contracts,
            tokens=self.tokens,
            balances=self.balances,
            quotes=self.quotes,
            submitter=self.submitter,
            defaults=defaults
        )
        self.streams = EventStreamManager(self.node, self.contracts, self.address)
        log.info(f"Wallet address : {self.wallet_short_address} on {self.network.name}")

    @classmethod
    def from_env(cls, settings: Optional[Settings] = None, **kwargs) -> 'DeFiTrader':
        """Build a trader from environment settings (.env supported)."""
        settings = settings or Settings.from_env()
        configure_logging(settings.log_level)
        options = dict(
            network=settings.network,
            private_key=settings.private_key,
            rpc_url=settings.rpc_url,
            gas_price_gwei=settings.gas_price_gwei,
            max_gas_price_gwei=settings.max_gas_price_gwei,
            gas_limit=settings.gas_limit,
            receipt_poll_interval=settings.receipt_poll_interval,
            receipt_expiry=settings.receipt_expiry,
            defaults=SwapDefaults(
                deadline_minutes=settings.swap_deadline_minutes,
                slippage=settings.swap_slippage,
                auto_approve_multiplier=settings.token_auto_approve_multiplier,
            ),
        )
        options.update(kwargs)
        return cls(**options)

    async def connect(self) -> 'DeFiTrader':
        """Check the node is reachable and serves this network's chain."""
        if not await self.node.is_connected():
            raise ConnectionError(f"Failed to connect to {self.network.name} node")
        chain_id = await self.node.chain_id()
        if chain_id != self.network.chain_id:
            raise ConnectionError(
                f"Node reports chain id {chain_id}, expected {self.network.chain_id} ({self.network.name})"
            )
        return self

    @property
    def wallet_address(self) -> str:
        return self.address

    @property
    def wallet_short_address(self) -> str:
        return short_address(self.address)

    @property
    def defaults(self) -> SwapDefaults:
        return self.swapper.defaults

    def configure(
        self,
        deadline_minutes: Optional[int] = None,
        slippage: Optional[Amount] = None,
        auto_approve_multiplier: Optional[Amount] = None
    ) -> 'DeFiTrader':
        """
        Update session defaults used when a call omits them.

        Args:
            deadline_minutes: Default swap deadline in minutes
            slippage: Default slippage tolerance in percent
            auto_approve_multiplier: Approval size as a multiple of the swap amount
        """
        current = self.swapper.defaults
        self.swapper.defaults = SwapDefaults(
            deadline_minutes=current.deadline_minutes if deadline_minutes is None else deadline_minutes,
            slippage=current.slippage if slippage is None else slippage,
            auto_approve_multiplier=(
                current.auto_approve_multiplier if auto_approve_multiplier is None else auto_approve_multiplier
            ),
        )
        return self

    def explorer_tx_url(self, tx_hash: str) -> str:
        return self.network.explorer_tx_url(tx_hash)

    # Queries

    async def get_gas_balance(self) -> Decimal:
        return await self.balances.get_gas_balance()

    async def get_gas_price(self) -> Decimal:
        """Current gas price in Gwei."""
        return await self.gas_manager.get_gas_price_gwei()

    async def get_token_balance(self, token: str) -> Decimal:
        return await self.balances.get_token_balance(token)

    async def get_token_allowance(self, token: str, spender: str) -> Decimal:
        return await self.balances.get_allowance(token, spender)

    async def get_token_amounts_out(self, router: str, token_a: str, token_b: str, amount: Amount) -> Decimal:
        return await self.quotes.quote(router, [token_a, token_b], amount)

    async def get_token_amounts_out_min(
        self,
        router: str,
        token_a: str,
        token_b: str,
        amount: Amount,
        slippage: Optional[Amount] = None
    ) -> Decimal:
        if slippage is None:
            slippage = self.defaults.slippage
        return await self.quotes.quote_min(router, token_a, token_b, amount, slippage)

    async def get_token_price(self, token_a: str, token_b: str, router: str) -> Decimal:
        return await self.quotes.price(token_a, token_b, router)

    async def get_token_info(self, token: str, token_pair: str, router: str) -> TokenInfo:
        """
        Collect metadata, wallet balance and value of a token.

        Args:
            token: Token address
            token_pair: Token the price and value are expressed in
            router: Router used for pricing

        Returns:
            TokenInfo snapshot
        """
        metadata, total_supply, balance, price, value_symbol = await asyncio.gather(
            self.tokens.metadata(token),
            self.tokens.total_supply_of(token),
            self.balances.get_token_balance(token),
            self.quotes.price(token, token_pair, router),
            self.tokens.symbol_of(token_pair),
        )
        return TokenInfo(
            address=metadata.address,
            name=metadata.name,
            symbol=metadata.symbol,
            decimals=metadata.decimals,
            total_supply=total_supply,
            balance=balance,
            price=price,
            value=balance * price,
            value_symbol=value_symbol,
        )

    async def get_token_info_list(
        self,
        tokens: List[str],
        token_pair: TokenSelector,
        router: TokenSelector
    ) -> List[TokenInfo]:
        """
        TokenInfo for several tokens, fetched concurrently.

        Args:
            tokens: Token addresses
            token_pair: Pair token address, or a function token -> pair token
            router: Router address, or a function token -> router
        """
        pair_of = token_pair if callable(token_pair) else (lambda token: token_pair)
        router_of = router if callable(router) else (lambda token: router)
        return list(await asyncio.gather(*[
            self.get_token_info(token, pair_of(token), router_of(token)) for token in tokens
        ]))

    # Transactions

    async def token_approve(self, token: str, amount: Amount, spender: str) -> Any:
        return await self.swapper.approve(token, amount, spender)

    async def token_transfer(self, token: str, recipient: str, amount: Amount) -> Any:
        return await self.swapper.transfer(token, recipient, amount)

    async def swap(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount: Amount,
        slippage: Optional[Amount] = None,
        deadline_minutes: Optional[int] = None
    ) -> Any:
        return await self.swapper.swap(router, token_in, token_out, amount, slippage, deadline_minutes)

    async def swap_with_auto_approve(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount: Amount,
        slippage: Optional[Amount] = None,
        deadline_minutes: Optional[int] = None
    ) -> Any:
        return await self.swapper.swap_with_auto_approve(
            router, token_in, token_out, amount, slippage, deadline_minutes
        )

    async def fill_gas(self, amount: Amount) -> Any:
        """Unwrap amount of the network's wrapped gas token into native currency."""
        return await self.swapper.unwrap_gas(self.network.gas_wrapped_token, amount)

    async def swap_and_refuel_gas(self, router: str, token: str, amount: Amount) -> Any:
        """
        Sell token for wrapped gas, then unwrap it into native currency.

        Args:
            router: Router contract address
            token: Token to sell
            amount: Amount of token to sell

        Returns:
            Unwrap receipt
        """
        return await self.swapper.swap_and_refuel_gas(router, token, self.network.gas_wrapped_token, amount)

    # Subscriptions

    def watch_blocks(self, callback: Callable[[Any], Any], throttle_millis: int = 300) -> asyncio.Task:
        return self.streams.watch_blocks(callback, throttle_millis)

    def watch_transfers(self, token: str, callback: Callable[[Any], Any]) -> asyncio.Task:
        return self.streams.watch_transfers(token, callback)

    async def close(self) -> None:
        """Cancel subscriptions and stop polling pending receipts."""
        await self.streams.close()
        await self.poller.close()
