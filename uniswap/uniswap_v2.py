"""
Uniswap V2 style swap execution: allowance checks, approvals, router swaps
and unwrapping wrapped gas back into native currency.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

from loguru import logger as log

from utils.balance_utils import BalanceReader
from utils.contract_utils import ContractBindingCache, ContractKind
from utils.conversion_utils import Amount, to_base_units, to_decimal
from utils.errors import InsufficientAllowance, TransactionFailed
from utils.price_utils import QuoteEngine, SwapQuote
from utils.receipt_utils import is_successful
from utils.token_utils import TokenMetadataCache, to_address
from utils.transaction_utils import TransactionSubmitter

APPROVE = "ERC20.approve(spender, amount)"
TRANSFER = "ERC20.transfer(recipient, amount)"
SWAP = "Router.swapExactTokensForTokens(amountIn, amountOutMin, path, to, deadline)"
WITHDRAW = "Wrapped.withdraw(wad)"


@dataclass
class SwapDefaults:
    """Session-wide defaults applied when a call omits a value."""

    deadline_minutes: int = 10
    slippage: Decimal = Decimal("0.5")
    auto_approve_multiplier: Decimal = Decimal(3)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        self.slippage = to_decimal(self.slippage)
        self.auto_approve_multiplier = to_decimal(self.auto_approve_multiplier)
        if int(self.deadline_minutes) <= 0:
            raise ValueError(f"deadline_minutes must be positive, got {self.deadline_minutes}")
        if self.slippage < 0 or self.slippage > 100:
            raise ValueError(f"slippage must be in [0, 100] percent, got {self.slippage}")
        if self.auto_approve_multiplier < 1:
            raise ValueError(f"auto_approve_multiplier must be >= 1, got {self.auto_approve_multiplier}")


class SwapOrchestrator:
    """Handles token approvals, transfers and V2 router swaps."""

    def __init__(
        self,
        address: str,
        contracts: ContractBindingCache,
        tokens: TokenMetadataCache,
        balances: BalanceReader,
        quotes: QuoteEngine,
        submitter: TransactionSubmitter,
        defaults: Optional[SwapDefaults] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize swap orchestrator.

        Args:
            address: Wallet address (swap recipient and token owner)
            contracts: Contract binding cache
            tokens: Token metadata cache
            balances: Balance/allowance reader
            quotes: Quote engine
            submitter: Transaction submitter
            defaults: Session defaults for deadline, slippage and auto-approve multiplier
            clock: Wall clock in epoch seconds (swap deadlines)
        """
        self.address = address
        self.contracts = contracts
        self.tokens = tokens
        self.balances = balances
        self.quotes = quotes
        self.submitter = submitter
        self.defaults = defaults or SwapDefaults()
        self._clock = clock

    async def approve(self, token: str, amount: Amount, spender: str) -> Any:
        """
        Approve spender to move amount of token.

        Returns:
            Approval receipt (EmptyReceipt if it expired)
        """
        decimals = await self.tokens.decimals_of(token)
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        data = binding.encode("approve", to_address(spender), to_base_units(amount, decimals))
        return await self.submitter.send(binding.address, data, description=APPROVE)

    async def transfer(self, token: str, recipient: str, amount: Amount) -> Any:
        decimals = await self.tokens.decimals_of(token)
        binding = self.contracts.get(ContractKind.FUNGIBLE_TOKEN, token)
        data = binding.encode("transfer", to_address(recipient), to_base_units(amount, decimals))
        return await self.submitter.send(binding.address, data, description=TRANSFER)

    async def unwrap_gas(self, wrapped_token: str, amount: Amount) -> Any:
        """
        Convert wrapped gas (WBNB/WMATIC...) back to native currency.

        Args:
            wrapped_token: Wrapped gas token address
            amount: Amount to unwrap in human-readable units
        """
        decimals = await self.tokens.decimals_of(wrapped_token)
        binding = self.contracts.get(ContractKind.WRAPPED_GAS, wrapped_token)
        data = binding.encode("withdraw", to_base_units(amount, decimals))
        return await self.submitter.send(binding.address, data, description=WITHDRAW)

    async def _read_allowance(self, router: str, token_in: str) -> Decimal:
        allowance = await self.balances.get_allowance(token_in, router)
        log.info(f"[SWAP] Allowance Token \"{token_in}\" amount {allowance} for Contract \"{router}\"")
        return allowance

    async def swap(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount: Amount,
        slippage: Optional[Amount] = None,
        deadline_minutes: Optional[int] = None
    ) -> Any:
        """
        Swap an exact amount of token_in for token_out.

        The router must already be approved for at least amount of token_in.

        Args:
            router: Router contract address
            token_in: Token to swap from
            token_out: Token to swap to
            amount: Amount of token_in in human-readable units
            slippage: Slippage tolerance in percent (session default if None)
            deadline_minutes: Minutes until the swap expires on-chain (session default if None)

        Returns:
            Swap receipt (EmptyReceipt if it expired)
        """
        amount = to_decimal(amount)
        allowance = await self._read_allowance(router, token_in)
        if allowance < amount:
            raise InsufficientAllowance(token_in, router, allowance, amount)
        return await self._swap(router, token_in, token_out, amount, slippage, deadline_minutes)

    async def swap_with_auto_approve(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount: Amount,
        slippage: Optional[Amount] = None,
        deadline_minutes: Optional[int] = None
    ) -> Any:
        """
        Swap like swap(), approving amount x auto_approve_multiplier first when
        the current allowance is too small.
        """
        amount = to_decimal(amount)
        await self._approve_if_needed(router, token_in, amount)
        return await self._swap(router, token_in, token_out, amount, slippage, deadline_minutes)

    async def _approve_if_needed(self, router: str, token_in: str, amount: Decimal) -> None:
        allowance = await self._read_allowance(router, token_in)
        if allowance < amount:
            approved_amount = amount * to_decimal(self.defaults.auto_approve_multiplier)
            log.info(f"[SWAP] Approved amount = {approved_amount}")
            receipt = await self.approve(token_in, approved_amount, router)
            if not is_successful(receipt):
                raise TransactionFailed(APPROVE, receipt)

    async def _swap(
        self,
        router: str,
        token_in: str,
        token_out: str,
        amount: Decimal,
        slippage: Optional[Amount],
        deadline_minutes: Optional[int],
        quote: Optional[SwapQuote] = None
    ) -> Any:
        if slippage is None:
            slippage = self.defaults.slippage
        if deadline_minutes is None:
            deadline_minutes = self.defaults.deadline_minutes

        if quote is None:
            quote = await self.quotes.quote_swap(router, token_in, token_out, amount, slippage)
        deadline = int(self._clock()) + 60 * int(deadline_minutes)
        decimals_in = await self.tokens.decimals_of(token_in)
        decimals_out = await self.tokens.decimals_of(token_out)
        amount_in = to_base_units(quote.amount_in, decimals_in)
        amount_out_min = to_base_units(quote.amount_out_min, decimals_out)
        path = [quote.token_in, quote.token_out]

        log.info(f"[SWAP] amount = {amount}")
        log.info(f"[SWAP] slippage = {slippage}")
        log.info(f"[SWAP] receiveAmount = {quote.amount_out}")
        log.info(f"[SWAP] amountOutMin = {quote.amount_out_min} ({amount_out_min})")
        log.info(f"[SWAP] deadline = {deadline}")
        log.info(f"[SWAP] path = {path}")

        binding = self.contracts.get(ContractKind.ROUTER, router)
        data = binding.encode(
            "swapExactTokensForTokens",
            amount_in,
            amount_out_min,
            path,
            self.address,
            deadline
        )
        return await self.submitter.send(binding.address, data, description=SWAP)

    async def swap_and_refuel_gas(self, router: str, token: str, wrapped_gas: str, amount: Amount) -> Any:
        """
        Swap token into wrapped gas, then unwrap the quoted minimum output.

        There is no rollback: if the unwrap fails after the swap succeeded, the
        wrapped gas stays in the wallet and unwrap_gas() can be retried.

        Args:
            router: Router contract address
            token: Token to sell
            wrapped_gas: Wrapped gas token of the network
            amount: Amount of token to sell

        Returns:
            Unwrap receipt
        """
        amount = to_decimal(amount)
        slippage = self.defaults.slippage
        # One quote sets both the swap minimum and the unwrapped amount
        quote = await self.quotes.quote_swap(router, token, wrapped_gas, amount, slippage)
        await self._approve_if_needed(router, token, amount)
        receipt = await self._swap(router, token, wrapped_gas, amount, slippage, None, quote=quote)
        if not is_successful(receipt):
            raise TransactionFailed(SWAP, receipt)
        return await self.unwrap_gas(wrapped_gas, quote.amount_out_min)
