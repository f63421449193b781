"""
Exception types raised by the trading layer.
"""

from typing import Any, Optional
from decimal import Decimal


class DeFiError(Exception):
    """Base class for trading layer failures."""


class NodeError(DeFiError):
    """The node answered a JSON-RPC call with an error object."""

    def __init__(self, method: str, message: str, response: Optional[Any] = None):
        super().__init__(f"{method} error: {message}")
        self.method = method
        self.message = message
        self.response = response


class InsufficientAllowance(DeFiError):
    """A strict swap was requested without enough prior approval."""

    def __init__(self, token: str, spender: str, allowance: Decimal, amount: Decimal):
        super().__init__(
            f"Allowance of token {token} for {spender} is {allowance}, need {amount}. "
            f"Call token_approve(token, amount, spender) before swap"
        )
        self.token = token
        self.spender = spender
        self.allowance = allowance
        self.amount = amount


class UnsupportedNetwork(DeFiError):
    """No network profile is known under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Unsupported network {name!r}")
        self.name = name


class TransactionFailed(DeFiError):
    """
    A prerequisite transaction of a composite workflow reverted or expired,
    so the dependent transaction was not submitted.
    """

    def __init__(self, description: str, receipt: Any):
        super().__init__(f"Transaction \"{description}\" did not succeed")
        self.description = description
        self.receipt = receipt
