"""Shared fakes for the trading layer tests.

Nothing here talks to a node: contract bindings, the node client, the signer
and the clock are replaced with small in-memory doubles.
"""

import asyncio
from types import SimpleNamespace

import pytest
from eth_utils import to_checksum_address

from utils.contract_utils import ContractKind

WALLET = to_checksum_address("0x1234567890abcdef1234567890abcdef12345678")
ROUTER = to_checksum_address("0x10ed43c718714eb63d5aa57b78b54704e256024e")
FACTORY = to_checksum_address("0xca143ce32fe78f1f7019d7d551a6402fc5350c73")
TOKEN_A = to_checksum_address("0xe9e7cea3dedca5984780bafc599bd69add087d56")
TOKEN_B = to_checksum_address("0x55d398326f99059ff775485246999027b3197955")
WRAPPED = to_checksum_address("0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c")
PRIVATE_KEY = "0x59c6995e998f97a5a004497e5f6f3f0f4f8eb59eac220d8d9f87f84d888fff44"


class FakeBinding:
    """Stands in for ContractBinding; reads come from a dict of results."""

    def __init__(self, kind, address, reads=None):
        self.kind = kind
        self.address = address
        self.reads = dict(reads or {})
        self.calls = []
        self.encoded = []
        self.delay = 0

    async def call(self, function_name, *args):
        self.calls.append((function_name, args))
        await asyncio.sleep(self.delay)
        value = self.reads[function_name]
        if callable(value):
            value = value(*args)
        if isinstance(value, Exception):
            raise value
        return value

    def encode(self, function_name, *args):
        self.encoded.append((function_name, args))
        return f"0x{function_name}"

    def decode_event(self, event_name, log_entry):
        if "args" not in log_entry:
            raise ValueError("not a Transfer log")
        return log_entry


class FakeContracts:
    def __init__(self):
        self.bindings = {}

    def add(self, kind, address, **reads):
        binding = FakeBinding(kind, to_checksum_address(address), reads)
        self.bindings[(kind, binding.address)] = binding
        return binding

    def get(self, kind, address):
        key = (kind, to_checksum_address(address))
        if key not in self.bindings:
            self.add(kind, address)
        return self.bindings[key]

    def token(self, address, decimals=18, symbol="TKN", name="Token", **reads):
        return self.add(
            ContractKind.FUNGIBLE_TOKEN, address,
            decimals=decimals, symbol=symbol, name=name, **reads
        )


class FakeNode:
    def __init__(self):
        self.gas_prices = [5_000_000_000]
        self.gas_price_calls = 0
        self.estimate = 21_000
        self.estimates = []
        self.sent = []
        self.send_error = None
        self.transaction_count = 7
        self.receipt_calls = 0
        self.receipts = {}
        self.balance = 0

    async def gas_price(self):
        price = self.gas_prices[min(self.gas_price_calls, len(self.gas_prices) - 1)]
        self.gas_price_calls += 1
        return price

    async def estimate_gas(self, transaction):
        self.estimates.append(dict(transaction))
        if isinstance(self.estimate, Exception):
            raise self.estimate
        return self.estimate

    async def send_raw_transaction(self, raw_transaction):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw_transaction)
        return "0x" + f"{len(self.sent):064x}"

    async def get_transaction_count(self, address):
        return self.transaction_count

    async def get_transaction_receipt(self, tx_hash):
        self.receipt_calls += 1
        value = self.receipts.get(tx_hash)
        if callable(value):
            value = value()
        if isinstance(value, Exception):
            raise value
        return value

    async def get_balance(self, address):
        return self.balance


class FakeAccount:
    def __init__(self, address=WALLET):
        self.address = address
        self.signed = []

    def sign_transaction(self, transaction):
        self.signed.append(dict(transaction))
        return SimpleNamespace(raw_transaction=b"\xaa" * 32)


class FakeClock:
    """Simulated monotonic clock; sleep() advances it instead of waiting."""

    def __init__(self, start=0.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def contracts():
    return FakeContracts()


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def clock():
    return FakeClock()
