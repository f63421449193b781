import asyncio
from decimal import Decimal

import pytest

from conftest import TOKEN_A
from utils.token_utils import TokenMetadataCache, same_token, short_address, to_address


@pytest.mark.asyncio
async def test_decimals_read_once_then_cached(contracts):
    binding = contracts.token(TOKEN_A, decimals=6)
    tokens = TokenMetadataCache(contracts)

    assert await tokens.decimals_of(TOKEN_A) == 6
    assert await tokens.decimals_of(TOKEN_A.lower()) == 6
    assert [name for name, _ in binding.calls] == ["decimals"]


@pytest.mark.asyncio
async def test_concurrent_cold_reads_keep_one_value(contracts):
    binding = contracts.token(TOKEN_A, decimals=18)
    tokens = TokenMetadataCache(contracts)

    first, second = await asyncio.gather(tokens.decimals_of(TOKEN_A), tokens.decimals_of(TOKEN_A))

    assert first == second == 18
    assert len(binding.calls) == 2
    assert len([key for key in tokens._values if key[0] == TOKEN_A]) == 1


@pytest.mark.asyncio
async def test_cached_value_is_never_replaced(contracts):
    binding = contracts.token(TOKEN_A, decimals=18)
    tokens = TokenMetadataCache(contracts)
    await tokens.decimals_of(TOKEN_A)

    binding.reads["decimals"] = 9
    assert await tokens.decimals_of(TOKEN_A) == 18


@pytest.mark.asyncio
async def test_metadata_and_total_supply(contracts):
    binding = contracts.token(TOKEN_A, decimals=6, symbol="USDX", name="USD X", totalSupply=5_000_000)
    tokens = TokenMetadataCache(contracts)

    metadata = await tokens.metadata(TOKEN_A)
    assert (metadata.decimals, metadata.symbol, metadata.name) == (6, "USDX", "USD X")
    assert tokens.cached(TOKEN_A, "symbol")

    assert await tokens.total_supply_of(TOKEN_A) == Decimal(5)
    assert await tokens.total_supply_of(TOKEN_A) == Decimal(5)
    assert [name for name, _ in binding.calls].count("totalSupply") == 2


def test_address_helpers():
    assert to_address(TOKEN_A.lower()) == TOKEN_A
    assert same_token(TOKEN_A, TOKEN_A.lower())
    assert short_address(TOKEN_A) == f"{TOKEN_A[:6]}...{TOKEN_A[-4:]}"
    with pytest.raises(ValueError):
        to_address("")
