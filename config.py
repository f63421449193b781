"""
Network profiles and environment-driven settings.
"""

import os
import sys
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from dotenv import load_dotenv
from loguru import logger

from utils.errors import UnsupportedNetwork

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class NetworkProfile:
    name: str
    chain_id: int
    rpc_url: str
    gas_wrapped_token: str
    gas_symbol: str
    explorer_url: str

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def explorer_address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


NETWORKS: Dict[str, NetworkProfile] = {
    'bsc_mainnet': NetworkProfile(
        name='Binance Smart Chain',
        chain_id=56,
        rpc_url='https://bsc-dataseed1.binance.org',
        gas_wrapped_token='0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c',  # WBNB
        gas_symbol='BNB',
        explorer_url='https://bscscan.com',
    ),
    'polygon_mainnet': NetworkProfile(
        name='Polygon (PoS) Chain',
        chain_id=137,
        rpc_url='https://polygon-rpc.com',
        gas_wrapped_token='0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270',  # WMATIC
        gas_symbol='MATIC',
        explorer_url='https://polygonscan.com',
    ),
    'bitkub_mainnet': NetworkProfile(
        name='Bitkub Chain',
        chain_id=96,
        rpc_url='https://rpc.bitkubchain.io',
        gas_wrapped_token='0x67eBD850304c70d983B2d1b93ea79c7CD6c3F6b5',  # KKUB
        gas_symbol='KUB',
        explorer_url='https://bkcscan.com',
    ),
}


def get_network(name: str) -> NetworkProfile:
    """
    Look up a built-in network profile.

    Args:
        name: Profile key, e.g. 'bsc_mainnet' (case-insensitive)

    Returns:
        The matching NetworkProfile
    """
    profile = NETWORKS.get((name or '').strip().lower())
    if profile is None:
        raise UnsupportedNetwork(name)
    return profile


def _env_decimal(key: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return Decimal(value.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment (.env supported)."""

    network: str = 'bsc_mainnet'
    rpc_url: Optional[str] = None
    private_key: str = ''
    gas_price_gwei: Optional[Decimal] = None
    max_gas_price_gwei: Optional[Decimal] = None
    gas_limit: int = 9_000_000
    receipt_poll_interval: float = 5.0
    receipt_expiry: float = 1200.0
    swap_deadline_minutes: int = 10
    swap_slippage: Decimal = Decimal('0.5')
    token_auto_approve_multiplier: Decimal = Decimal(3)
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            network=os.getenv('NETWORK', 'bsc_mainnet'),
            rpc_url=os.getenv('RPC_URL') or None,
            private_key=os.getenv('PRIVATE_KEY', ''),
            gas_price_gwei=_env_decimal('GAS_PRICE_GWEI'),
            max_gas_price_gwei=_env_decimal('MAX_GAS_PRICE_GWEI'),
            gas_limit=int(os.getenv('GAS_LIMIT', '9000000')),
            receipt_poll_interval=float(os.getenv('RECEIPT_POLL_INTERVAL', '5')),
            receipt_expiry=float(os.getenv('RECEIPT_EXPIRY', '1200')),
            swap_deadline_minutes=int(os.getenv('SWAP_DEADLINE_MINUTES', '10')),
            swap_slippage=_env_decimal('SWAP_SLIPPAGE', Decimal('0.5')),
            token_auto_approve_multiplier=_env_decimal('TOKEN_AUTO_APPROVE_MULTIPLIER', Decimal(3)),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


def configure_logging(level: str = 'INFO') -> None:
    """Send log output to stderr at the given level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}",
    )
