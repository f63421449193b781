"""
Utility modules for DEX trading.
"""

from .errors import DeFiError, NodeError, InsufficientAllowance, UnsupportedNetwork, TransactionFailed
from .conversion_utils import to_base_units, from_base_units, apply_slippage, NATIVE_DECIMALS
from .rpc_utils import NodeClient, node_call
from .contract_utils import ContractKind, ContractBinding, ContractBindingCache
from .token_utils import TokenMetadata, TokenMetadataCache, to_address
from .balance_utils import BalanceReader
from .price_utils import QuoteEngine, SwapQuote
from .gas_utils import GasManager
from .receipt_utils import ReceiptPoller, PendingTransaction, ReceiptState, EmptyReceipt, is_successful
from .transaction_utils import TransactionSubmitter, NonceManager

__all__ = [
    'DeFiError',
    'NodeError',
    'InsufficientAllowance',
    'UnsupportedNetwork',
    'TransactionFailed',
    'to_base_units',
    'from_base_units',
    'apply_slippage',
    'NATIVE_DECIMALS',
    'NodeClient',
    'node_call',
    'ContractKind',
    'ContractBinding',
    'ContractBindingCache',
    'TokenMetadata',
    'TokenMetadataCache',
    'to_address',
    'BalanceReader',
    'QuoteEngine',
    'SwapQuote',
    'GasManager',
    'ReceiptPoller',
    'PendingTransaction',
    'ReceiptState',
    'EmptyReceipt',
    'is_successful',
    'TransactionSubmitter',
    'NonceManager',
]
