"""
Uniswap V2 style swap execution modules.
"""

from .uniswap_v2 import SwapDefaults, SwapOrchestrator

__all__ = [
    'SwapDefaults',
    'SwapOrchestrator',
]
