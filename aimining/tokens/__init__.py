"""
AI-Mining Token Module

Token custody primitive used by the staking engine.
"""

from .ledger import (
    TokenLedger,
    TransferEvent,
    TokenError,
    InsufficientBalanceError,
)

__all__ = [
    'TokenLedger',
    'TransferEvent',
    'TokenError',
    'InsufficientBalanceError',
]
