"""
AI-Mining Exceptions

Package-wide exception classes. Staking precondition failures live in
``aimining.staking.types`` and token failures in ``aimining.tokens.ledger``.
"""


class AIMiningException(Exception):
    """Base exception for the reward engine."""
    pass


class ConfigurationError(AIMiningException):
    """Configuration error."""
    pass


class ReentrancyError(AIMiningException):
    """An operation was entered while another one was still in flight."""
    pass


class InvariantViolationError(AIMiningException):
    """Accounting state no longer satisfies its invariants."""
    pass
