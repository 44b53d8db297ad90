"""
AI-Mining Reward Engine Package

Core imports are lazily loaded so that importing a submodule does not pull
in the whole engine. For direct module access, import from submodules:

    from aimining.staking import StakingManager
    from aimining.config import load_config
    from aimining.tokens import TokenLedger
"""

__version__ = '1.0.0'


def __getattr__(name):
    """Lazy module loading."""
    if name == 'StakingManager':
        from .staking import StakingManager
        return StakingManager
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'TokenLedger':
        from .tokens import TokenLedger
        return TokenLedger
    raise AttributeError(f"module 'aimining' has no attribute {name!r}")

__all__ = ['StakingManager', 'load_config', 'TokenLedger']
