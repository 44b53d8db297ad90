"""
Reward Token Ledger

In-memory fungible token balances used as the custody primitive of the
staking engine:
  - balance_of / transfer / mint with all-or-nothing balance checks
  - Transfer event log
  - snapshot / revert so a failed staking operation can roll back the token
    side effects together with its accounting changes

Amounts are integers in 1e18 fixed-point units.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenError(Exception):
    """Base exception for token ledger operations."""


class InsufficientBalanceError(TokenError):
    """Raised when sender balance is too low."""

    def __init__(self, address: str, balance: int, amount: int):
        self.address = address
        self.balance = balance
        self.amount = amount
        super().__init__(f"{address} balance {balance} < transfer amount {amount}")


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TransferEvent:
    """Emitted on every successful transfer or mint."""
    token_symbol: str
    sender: str
    recipient: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Transfer",
            "token": self.token_symbol,
            "from": self.sender,
            "to": self.recipient,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  LEDGER
# ══════════════════════════════════════════════════════════════════════

class TokenLedger:
    """
    Fungible token balances keyed by address.

    Mirrors the ERC-20 subset the staking engine needs:
        - balance_of(address) → int
        - transfer(sender, recipient, amount)
        - total_supply → int
    """

    def __init__(self, symbol: str = "DLC"):
        if not symbol:
            raise TokenError("Token symbol cannot be empty")
        self.symbol = symbol
        self._total_supply = 0
        self._balances: Dict[str, int] = {}
        self._events: List[TransferEvent] = []
        self._snapshots: List[Dict[str, Any]] = []

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    @property
    def events(self) -> List[TransferEvent]:
        return list(self._events)

    # ── Mutations ─────────────────────────────────────────────────────

    def mint(self, recipient: str, amount: int) -> TransferEvent:
        """Create new tokens (used to fund the reward pool and test wallets)."""
        if amount <= 0:
            raise TokenError("Mint amount must be positive")
        self._balances[recipient] = self.balance_of(recipient) + amount
        self._total_supply += amount

        event = TransferEvent(self.symbol, "", recipient, amount)
        self._events.append(event)
        logger.debug(f"Mint: {recipient} +{amount} wei {self.symbol}")
        return event

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferEvent:
        """
        Move tokens between addresses.

        Raises:
            TokenError: on a non-positive amount or a self transfer
            InsufficientBalanceError: if the sender cannot cover the amount
        """
        if amount <= 0:
            raise TokenError("Transfer amount must be positive")
        if sender == recipient:
            raise TokenError("Cannot transfer to self")

        bal = self.balance_of(sender)
        if bal < amount:
            raise InsufficientBalanceError(sender, bal, amount)

        self._balances[sender] = bal - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

        event = TransferEvent(self.symbol, sender, recipient, amount)
        self._events.append(event)
        logger.debug(f"Transfer: {sender} → {recipient} {amount} wei {self.symbol}")
        return event

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot(self) -> int:
        """
        Create ledger snapshot for revert.

        Returns:
            Snapshot ID
        """
        self._snapshots.append({
            "balances": dict(self._balances),
            "total_supply": self._total_supply,
            "events": len(self._events),
        })
        return len(self._snapshots) - 1

    def revert(self, snapshot_id: int) -> None:
        """Restore the ledger to *snapshot_id* and drop newer snapshots."""
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")

        snapshot = self._snapshots[snapshot_id]
        self._balances = snapshot["balances"]
        self._total_supply = snapshot["total_supply"]
        del self._events[snapshot["events"]:]
        self._snapshots = self._snapshots[:snapshot_id]

    def discard(self, snapshot_id: int) -> None:
        """Forget *snapshot_id* (and newer snapshots) after a successful commit."""
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")
        self._snapshots = self._snapshots[:snapshot_id]
