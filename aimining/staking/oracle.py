"""
Machine registry capability.

The engine never talks to the live machine registry directly; it is handed a
``CapacityOracle``. Two in-process variants are provided: a deterministic
``StaticCapacityOracle`` and a ``RecordingCapacityOracle`` that wraps any
oracle and records every query.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Tuple


class CapacityScore(NamedTuple):
    owner: str
    calc_point: int
    memory: int
    class_tag: str


class OnlineState(NamedTuple):
    is_online: bool
    is_registered: bool


class UnknownMachineError(LookupError):
    """Raised by an oracle that has never heard of a machine."""
    pass


class CapacityOracle(ABC):
    """Read-only view of the machine registry."""

    @abstractmethod
    def get_capacity_score(self, machine_id: str) -> CapacityScore:
        ...

    @abstractmethod
    def get_online_state(self, machine_id: str) -> OnlineState:
        ...


class StaticCapacityOracle(CapacityOracle):
    """In-memory registry whose answers only change when told to."""

    def __init__(self):
        self._scores: Dict[str, CapacityScore] = {}
        self._online: Dict[str, OnlineState] = {}

    def register_machine(
        self,
        machine_id: str,
        owner: str,
        calc_point: int,
        memory: int = 0,
        class_tag: str = "",
        online: bool = True,
    ) -> None:
        self._scores[machine_id] = CapacityScore(owner, calc_point, memory, class_tag)
        self._online[machine_id] = OnlineState(is_online=online, is_registered=True)

    def set_online(self, machine_id: str, online: bool) -> None:
        state = self.get_online_state(machine_id)
        self._online[machine_id] = state._replace(is_online=online)

    def set_registered(self, machine_id: str, registered: bool) -> None:
        state = self.get_online_state(machine_id)
        self._online[machine_id] = state._replace(is_registered=registered)

    def get_capacity_score(self, machine_id: str) -> CapacityScore:
        try:
            return self._scores[machine_id]
        except KeyError:
            raise UnknownMachineError(machine_id) from None

    def get_online_state(self, machine_id: str) -> OnlineState:
        try:
            return self._online[machine_id]
        except KeyError:
            raise UnknownMachineError(machine_id) from None


class RecordingCapacityOracle(CapacityOracle):
    """Delegates to another oracle and keeps a log of (method, machine_id)."""

    def __init__(self, inner: CapacityOracle):
        self.inner = inner
        self.calls: List[Tuple[str, str]] = []

    def get_capacity_score(self, machine_id: str) -> CapacityScore:
        self.calls.append(("get_capacity_score", machine_id))
        return self.inner.get_capacity_score(machine_id)

    def get_online_state(self, machine_id: str) -> OnlineState:
        self.calls.append(("get_online_state", machine_id))
        return self.inner.get_online_state(machine_id)

    def calls_for(self, machine_id: str) -> List[str]:
        return [method for method, mid in self.calls if mid == machine_id]
