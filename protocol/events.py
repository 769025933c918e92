"""Pool events.

Events are the only channel through which indexers, client mirrors and the
cross-domain coordinator learn about state changes. They are published only
after the emitting call has committed.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Type


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class Transact(Event):
    old_root: int
    new_root: int
    nullifiers: Tuple[int, ...]
    commitments: Tuple[int, ...]
    leaf_indices: Tuple[int, ...]
    external_amount: int
    recipient: Optional[str]


@dataclass(frozen=True)
class Collect(Event):
    token: str
    amount: int
    stealth_address: str
    commitment: int
    leaf_index: int
    new_root: int


@dataclass(frozen=True)
class TrustlessWithdrawInit(Event):
    key: bytes
    nullifier: int
    amount: int
    recipient: str
    destination: Optional[int]
    deadline: int


@dataclass(frozen=True)
class TrustlessWithdrawFinalized(Event):
    key: bytes
    origin: int
    recipient: str
    amount: int


@dataclass(frozen=True)
class TrustlessWithdrawAcknowledged(Event):
    key: bytes


@dataclass(frozen=True)
class TrustlessWithdrawCancelRequested(Event):
    key: bytes
    destination: int


@dataclass(frozen=True)
class TrustlessWithdrawRefunded(Event):
    key: bytes
    recipient: str
    amount: int


class EventLog:
    """Append-only list of committed events with synchronous subscribers."""

    def __init__(self) -> None:
        self.events: List[Event] = []
        self._subscribers: List[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        self._subscribers.append(callback)

    def publish(self, events: List[Event]) -> None:
        for event in events:
            self.events.append(event)
            for callback in self._subscribers:
                callback(event)

    def of_type(self, kind: Type[Event]) -> List[Event]:
        return [e for e in self.events if isinstance(e, kind)]

    def __len__(self) -> int:
        return len(self.events)
