from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, fields
from typing import Callable, ClassVar, Dict, List, Optional, Type

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    name: ClassVar[str] = "Event"

    seq: int
    timestamp: int


@dataclass(frozen=True)
class LotteryCreated(Event):
    name: ClassVar[str] = "LotteryCreated"

    lottery_id: int
    owner: str
    collateral_contract: str
    collateral_token_id: int
    ticket_price: int
    max_supply: int
    expiration: int


@dataclass(frozen=True)
class TicketsPurchased(Event):
    name: ClassVar[str] = "TicketsPurchased"

    lottery_id: int
    buyer: str
    amount: int
    payment: int
    fee: int
    reward: int


@dataclass(frozen=True)
class LoanRepaid(Event):
    name: ClassVar[str] = "LoanRepaid"

    lottery_id: int
    owner: str
    amount: int


@dataclass(frozen=True)
class RandomnessRequested(Event):
    name: ClassVar[str] = "RandomnessRequested"

    lottery_id: int
    request_id: Optional[str]


@dataclass(frozen=True)
class WinnerDrawn(Event):
    name: ClassVar[str] = "WinnerDrawn"

    lottery_id: int
    winner: str
    winning_ticket: int
    request_id: str


@dataclass(frozen=True)
class LotteryTrashed(Event):
    name: ClassVar[str] = "LotteryTrashed"

    lottery_id: int
    owner: str


@dataclass(frozen=True)
class NFTClaimed(Event):
    name: ClassVar[str] = "NFTClaimed"

    lottery_id: int
    winner: str
    collateral_contract: str
    collateral_token_id: int


@dataclass(frozen=True)
class TicketsMelted(Event):
    name: ClassVar[str] = "TicketsMelted"

    lottery_id: int
    holder: str
    amount: int
    refund: int
    reward: int


@dataclass(frozen=True)
class ParameterUpdated(Event):
    name: ClassVar[str] = "ParameterUpdated"

    parameter: str
    old_value: str
    new_value: str


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.name: cls
    for cls in (
        LotteryCreated,
        TicketsPurchased,
        LoanRepaid,
        RandomnessRequested,
        WinnerDrawn,
        LotteryTrashed,
        NFTClaimed,
        TicketsMelted,
        ParameterUpdated,
    )
}

Subscriber = Callable[[Event], None]


class EventLog:
    """
    Append-only, totally ordered log.

    Subscribers run synchronously while the emitting operation still holds
    its locks, so they must not call back into the engine. Pollers use
    ``since(seq)``.
    """

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def emit(self, event_type: Type[Event], timestamp: int, **payload) -> Event:
        with self._lock:
            event = event_type(seq=len(self._events), timestamp=timestamp, **payload)
            self._events.append(event)
            subscribers = list(self._subscribers)
        log.debug("Event %s", event)
        for callback in subscribers:
            callback(event)
        return event

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def since(self, seq: int = 0) -> List[Event]:
        with self._lock:
            return self._events[seq:]

    def of_type(self, event_type: Type[Event]) -> List[Event]:
        with self._lock:
            return [e for e in self._events if isinstance(e, event_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def dump(self) -> List[Dict[str, object]]:
        with self._lock:
            return [event_to_dict(e) for e in self._events]

    @classmethod
    def load(cls, items: List[Dict[str, object]]) -> "EventLog":
        event_log = cls()
        event_log._events = [event_from_dict(item) for item in items]
        return event_log


def event_to_dict(event: Event) -> Dict[str, object]:
    data = asdict(event)
    data["type"] = event.name
    return data


def event_from_dict(data: Dict[str, object]) -> Event:
    event_type = EVENT_TYPES.get(str(data.get("type")))
    if event_type is None:
        raise RuntimeError(f"Unknown event type in log: {data.get('type')!r}")
    names = {f.name for f in fields(event_type)}
    return event_type(**{k: v for k, v in data.items() if k in names})
