from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import InvalidParameter, Unauthorized
from .project_constants import (
    ABSOLUTE_MAX_DURATION_DAYS,
    ABSOLUTE_MAX_SUPPLY,
    DEFAULT_FEE_BPS,
    DEFAULT_GOVERNOR,
    DEFAULT_HOLDER_CAP_PERCENT,
    DEFAULT_MAX_DURATION_DAYS,
    DEFAULT_MAX_SUPPLY,
    DEFAULT_MIN_SUPPLY,
    DEFAULT_TREASURY,
    MAX_FEE_BPS,
)

log = logging.getLogger(__name__)

# (name, old value, new value)
ParameterListener = Callable[[str, object, object], None]


@dataclass
class ProtocolParameters:
    """
    Global protocol configuration plus the treasury (fee sink) address.

    Every setter is gated on ``caller == governor`` and validates its range.
    Lotteries copy what they need at creation, so updates never touch
    lotteries that already exist.
    """

    fee_bps: int = DEFAULT_FEE_BPS
    min_supply: int = DEFAULT_MIN_SUPPLY
    max_supply: int = DEFAULT_MAX_SUPPLY
    holder_cap_percent: int = DEFAULT_HOLDER_CAP_PERCENT
    max_duration_days: int = DEFAULT_MAX_DURATION_DAYS
    treasury: str = DEFAULT_TREASURY
    governor: str = DEFAULT_GOVERNOR
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _listeners: List[ParameterListener] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self) -> None:
        _check_fee(self.fee_bps)
        _check_supply_bounds(self.min_supply, self.max_supply)
        _check_holder_cap(self.holder_cap_percent)
        _check_duration(self.max_duration_days)
        _check_address("treasury", self.treasury)
        _check_address("governor", self.governor)

    def subscribe(self, listener: ParameterListener) -> None:
        self._listeners.append(listener)

    def holder_cap(self, max_supply: int, percent: Optional[int] = None) -> int:
        pct = self.holder_cap_percent if percent is None else percent
        return max_supply * pct // 100

    def set_fee_bps(self, caller: str, fee_bps: int) -> None:
        self._authorize(caller)
        _check_fee(fee_bps)
        self._update("fee_bps", fee_bps)

    def set_supply_bounds(self, caller: str, min_supply: int, max_supply: int) -> None:
        self._authorize(caller)
        _check_supply_bounds(min_supply, max_supply)
        self._update("min_supply", min_supply)
        self._update("max_supply", max_supply)

    def set_holder_cap_percent(self, caller: str, percent: int) -> None:
        self._authorize(caller)
        _check_holder_cap(percent)
        self._update("holder_cap_percent", percent)

    def set_max_duration_days(self, caller: str, days: int) -> None:
        self._authorize(caller)
        _check_duration(days)
        self._update("max_duration_days", days)

    def set_treasury(self, caller: str, treasury: str) -> None:
        self._authorize(caller)
        _check_address("treasury", treasury)
        self._update("treasury", treasury)

    def set_governor(self, caller: str, governor: str) -> None:
        self._authorize(caller)
        _check_address("governor", governor)
        self._update("governor", governor)

    def update(self, caller: str, **changes: object) -> List[str]:
        """
        Applies several parameter changes at once.

        Every value is validated against the values it will end up next to
        before anything is written, so either all changes apply or none do.
        Returns the names that actually changed.
        """
        self._authorize(caller)
        unknown = set(changes) - set(self.as_dict())
        if unknown:
            raise InvalidParameter(f"Unknown parameters: {', '.join(sorted(unknown))}")

        merged = {**self.as_dict(), **changes}
        _check_fee(merged["fee_bps"])
        _check_supply_bounds(merged["min_supply"], merged["max_supply"])
        _check_holder_cap(merged["holder_cap_percent"])
        _check_duration(merged["max_duration_days"])
        _check_address("treasury", merged["treasury"])
        _check_address("governor", merged["governor"])

        changed = [name for name, value in changes.items() if getattr(self, name) != value]
        for name in changed:
            self._update(name, changes[name])
        return changed

    def as_dict(self) -> dict:
        return {
            "fee_bps": self.fee_bps,
            "min_supply": self.min_supply,
            "max_supply": self.max_supply,
            "holder_cap_percent": self.holder_cap_percent,
            "max_duration_days": self.max_duration_days,
            "treasury": self.treasury,
            "governor": self.governor,
        }

    def _authorize(self, caller: str) -> None:
        if caller != self.governor:
            raise Unauthorized(f"{caller} is not the protocol governor")

    def _update(self, name: str, value: object) -> None:
        with self._lock:
            old = getattr(self, name)
            setattr(self, name, value)
        log.info("Parameter %s: %s -> %s", name, old, value)
        for listener in self._listeners:
            listener(name, old, value)


def _check_fee(fee_bps: int) -> None:
    if not 0 <= fee_bps <= MAX_FEE_BPS:
        raise InvalidParameter(f"fee_bps must be within [0, {MAX_FEE_BPS}], got {fee_bps}")


def _check_supply_bounds(min_supply: int, max_supply: int) -> None:
    if not 1 <= min_supply <= max_supply <= ABSOLUTE_MAX_SUPPLY:
        raise InvalidParameter(
            f"supply bounds must satisfy 1 <= min <= max <= {ABSOLUTE_MAX_SUPPLY}, "
            f"got min={min_supply} max={max_supply}"
        )


def _check_holder_cap(percent: int) -> None:
    if not 1 <= percent <= 100:
        raise InvalidParameter(f"holder cap must be within [1, 100] percent, got {percent}")


def _check_duration(days: int) -> None:
    if not 1 <= days <= ABSOLUTE_MAX_DURATION_DAYS:
        raise InvalidParameter(
            f"max duration must be within [1, {ABSOLUTE_MAX_DURATION_DAYS}] days, got {days}"
        )


def _check_address(name: str, address: str) -> None:
    if not address or not address.strip():
        raise InvalidParameter(f"{name} address must not be empty")
