from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Dict, Optional, Tuple

from .errors import RateUnavailable
from .project_constants import (
    BASIS_POINTS,
    CHOCO_CHIP_MAX_SUPPLY,
    CHOCO_DECIMALS,
    DEFAULT_CHIPS_PER_NATIVE,
    DEFAULT_REWARD_BPS,
    NATIVE_DECIMALS,
    PRICE_DECIMALS,
)

log = logging.getLogger(__name__)


class ChocoChip:
    """Loyalty token. Total supply never exceeds ``max_supply``."""

    def __init__(self, max_supply: int = CHOCO_CHIP_MAX_SUPPLY) -> None:
        self.max_supply = max_supply
        self.total_supply = 0
        self._balances: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self._balances.get(holder, 0)

    def mint(self, to: str, amount: int) -> int:
        """Mints up to ``amount``; clamps at the supply ceiling. Returns what was minted."""
        if amount <= 0:
            return 0
        with self._lock:
            headroom = self.max_supply - self.total_supply
            minted = min(amount, headroom)
            if minted > 0:
                self._balances[to] += minted
                self.total_supply += minted
        if minted < amount:
            log.warning(
                "ChocoChip cap reached: minted %d of %d requested for %s", minted, amount, to
            )
        return minted

    def dump(self) -> Dict[str, object]:
        with self._lock:
            return {
                "max_supply": self.max_supply,
                "total_supply": self.total_supply,
                "balances": dict(self._balances),
            }

    @classmethod
    def load(cls, data: Dict[str, object]) -> "ChocoChip":
        token = cls(max_supply=int(data.get("max_supply", CHOCO_CHIP_MAX_SUPPLY)))
        for holder, amount in dict(data.get("balances", {})).items():
            token._balances[holder] = int(amount)
        token.total_supply = sum(token._balances.values())
        return token


class RateSource:
    """Converts a native value (base units) into ChocoChip base units."""

    def reward_for(self, value: int) -> int:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


class FixedRate(RateSource):
    def __init__(self, chips_per_native: int = DEFAULT_CHIPS_PER_NATIVE) -> None:
        self.chips_per_native = chips_per_native

    def reward_for(self, value: int) -> int:
        return value * self.chips_per_native * 10**CHOCO_DECIMALS // 10**NATIVE_DECIMALS

    def describe(self) -> str:
        return f"fixed:{self.chips_per_native}/native"


class StaticPrice:
    """Price source returning a constant (price, decimals)."""

    def __init__(self, price: int, decimals: int = PRICE_DECIMALS) -> None:
        self.price = price
        self.decimals = decimals

    def native_usd_price(self) -> Tuple[int, int]:
        return self.price, self.decimals


class UsdValueRate(RateSource):
    """
    reward_bps of the USD value transacted, one ChocoChip per dollar.

    ``price_source`` is anything with ``native_usd_price() -> (price, decimals)``,
    e.g. StaticPrice or rpc.PriceFeedClient.
    """

    def __init__(self, price_source, reward_bps: int = DEFAULT_REWARD_BPS) -> None:
        self.price_source = price_source
        self.reward_bps = reward_bps

    def reward_for(self, value: int) -> int:
        price, decimals = self.price_source.native_usd_price()
        if price <= 0:
            raise RateUnavailable(f"Price source returned non-positive price {price}")
        usd_value = value * price * 10**CHOCO_DECIMALS // (10**decimals * 10**NATIVE_DECIMALS)
        return usd_value * self.reward_bps // BASIS_POINTS

    def describe(self) -> str:
        return f"usd:{self.reward_bps}bps"


class RewardAccrual:
    def __init__(self, token: ChocoChip, rate: RateSource) -> None:
        self.token = token
        self.rate = rate

    def quote(self, value: int, rate: Optional[RateSource] = None) -> int:
        source = rate or self.rate
        try:
            return source.reward_for(value)
        except RateUnavailable:
            raise
        except Exception as e:
            raise RateUnavailable(f"Reward rate source {source.describe()} failed: {e}") from e

    def accrue(self, recipient: str, value: int, rate: Optional[RateSource] = None) -> int:
        return self.token.mint(recipient, self.quote(value, rate))
