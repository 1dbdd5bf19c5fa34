from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

import httpx

from .errors import RandomnessUnavailable, RateUnavailable
from .project_constants import PRICE_DECIMALS

# drand answers these while a round is not published yet
_NOT_YET_STATUS = (404, 425)


class BeaconClient:
    """Client for a drand HTTP relay (``/info`` and ``/public/<round>``)."""

    def __init__(
        self,
        beacon_url: str,
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.beacon_url = beacon_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout_s, transport=transport)
        self._info: Optional[Dict[str, Any]] = None

    def close(self) -> None:
        self.client.close()

    def info(self) -> Dict[str, Any]:
        """Returns chain info (genesis_time, period, hash). Cached."""
        if self._info is None:
            data = self._get("/info")
            if data is None or "genesis_time" not in data or "period" not in data:
                raise RandomnessUnavailable("Beacon /info returned no genesis_time/period.")
            self._info = data
        return self._info

    def round_at(self, timestamp: int) -> int:
        """Round being published at ``timestamp`` (0 before genesis)."""
        info = self.info()
        genesis = int(info["genesis_time"])
        period = int(info["period"])
        if timestamp < genesis:
            return 0
        return (timestamp - genesis) // period + 1

    def get_round(self, round_number: int) -> Optional[Dict[str, Any]]:
        """Returns ``{"round", "randomness", ...}`` or None if not published yet."""
        data = self._get(f"/public/{round_number}")
        if data is None:
            return None
        if not isinstance(data.get("randomness"), str):
            raise RandomnessUnavailable(f"Beacon round {round_number} has no randomness.")
        return data

    def _get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.client.get(self.beacon_url + path)
        except httpx.HTTPError as e:
            raise RandomnessUnavailable(f"Beacon request failed: {e}")
        if resp.status_code in _NOT_YET_STATUS:
            return None
        try:
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RandomnessUnavailable(f"Beacon error: {e}")


class PriceFeedClient:
    """
    Reads the native asset's USD price from a JSON endpoint.

    ``field`` is a dotted path into the response, e.g. ``"price"`` or
    ``"ripple.usd"``. Prices are returned as integers with PRICE_DECIMALS.
    """

    def __init__(
        self,
        price_url: str,
        field: str = "price",
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.price_url = price_url
        self.field = field
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def native_usd_price(self) -> Tuple[int, int]:
        try:
            resp = self.client.get(self.price_url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RateUnavailable(f"Price feed error: {e}")

        value: Any = data
        for key in self.field.split("."):
            if not isinstance(value, dict) or key not in value:
                raise RateUnavailable(f"Price feed response has no field {self.field!r}")
            value = value[key]

        return parse_price(value), PRICE_DECIMALS


def parse_price(value: Any) -> int:
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise RateUnavailable(f"Price is not a number: {value!r}")
    if not price.is_finite() or price <= 0:
        raise RateUnavailable(f"Price must be positive, got {value!r}")
    return int(price.scaleb(PRICE_DECIMALS))


def load_randomness_from_feed_file(path: str, request_id: Optional[str] = None) -> str:
    """
    Supports:
    1) Raw randomness string in file (hex or any text)
    2) JSON object containing:
       - {"randomness": "..."}                       (drand round dump)
       - {"request_id": "...", "randomness": "..."}  (optionally verified against request_id)
       - {"requests": {"<request_id>": "..."}}       (many requests, needs request_id)
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read().strip()

    if raw and raw[0] != "{":
        return raw

    try:
        j = json.loads(raw)
    except ValueError as e:
        raise RandomnessUnavailable(f"Randomness feed file is not valid JSON or raw string: {e}")

    if isinstance(j, dict):
        if isinstance(j.get("randomness"), str):
            if request_id is not None and "request_id" in j and j["request_id"] != request_id:
                raise RandomnessUnavailable(
                    f"Feed request mismatch: file request={j['request_id']} vs expected={request_id}"
                )
            return j["randomness"]

        if request_id is not None and isinstance(j.get("requests"), dict):
            value = j["requests"].get(request_id)
            if isinstance(value, str):
                return value

    raise RandomnessUnavailable(
        "Could not find randomness in feed file. "
        "Expected raw string or JSON with randomness/(requests[request_id])."
    )
