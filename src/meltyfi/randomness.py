"""
Randomness providers.

Delivery is two-phase: ``request_randomness`` hands back a correlation id
straight away, and the value reaches the engine later through
``LotteryEngine.fulfill_randomness``. Providers that can produce the value
themselves answer ``poll``; the engine's ``poll_randomness`` drives that.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Optional

import base58

from .draw import seed_to_int
from .errors import RandomnessUnavailable
from .rpc import BeaconClient

log = logging.getLogger(__name__)


def make_request_id(lottery_id: int) -> str:
    digest = hashlib.sha256(f"{lottery_id}:".encode("utf-8") + secrets.token_bytes(16)).digest()
    return base58.b58encode(digest).decode("ascii")


class RandomnessProvider:
    name = "base"
    secure = True

    def request_randomness(self, lottery_id: int) -> str:
        return make_request_id(lottery_id)

    def poll(self, request_id: str, requested_at: int) -> Optional[int]:
        """Returns the random value once available, else None."""
        raise NotImplementedError


class ManualRandomness(RandomnessProvider):
    """Values are delivered by an operator; polling never produces one."""

    name = "manual"

    def poll(self, request_id: str, requested_at: int) -> Optional[int]:
        return None


class BeaconRandomness(RandomnessProvider):
    """
    Uses the first drand round published strictly after the request time,
    mixed with the request id so lotteries sharing a round get distinct values.
    Anyone can recompute the value from the public round.
    """

    name = "beacon"

    def __init__(self, client: BeaconClient) -> None:
        self.client = client

    def target_round(self, requested_at: int) -> int:
        return self.client.round_at(requested_at) + 1

    def poll(self, request_id: str, requested_at: int) -> Optional[int]:
        target = self.target_round(requested_at)
        data = self.client.get_round(target)
        if data is None:
            log.debug("Beacon round %d not published yet (request %s)", target, request_id)
            return None
        value, _ = seed_to_int(f"{data['randomness']}:{request_id}")
        log.info("Beacon round %d fulfills request %s", target, request_id)
        return value


class PseudoRandomness(RandomnessProvider):
    """
    Local entropy, delivered on first poll.

    NOT cryptographically secure in the verifiable sense: nobody outside this
    process can check the value. Only use it when that is acceptable.
    """

    name = "pseudo"
    secure = False

    def poll(self, request_id: str, requested_at: int) -> Optional[int]:
        log.warning(
            "Request %s fulfilled with pseudo-randomness (not cryptographically secure)",
            request_id,
        )
        value, _ = seed_to_int(f"{request_id}:{requested_at}:{secrets.token_hex(32)}")
        return value


def build_provider(name: str, beacon_url: Optional[str] = None) -> RandomnessProvider:
    if name == ManualRandomness.name:
        return ManualRandomness()
    if name == PseudoRandomness.name:
        return PseudoRandomness()
    if name == BeaconRandomness.name:
        if not beacon_url:
            raise RandomnessUnavailable("Beacon randomness needs a beacon URL.")
        return BeaconRandomness(BeaconClient(beacon_url))
    raise ValueError(f"Unknown randomness provider: {name}")
