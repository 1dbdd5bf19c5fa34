from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .project_constants import (
    DEFAULT_BEACON_URL,
    DEFAULT_CHIPS_PER_NATIVE,
    DEFAULT_GOVERNOR,
    DEFAULT_REWARD_BPS,
    DEFAULT_STATE_FILE,
    DEFAULT_TREASURY,
)

REWARD_MODES = ("fixed", "usd")
RANDOMNESS_PROVIDERS = ("manual", "beacon", "pseudo")


@dataclass(frozen=True)
class Settings:
    state_file: str
    governor: str
    treasury: str
    reward_mode: str
    chips_per_native: int
    reward_bps: int
    price_url: str | None
    price_field: str
    beacon_url: str
    randomness: str

    @staticmethod
    def from_env(
        state_file_override: str | None = None,
        beacon_url_override: str | None = None,
        randomness_override: str | None = None,
    ) -> "Settings":
        load_dotenv()

        reward_mode = os.getenv("MELTYFI_REWARD_MODE", "fixed").strip().lower()
        if reward_mode not in REWARD_MODES:
            raise RuntimeError(
                f"MELTYFI_REWARD_MODE must be one of {REWARD_MODES}, got {reward_mode!r}"
            )

        randomness = (
            randomness_override or os.getenv("MELTYFI_RANDOMNESS", "manual")
        ).strip().lower()
        if randomness not in RANDOMNESS_PROVIDERS:
            raise RuntimeError(
                f"MELTYFI_RANDOMNESS must be one of {RANDOMNESS_PROVIDERS}, got {randomness!r}"
            )

        price_url = os.getenv("MELTYFI_PRICE_URL", "").strip() or None
        # USD rewards are meaningless without a price source.
        if reward_mode == "usd" and not price_url:
            raise RuntimeError(
                "MELTYFI_REWARD_MODE=usd needs MELTYFI_PRICE_URL. Put it in .env or export it."
            )

        return Settings(
            state_file=state_file_override
            or os.getenv("MELTYFI_STATE_FILE", "").strip()
            or DEFAULT_STATE_FILE,
            governor=os.getenv("MELTYFI_GOVERNOR", "").strip() or DEFAULT_GOVERNOR,
            treasury=os.getenv("MELTYFI_TREASURY", "").strip() or DEFAULT_TREASURY,
            reward_mode=reward_mode,
            chips_per_native=_int_env("MELTYFI_CHIPS_PER_NATIVE", DEFAULT_CHIPS_PER_NATIVE),
            reward_bps=_int_env("MELTYFI_REWARD_BPS", DEFAULT_REWARD_BPS),
            price_url=price_url,
            price_field=os.getenv("MELTYFI_PRICE_FIELD", "price").strip() or "price",
            beacon_url=beacon_url_override
            or os.getenv("MELTYFI_BEACON_URL", "").strip()
            or DEFAULT_BEACON_URL,
            randomness=randomness,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
