from __future__ import annotations

import pytest

from meltyfi.collateral import CollateralRef, NftRegistry
from meltyfi.engine import LotteryEngine
from meltyfi.params import ProtocolParameters

ONE = 10**18
PRICE = ONE // 10  # 0.1 native
GOVERNOR = "gov"
TREASURY = "treasury"
NFT = CollateralRef("0xNFT", 1)


class FakeClock:
    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def params() -> ProtocolParameters:
    return ProtocolParameters(governor=GOVERNOR, treasury=TREASURY)


@pytest.fixture
def nfts() -> NftRegistry:
    registry = NftRegistry()
    registry.mint(NFT, "alice")
    registry.mint(CollateralRef("0xNFT", 2), "alice")
    registry.mint(CollateralRef("0xOTHER", 7), "bob")
    return registry


@pytest.fixture
def engine(params, nfts, clock) -> LotteryEngine:
    return LotteryEngine(params=params, nfts=nfts, clock=clock)


@pytest.fixture
def lottery_id(engine) -> int:
    """alice's NFT #1, 10 WonkaBars at 0.1, 7 days, default 25% cap (2 per holder)."""
    return engine.create_lottery("alice", NFT, PRICE, 10, 7, "Test NFT", "https://test.com/nft.png")


def open_caps(engine: LotteryEngine, percent: int = 100) -> None:
    engine.params.set_holder_cap_percent(GOVERNOR, percent)


MELTYFI_ENV_VARS = [
    "MELTYFI_STATE_FILE",
    "MELTYFI_GOVERNOR",
    "MELTYFI_TREASURY",
    "MELTYFI_REWARD_MODE",
    "MELTYFI_CHIPS_PER_NATIVE",
    "MELTYFI_REWARD_BPS",
    "MELTYFI_PRICE_URL",
    "MELTYFI_PRICE_FIELD",
    "MELTYFI_BEACON_URL",
    "MELTYFI_RANDOMNESS",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Runs in an empty directory with no MELTYFI_* variables set."""
    monkeypatch.chdir(tmp_path)
    for name in MELTYFI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path
