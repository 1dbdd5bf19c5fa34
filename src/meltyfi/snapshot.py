from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Optional

from .collateral import CollateralRef, NftRegistry
from .engine import Lottery, LotteryEngine, LotteryState
from .events import EventLog
from .ledger import TicketLedger, Vault
from .params import ProtocolParameters
from .randomness import RandomnessProvider
from .rewards import ChocoChip, FixedRate, RateSource, RewardAccrual

log = logging.getLogger(__name__)

STATE_VERSION = 1


def lottery_to_dict(lottery: Lottery) -> Dict[str, Any]:
    return {
        "id": lottery.id,
        "owner": lottery.owner,
        "collateral_contract": lottery.collateral.contract,
        "collateral_token_id": lottery.collateral.token_id,
        "ticket_price": str(lottery.ticket_price),
        "max_supply": lottery.max_supply,
        "holder_cap": lottery.holder_cap,
        "created_at": lottery.created_at,
        "expiration": lottery.expiration,
        "display_name": lottery.display_name,
        "display_image": lottery.display_image,
        "sold": lottery.sold,
        "total_raised": str(lottery.total_raised),
        "state": lottery.state.name,
        "winner": lottery.winner,
        "randomness_request_id": lottery.randomness_request_id,
        "randomness_requested_at": lottery.randomness_requested_at,
        "randomness_provider": lottery.randomness_provider,
        "randomness_secure": lottery.randomness_secure,
        "randomness_error": lottery.randomness_error,
        # big ints; store as strings for safety
        "random_value": None if lottery.random_value is None else str(lottery.random_value),
        "winning_ticket": lottery.winning_ticket,
        "claimed": lottery.claimed,
    }


def lottery_from_dict(data: Dict[str, Any]) -> Lottery:
    random_value = data.get("random_value")
    return Lottery(
        id=int(data["id"]),
        owner=data["owner"],
        collateral=CollateralRef(data["collateral_contract"], int(data["collateral_token_id"])),
        ticket_price=int(data["ticket_price"]),
        max_supply=int(data["max_supply"]),
        holder_cap=int(data["holder_cap"]),
        created_at=int(data["created_at"]),
        expiration=int(data["expiration"]),
        display_name=data.get("display_name", ""),
        display_image=data.get("display_image", ""),
        sold=int(data["sold"]),
        total_raised=int(data["total_raised"]),
        state=LotteryState[data["state"]],
        winner=data.get("winner"),
        randomness_request_id=data.get("randomness_request_id"),
        randomness_requested_at=data.get("randomness_requested_at"),
        randomness_provider=data.get("randomness_provider"),
        randomness_secure=bool(data.get("randomness_secure", True)),
        randomness_error=data.get("randomness_error"),
        random_value=None if random_value is None else int(random_value),
        winning_ticket=data.get("winning_ticket"),
        claimed=bool(data.get("claimed", False)),
    )


def dump_state(engine: LotteryEngine) -> Dict[str, Any]:
    return {
        "version": STATE_VERSION,
        "params": engine.params.as_dict(),
        "lotteries": [lottery_to_dict(lottery) for lottery in engine.get_lotteries()],
        "purchases": {
            str(lottery_id): [[holder, amount] for holder, amount in items]
            for lottery_id, items in engine.all_purchases().items()
        },
        "tickets": engine.ledger.dump(),
        "vault": engine.vault.dump(),
        "choco_chip": engine.rewards.token.dump(),
        "nfts": [
            {"contract": ref.contract, "token_id": ref.token_id, "owner": owner}
            for ref, owner in engine.nfts.items()
        ],
        "events": engine.events.dump(),
    }


def load_engine(
    data: Dict[str, Any],
    randomness: Optional[RandomnessProvider] = None,
    rate: Optional[RateSource] = None,
    clock: Optional[Callable[[], int]] = None,
) -> LotteryEngine:
    version = data.get("version")
    if version != STATE_VERSION:
        raise RuntimeError(f"Unsupported state version {version!r} (expected {STATE_VERSION}).")

    nfts = NftRegistry()
    for item in data.get("nfts", []):
        nfts.mint(CollateralRef(item["contract"], int(item["token_id"])), item["owner"])

    engine = LotteryEngine(
        params=ProtocolParameters(**data["params"]),
        nfts=nfts,
        ledger=TicketLedger.load(data.get("tickets", {})),
        vault=Vault.load(data.get("vault", {})),
        rewards=RewardAccrual(ChocoChip.load(data.get("choco_chip", {})), rate or FixedRate()),
        randomness=randomness,
        events=EventLog.load(data.get("events", [])),
        clock=clock,
    )
    engine.load_records(
        [lottery_from_dict(item) for item in data.get("lotteries", [])],
        {
            int(lottery_id): [(holder, int(amount)) for holder, amount in items]
            for lottery_id, items in data.get("purchases", {}).items()
        },
    )
    return engine


def save_state(engine: LotteryEngine, path: str) -> None:
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(dump_state(engine), f, indent=2)
    os.replace(tmp_path, path)
    log.debug("State written to %s", path)


def load_state(path: str, **kwargs) -> LotteryEngine:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return load_engine(data, **kwargs)
