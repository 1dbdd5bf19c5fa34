from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict

from .draw import build_ranges, compute_ticket, find_winner
from .engine import LotteryEngine
from .errors import LotteryNotFinalized

AUDIT_VERSION = "1.0.0"


def build_audit(engine: LotteryEngine, lottery_id: int) -> Dict[str, Any]:
    """Everything an observer needs to recompute the winner of a finalized lottery."""
    lottery = engine.get_lottery(lottery_id)
    if not lottery.finalized:
        raise LotteryNotFinalized(f"Lottery {lottery_id} has no winner to audit")

    ranges, total_tickets = build_ranges(engine.purchases(lottery_id))
    return {
        "metadata": {
            "tool": "meltyfi",
            "version": AUDIT_VERSION,
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "lottery_id": lottery.id,
            "owner": lottery.owner,
            "collateral_contract": lottery.collateral.contract,
            "collateral_token_id": lottery.collateral.token_id,
            "ticket_price": str(lottery.ticket_price),
            "randomness_provider": lottery.randomness_provider,
            "randomness_secure": lottery.randomness_secure,
            "request_id": lottery.randomness_request_id,
            "random_value": str(lottery.random_value),  # big int; store as string for safety
            "total_tickets": total_tickets,
            "winning_ticket": lottery.winning_ticket,
        },
        "winner": {
            "address": lottery.winner,
        },
        # Purchases in order with ranges so anyone can re-run.
        "all_purchases": [
            {
                "holder": r.holder,
                "amount": r.amount,
                "start_ticket": r.start_ticket,
                "end_ticket": r.end_ticket,
            }
            for r in ranges
        ],
    }


def write_audit(engine: LotteryEngine, lottery_id: int, out_path: str) -> Dict[str, Any]:
    audit = build_audit(engine, lottery_id)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(audit, f, indent=2)
    return audit


def verify_audit(audit_path: str) -> Dict[str, Any]:
    with open(audit_path, "r", encoding="utf-8") as f:
        audit = json.load(f)
    return verify_audit_data(audit)


def verify_audit_data(audit: Dict[str, Any]) -> Dict[str, Any]:
    meta = audit["metadata"]
    random_value = int(meta["random_value"])
    total_tickets = int(meta["total_tickets"])
    winning_ticket_expected = int(meta["winning_ticket"])

    # Recreate purchase history from the stored ranges (deterministic)
    purchases = [(p["holder"], int(p["amount"])) for p in audit["all_purchases"]]

    ranges, total2 = build_ranges(purchases)
    if total2 != total_tickets:
        raise RuntimeError(
            f"Total tickets mismatch: audit={total_tickets} recomputed={total2}"
        )
    for stored, rebuilt in zip(audit["all_purchases"], ranges):
        if (int(stored["start_ticket"]), int(stored["end_ticket"])) != (
            rebuilt.start_ticket,
            rebuilt.end_ticket,
        ):
            raise RuntimeError(f"Ticket range mismatch for purchase by {rebuilt.holder}")

    ticket = compute_ticket(random_value, total_tickets)
    if ticket != winning_ticket_expected:
        raise RuntimeError(
            f"Winning ticket mismatch: audit={winning_ticket_expected} recomputed={ticket}"
        )

    winner = find_winner(ranges, ticket)
    winner_expected = audit["winner"]["address"]
    if winner.holder != winner_expected:
        raise RuntimeError(
            f"Winner mismatch: audit={winner_expected} recomputed={winner.holder}"
        )

    return {
        "ok": True,
        "lottery_id": meta["lottery_id"],
        "winner": winner.holder,
        "winning_ticket": ticket,
        "total_tickets": total_tickets,
        "secure": bool(meta.get("randomness_secure", True)),
    }
