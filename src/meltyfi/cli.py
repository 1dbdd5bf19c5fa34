from __future__ import annotations

import argparse
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterator, List

from .collateral import CollateralRef
from .config import RANDOMNESS_PROVIDERS, Settings
from .draw import seed_to_int
from .engine import LotteryEngine, LotteryState
from .errors import MeltyFiError
from .params import ProtocolParameters
from .project_constants import NATIVE_DECIMALS, ONE_NATIVE
from .randomness import RandomnessProvider, build_provider
from .rewards import FixedRate, RateSource, UsdValueRate
from .rpc import PriceFeedClient, load_randomness_from_feed_file
from .snapshot import load_state, lottery_to_dict, save_state
from .verify import verify_audit, write_audit


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def parse_native(text: str) -> int:
    """'0.1' -> 10**17 base units."""
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise SystemExit(f"Not a number: {text!r}")
    raw = value.scaleb(NATIVE_DECIMALS)
    if raw != raw.to_integral_value():
        raise SystemExit(f"{text} has more than {NATIVE_DECIMALS} decimals")
    return int(raw)


def to_native(raw_amount: int) -> str:
    return f"{Decimal(raw_amount) / ONE_NATIVE:f}"


def load_settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(
        state_file_override=args.state,
        beacon_url_override=args.beacon_url,
        randomness_override=args.randomness,
    )


def build_rate(settings: Settings, closers: List[Callable[[], None]]) -> RateSource:
    if settings.reward_mode == "usd":
        client = PriceFeedClient(settings.price_url, field=settings.price_field)
        closers.append(client.close)
        return UsdValueRate(client, reward_bps=settings.reward_bps)
    return FixedRate(settings.chips_per_native)


def build_randomness(settings: Settings, closers: List[Callable[[], None]]) -> RandomnessProvider:
    provider = build_provider(settings.randomness, beacon_url=settings.beacon_url)
    client = getattr(provider, "client", None)
    if client is not None:
        closers.append(client.close)
    return provider


@contextmanager
def engine_session(args: argparse.Namespace, save: bool = True) -> Iterator[LotteryEngine]:
    """Loads the state file, yields the engine, writes the state back."""
    settings = load_settings(args)
    if not os.path.exists(settings.state_file):
        raise SystemExit(f"No state at {settings.state_file}. Run `meltyfi init` first.")

    closers: List[Callable[[], None]] = []
    try:
        engine = load_state(
            settings.state_file,
            randomness=build_randomness(settings, closers),
            rate=build_rate(settings, closers),
        )
        try:
            yield engine
        finally:
            # Lazy expiry transitions commit even when the operation is rejected.
            if save:
                save_state(engine, settings.state_file)
    finally:
        for close in closers:
            close()


def print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    log = logging.getLogger("init")
    if os.path.exists(settings.state_file) and not args.force:
        raise SystemExit(f"{settings.state_file} exists. Use --force to overwrite.")

    params = ProtocolParameters(
        governor=args.governor or settings.governor,
        treasury=args.treasury or settings.treasury,
    )
    engine = LotteryEngine(params=params)
    save_state(engine, settings.state_file)
    log.info("Initialized %s", settings.state_file)
    print_json(params.as_dict())
    return 0


def cmd_mint_nft(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        ref = CollateralRef(args.contract, args.token_id)
        engine.nfts.mint(ref, args.to)
    print(f"Minted {ref} to {args.to}")
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        lottery_id = engine.create_lottery(
            owner=args.owner,
            collateral=CollateralRef(args.contract, args.token_id),
            ticket_price=parse_native(args.price),
            max_supply=args.supply,
            duration_days=args.days,
            display_name=args.name,
            display_image=args.image,
        )
        lottery = engine.get_lottery(lottery_id)

    print("========================================")
    print("🍫 LOTTERY CREATED")
    print("========================================")
    print(f"Lottery id    : {lottery_id}")
    print(f"Collateral    : {lottery.collateral}")
    print(f"WonkaBars     : {lottery.max_supply} x {to_native(lottery.ticket_price)}")
    print(f"Holder cap    : {lottery.holder_cap}")
    print(f"Expires (UTC) : {datetime.fromtimestamp(lottery.expiration, timezone.utc).isoformat()}")
    return 0


def cmd_buy(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        lottery = engine.get_lottery(args.lottery)
        payment = (
            parse_native(args.payment)
            if args.payment is not None
            else args.amount * lottery.ticket_price
        )
        receipt = engine.buy_tickets(args.lottery, args.buyer, args.amount, payment)

    print(f"Bought        : {receipt.amount} WonkaBars for {to_native(receipt.payment)}")
    print(f"Owner share   : {to_native(receipt.owner_share)}")
    print(f"Protocol fee  : {to_native(receipt.fee)}")
    print(f"ChocoChips    : {to_native(receipt.reward_minted)}")
    if receipt.concluded:
        print("Sold out -> lottery concluded, randomness requested.")
    return 0


def cmd_repay(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        lottery = engine.get_lottery(args.lottery)
        payment = (
            parse_native(args.payment) if args.payment is not None else lottery.total_raised
        )
        engine.repay(args.lottery, args.caller, payment)
    print(f"Lottery {args.lottery} cancelled; repaid {to_native(payment)}.")
    return 0


def cmd_settle(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        if args.lottery is not None:
            state = engine.settle(args.lottery)
            print(f"Lottery {args.lottery}: {state.name}")
        else:
            moved = engine.settle_all()
            print(f"Settled {len(moved)} expired lotteries: {moved}")
    return 0


def cmd_draw(args: argparse.Namespace) -> int:
    log = logging.getLogger("draw")
    with engine_session(args) as engine:
        if args.value is None and args.feed_file is None:
            finalized = engine.poll_randomness()
            log.info("Provider %s finalized %d lotteries", engine.randomness.name, len(finalized))
            for lottery_id in finalized:
                print(f"Lottery {lottery_id}: winner {engine.get_lottery(lottery_id).winner}")
            return 0

        if args.lottery is None:
            raise SystemExit("--lottery is required with --value/--feed-file.")
        lottery = engine.get_lottery(args.lottery)
        request_id = lottery.randomness_request_id
        if request_id is None:
            raise SystemExit(f"Lottery {args.lottery} has no outstanding randomness request.")

        if args.value is not None:
            try:
                value = int(args.value, 0)
            except ValueError:
                raise SystemExit(f"Not an integer: {args.value!r}")
            value_source = "cli"
        else:
            seed = load_randomness_from_feed_file(args.feed_file, request_id=request_id)
            value, seed_hash_hex = seed_to_int(seed)
            value_source = f"file:{args.feed_file}"
            log.info("Seed SHA-256    : %s", seed_hash_hex)

        log.info("Request id     : %s", request_id)
        log.info("Value source   : %s", value_source)
        winner = engine.fulfill_randomness(request_id, value)
        lottery = engine.get_lottery(args.lottery)

    print("========================================")
    print("🏆 WINNER DRAWN")
    print("========================================")
    print(f"Lottery       : {lottery.id}")
    print(f"Tickets sold  : {lottery.sold}")
    print(f"Winning ticket: {lottery.winning_ticket}")
    print(f"Winner        : {winner}")
    return 0


def cmd_retry(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        request_id = engine.retry_randomness(args.caller, args.lottery)
    print(f"Lottery {args.lottery}: new randomness request {request_id}")
    return 0


def cmd_pending(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        pending = engine.pending_randomness()
        now = engine.clock()
    for p in pending:
        waited = now - p.requested_at
        print(f"Lottery {p.lottery_id}: request={p.request_id} pending {waited}s error={p.error}")
    if not pending:
        print("No lottery is awaiting randomness.")
    return 0


def cmd_claim(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        engine.claim_collateral(args.lottery, args.caller)
        lottery = engine.get_lottery(args.lottery)
    print(f"{args.caller} claimed {lottery.collateral}")
    return 0


def cmd_melt(args: argparse.Namespace) -> int:
    with engine_session(args) as engine:
        result = engine.melt_tickets(args.lottery, args.holder)
    print(f"Melted        : {result.amount} WonkaBars")
    print(f"Refund        : {to_native(result.refund)}")
    print(f"ChocoChips    : {to_native(result.reward_minted)}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        lottery = engine.get_lottery(args.lottery)
        holders = engine.ledger.holders(args.lottery)
        data = lottery_to_dict(lottery)
        data["purchases"] = [[h, a] for h, a in engine.purchases(args.lottery)]
        data["holders"] = [
            {
                "address": holder,
                "balance": balance,
                "win_probability_bps": engine.calculate_win_probability(holder, args.lottery),
            }
            for holder, balance in holders
        ]
    print_json(data)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        if args.holder:
            print_json(asdict(engine.get_holder_lotteries(args.holder)))
            return 0
        if args.active:
            ids = set(engine.get_active_lotteries())
            lotteries = [engine.get_lottery(lottery_id) for lottery_id in sorted(ids)]
        else:
            state = LotteryState[args.state.upper()] if args.state else None
            lotteries = engine.get_lotteries(state)
    for lottery in lotteries:
        print(
            f"#{lottery.id:<4} {lottery.state.name:<9} {lottery.sold:>4}/{lottery.max_supply:<4} "
            f"@ {to_native(lottery.ticket_price):<10} {lottery.collateral} owner={lottery.owner}"
        )
    return 0


def cmd_balance(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        chips = engine.rewards.token.balance_of(args.holder)
        print(f"ChocoChips    : {to_native(chips)}")
        print(f"Paid out      : {to_native(engine.vault.paid_to(args.holder))}")
        if args.lottery is not None:
            tickets = engine.get_holder_balance(args.lottery, args.holder)
            print(f"WonkaBars #{args.lottery} : {tickets}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        print_json(asdict(engine.get_protocol_stats()))
    return 0


def cmd_params(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        print_json(engine.params.as_dict())
    return 0


def cmd_set_param(args: argparse.Namespace) -> int:
    requested = {
        "fee_bps": args.fee_bps,
        "min_supply": args.min_supply,
        "max_supply": args.max_supply,
        "holder_cap_percent": args.holder_cap,
        "max_duration_days": args.max_days,
        "treasury": args.treasury,
        "governor": args.governor,
    }
    changes = {name: value for name, value in requested.items() if value is not None}
    with engine_session(args) as engine:
        changed = engine.params.update(args.caller, **changes)
        logging.getLogger("set-param").info("Updated: %s", ", ".join(changed) or "nothing")
        print_json(engine.params.as_dict())
    return 0


def cmd_audit(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        audit = write_audit(engine, args.lottery, args.out)
    if not audit["metadata"]["randomness_secure"]:
        print("⚠️  Drawn with pseudo-randomness (not cryptographically secure).")
    print(f"🧾 Wrote audit: {args.out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_audit(args.audit)
    print("✅ AUDIT VERIFIED")
    print(f"Lottery       : {result['lottery_id']}")
    print(f"Winner        : {result['winner']}")
    print(f"Winning Ticket: {result['winning_ticket']}")
    print(f"Total Tickets : {result['total_tickets']}")
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    with engine_session(args, save=False) as engine:
        for event in engine.events.since(args.since):
            print(json.dumps({"type": event.name, **asdict(event)}, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="meltyfi",
        description="MeltyFi NFT-collateralized lottery lending.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--state", default=None, help="State JSON path (else MELTYFI_STATE_FILE).")
    p.add_argument("--beacon-url", default=None, help="Override drand beacon URL.")
    p.add_argument(
        "--randomness",
        default=None,
        choices=RANDOMNESS_PROVIDERS,
        help="Randomness provider (else MELTYFI_RANDOMNESS, default manual).",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("init", help="Create a fresh state file.")
    i.add_argument("--governor", default=None)
    i.add_argument("--treasury", default=None)
    i.add_argument("--force", action="store_true")
    i.set_defaults(func=cmd_init)

    m = sub.add_parser("mint-nft", help="Mint a test NFT (faucet).")
    m.add_argument("--contract", required=True)
    m.add_argument("--token-id", required=True, type=int)
    m.add_argument("--to", required=True)
    m.set_defaults(func=cmd_mint_nft)

    c = sub.add_parser("create", help="Lock an NFT and open a lottery.")
    c.add_argument("--owner", required=True)
    c.add_argument("--contract", required=True)
    c.add_argument("--token-id", required=True, type=int)
    c.add_argument("--price", required=True, help="WonkaBar price in native units (e.g. 0.1).")
    c.add_argument("--supply", required=True, type=int)
    c.add_argument("--days", required=True, type=int)
    c.add_argument("--name", default="")
    c.add_argument("--image", default="")
    c.set_defaults(func=cmd_create)

    b = sub.add_parser("buy", help="Buy WonkaBars.")
    b.add_argument("--lottery", required=True, type=int)
    b.add_argument("--buyer", required=True)
    b.add_argument("--amount", required=True, type=int)
    b.add_argument("--payment", default=None, help="Native units (default: exact cost).")
    b.set_defaults(func=cmd_buy)

    r = sub.add_parser("repay", help="Owner repays everything raised and cancels.")
    r.add_argument("--lottery", required=True, type=int)
    r.add_argument("--caller", required=True)
    r.add_argument("--payment", default=None, help="Native units (default: total raised).")
    r.set_defaults(func=cmd_repay)

    s = sub.add_parser("settle", help="Apply expiry transitions.")
    s.add_argument("--lottery", default=None, type=int)
    s.set_defaults(func=cmd_settle)

    d = sub.add_parser("draw", help="Deliver randomness (or poll the provider).")
    d.add_argument("--lottery", default=None, type=int)
    d.add_argument("--value", default=None, help="Random integer (decimal or 0x hex).")
    d.add_argument(
        "--feed-file",
        default=None,
        help=(
            "Path to a randomness feed file. "
            "Can be raw string or JSON containing randomness."
        ),
    )
    d.set_defaults(func=cmd_draw)

    rt = sub.add_parser("retry", help="Governor re-requests randomness for a stuck lottery.")
    rt.add_argument("--lottery", required=True, type=int)
    rt.add_argument("--caller", required=True)
    rt.set_defaults(func=cmd_retry)

    pd = sub.add_parser("pending", help="List lotteries awaiting randomness.")
    pd.set_defaults(func=cmd_pending)

    cl = sub.add_parser("claim", help="Winner claims the NFT.")
    cl.add_argument("--lottery", required=True, type=int)
    cl.add_argument("--caller", required=True)
    cl.set_defaults(func=cmd_claim)

    ml = sub.add_parser("melt", help="Burn WonkaBars for refund and/or ChocoChips.")
    ml.add_argument("--lottery", required=True, type=int)
    ml.add_argument("--holder", required=True)
    ml.set_defaults(func=cmd_melt)

    sh = sub.add_parser("show", help="Show one lottery.")
    sh.add_argument("--lottery", required=True, type=int)
    sh.set_defaults(func=cmd_show)

    ls = sub.add_parser("list", help="List lotteries.")
    ls.add_argument("--state", default=None, choices=[state.name.lower() for state in LotteryState])
    ls.add_argument("--active", action="store_true", help="Only lotteries still selling.")
    ls.add_argument("--holder", default=None, help="Created/participated ids for an address.")
    ls.set_defaults(func=cmd_list)

    bl = sub.add_parser("balance", help="Balances of an address.")
    bl.add_argument("--holder", required=True)
    bl.add_argument("--lottery", default=None, type=int)
    bl.set_defaults(func=cmd_balance)

    st = sub.add_parser("stats", help="Protocol statistics.")
    st.set_defaults(func=cmd_stats)

    pr = sub.add_parser("params", help="Show protocol parameters.")
    pr.set_defaults(func=cmd_params)

    sp = sub.add_parser("set-param", help="Governor updates protocol parameters.")
    sp.add_argument("--caller", required=True)
    sp.add_argument("--fee-bps", default=None, type=int)
    sp.add_argument("--min-supply", default=None, type=int)
    sp.add_argument("--max-supply", default=None, type=int)
    sp.add_argument("--holder-cap", default=None, type=int)
    sp.add_argument("--max-days", default=None, type=int)
    sp.add_argument("--treasury", default=None)
    sp.add_argument("--governor", default=None)
    sp.set_defaults(func=cmd_set_param)

    a = sub.add_parser("audit", help="Write the draw audit JSON of a finalized lottery.")
    a.add_argument("--lottery", required=True, type=int)
    a.add_argument("--out", default="audit.json", help="Audit output JSON path.")
    a.set_defaults(func=cmd_audit)

    v = sub.add_parser("verify", help="Verify an existing audit.json deterministically.")
    v.add_argument("--audit", required=True, help="Path to audit.json.")
    v.set_defaults(func=cmd_verify)

    e = sub.add_parser("events", help="Print the event log.")
    e.add_argument("--since", default=0, type=int)
    e.set_defaults(func=cmd_events)

    return p


def main(argv: List[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except MeltyFiError as e:
        raise SystemExit(f"error: {type(e).__name__}: {e}")
    raise SystemExit(code)
