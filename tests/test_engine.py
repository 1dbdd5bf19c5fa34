from __future__ import annotations

import pytest

from conftest import GOVERNOR, NFT, ONE, PRICE, TREASURY, open_caps
from meltyfi.collateral import CollateralRef
from meltyfi.engine import LotteryState
from meltyfi.errors import (
    AlreadyClaimed,
    ExceedsHolderCap,
    ExceedsMaxSupply,
    ExcessPayment,
    IncorrectRepaymentAmount,
    InsufficientPayment,
    InvalidAmount,
    InvalidDuration,
    InvalidPrice,
    InvalidSupply,
    LotteryNotActive,
    LotteryNotFinalized,
    LotteryNotFound,
    LotteryNotMeltable,
    NoTicketsHeld,
    NotCollateralOwner,
    NotLotteryOwner,
    NotWinner,
)
from meltyfi.events import (
    LoanRepaid,
    LotteryCreated,
    LotteryTrashed,
    NFTClaimed,
    RandomnessRequested,
    TicketsMelted,
    TicketsPurchased,
)
from meltyfi.project_constants import PROTOCOL_CUSTODY, SECONDS_PER_DAY

WEEK = 7 * SECONDS_PER_DAY


# ---------------------------------------------------------------- creation


def test_create_locks_collateral_and_emits_event(engine, clock, lottery_id):
    assert lottery_id == 0
    lottery = engine.get_lottery(lottery_id)
    assert lottery.owner == "alice"
    assert lottery.state == LotteryState.ACTIVE
    assert lottery.sold == 0 and lottery.total_raised == 0
    assert lottery.expiration == clock.now + WEEK
    assert lottery.holder_cap == 2
    assert engine.nfts.owner_of(NFT) == PROTOCOL_CUSTODY

    (event,) = engine.events.of_type(LotteryCreated)
    assert event.lottery_id == 0
    assert event.owner == "alice"
    assert event.ticket_price == PRICE
    assert event.expiration == clock.now + WEEK


def test_ids_are_sequential(engine, lottery_id):
    second = engine.create_lottery("alice", CollateralRef("0xNFT", 2), PRICE, 10, 7)
    third = engine.create_lottery("bob", CollateralRef("0xOTHER", 7), PRICE, 10, 7)
    assert (lottery_id, second, third) == (0, 1, 2)


def test_create_rejects_non_owner(engine):
    with pytest.raises(NotCollateralOwner):
        engine.create_lottery("mallory", NFT, PRICE, 10, 7)
    assert engine.nfts.owner_of(NFT) == "alice"


@pytest.mark.parametrize("supply", [2, 4, 101, 150, 10.5, "10", True])
def test_create_rejects_bad_supply(engine, supply):
    with pytest.raises(InvalidSupply):
        engine.create_lottery("alice", NFT, PRICE, supply, 7)


@pytest.mark.parametrize("price", [0, -1, 1.5, True])
def test_create_rejects_bad_price(engine, price):
    with pytest.raises(InvalidPrice):
        engine.create_lottery("alice", NFT, price, 10, 7)


@pytest.mark.parametrize("days", [0, 91, 7.5, True])
def test_create_rejects_bad_duration(engine, days):
    with pytest.raises(InvalidDuration):
        engine.create_lottery("alice", NFT, PRICE, 10, days)


def test_rejected_create_leaves_no_trace(engine):
    with pytest.raises(InvalidSupply):
        engine.create_lottery("alice", NFT, PRICE, 1000, 7)
    assert engine.get_protocol_stats().total_lotteries == 0
    assert len(engine.events) == 0
    assert engine.nfts.owner_of(NFT) == "alice"


# -------------------------------------------------------------------- buying


def test_buy_credits_tickets_and_rewards(engine, lottery_id):
    receipt = engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)

    assert engine.get_holder_balance(lottery_id, "p1") == 2
    # 1000 CHOC per 1 native
    assert receipt.reward_minted == 2 * PRICE * 1000
    assert engine.rewards.token.balance_of("p1") == 2 * PRICE * 1000
    assert not receipt.concluded


def test_buy_splits_payment_95_5(engine, lottery_id):
    payment = 2 * PRICE
    receipt = engine.buy_tickets(lottery_id, "p1", 2, payment)

    assert receipt.fee == payment * 500 // 10_000
    assert receipt.owner_share == payment * 9_500 // 10_000
    assert engine.vault.paid_to("alice") == receipt.owner_share
    assert engine.vault.paid_to(TREASURY) == receipt.fee
    assert engine.vault.balance == 0

    (event,) = engine.events.of_type(TicketsPurchased)
    assert (event.buyer, event.amount, event.payment, event.fee) == ("p1", 2, payment, receipt.fee)


def test_buy_rejects_wrong_payment(engine, lottery_id):
    with pytest.raises(InsufficientPayment):
        engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE - 1)
    with pytest.raises(ExcessPayment):
        engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE + 1)
    assert engine.get_lottery(lottery_id).sold == 0


@pytest.mark.parametrize("amount", [0, -3])
def test_buy_rejects_non_positive_amount(engine, lottery_id, amount):
    with pytest.raises(InvalidAmount):
        engine.buy_tickets(lottery_id, "p1", amount, 0)


def test_buy_enforces_holder_cap(engine, lottery_id):
    # floor(10 * 25 / 100) == 2
    with pytest.raises(ExceedsHolderCap):
        engine.buy_tickets(lottery_id, "p1", 3, 3 * PRICE)

    engine.buy_tickets(lottery_id, "p1", 1, PRICE)
    engine.buy_tickets(lottery_id, "p1", 1, PRICE)
    with pytest.raises(ExceedsHolderCap):
        engine.buy_tickets(lottery_id, "p1", 1, PRICE)

    lottery = engine.get_lottery(lottery_id)
    assert engine.get_holder_balance(lottery_id, "p1") == 2
    assert lottery.sold == 2
    assert lottery.total_raised == 2 * PRICE


def test_scenario_d_oversell_rejected_and_sold_unchanged(engine):
    open_caps(engine)
    lottery_id = engine.create_lottery("alice", NFT, PRICE, 10, 7)
    engine.buy_tickets(lottery_id, "p1", 8, 8 * PRICE)

    with pytest.raises(ExceedsMaxSupply):
        engine.buy_tickets(lottery_id, "p2", 3, 3 * PRICE)
    assert engine.get_lottery(lottery_id).sold == 8


def test_supply_and_accounting_invariants(engine):
    open_caps(engine, 50)
    price = 7 * ONE // 3  # odd price: no rounding drift allowed
    lottery_id = engine.create_lottery("alice", NFT, price, 40, 30)

    bought = 0
    for buyer, amount in [("a", 3), ("b", 1), ("a", 17), ("c", 9), ("b", 4)]:
        engine.buy_tickets(lottery_id, buyer, amount, amount * price)
        bought += amount
        lottery = engine.get_lottery(lottery_id)
        assert lottery.sold == bought <= lottery.max_supply
        assert lottery.total_raised == lottery.sold * price
        assert engine.ledger.supply(lottery_id) == lottery.sold


def test_unknown_lottery(engine):
    with pytest.raises(LotteryNotFound):
        engine.buy_tickets(42, "p1", 1, PRICE)
    with pytest.raises(LotteryNotFound):
        engine.get_lottery(42)


# ---------------------------------------------------------------- scenarios


def test_scenario_a_sell_out_concludes_and_draws_a_holder(engine):
    open_caps(engine)
    lottery_id = engine.create_lottery("alice", NFT, ONE, 10, 7)

    engine.buy_tickets(lottery_id, "X", 3, 3 * ONE)
    receipt = engine.buy_tickets(lottery_id, "Y", 7, 7 * ONE)

    lottery = engine.get_lottery(lottery_id)
    assert receipt.concluded
    assert lottery.state == LotteryState.CONCLUDED
    assert lottery.awaiting_randomness
    assert lottery.randomness_request_id is not None
    assert lottery_id not in engine.get_active_lotteries()

    winner = engine.fulfill_randomness(lottery.randomness_request_id, 123_456_789)
    assert winner in ("X", "Y")
    lottery = engine.get_lottery(lottery_id)
    assert lottery.winner == winner
    assert lottery.winning_ticket == 123_456_789 % 10
    assert engine.get_holder_balance(lottery_id, winner) >= 1


def test_scenario_b_unsold_lottery_is_trashed(engine, clock, lottery_id):
    clock.advance(WEEK)

    assert engine.settle(lottery_id) == LotteryState.TRASHED
    assert engine.nfts.owner_of(NFT) == "alice"
    assert engine.vault.paid_to("alice") == 0
    assert engine.events.of_type(RandomnessRequested) == []
    assert len(engine.events.of_type(LotteryTrashed)) == 1
    assert engine.pending_randomness() == []


def test_scenario_c_repay_then_melt_refunds(engine, params):
    open_caps(engine, 50)
    lottery_id = engine.create_lottery("alice", NFT, 100, 10, 7)
    engine.buy_tickets(lottery_id, "h", 4, 400)
    assert engine.get_lottery(lottery_id).total_raised == 400

    engine.repay(lottery_id, "alice", 400)
    lottery = engine.get_lottery(lottery_id)
    assert lottery.state == LotteryState.CANCELLED
    assert engine.nfts.owner_of(NFT) == "alice"
    assert engine.vault.balance == 400

    result = engine.melt_tickets(lottery_id, "h")
    assert result.amount == 4
    assert result.refund == 400
    assert engine.get_holder_balance(lottery_id, "h") == 0
    assert engine.vault.paid_to("h") == 400
    assert engine.vault.balance == 0

    with pytest.raises(NoTicketsHeld):
        engine.melt_tickets(lottery_id, "h")

    # owner's net cost of cancelling is exactly the fee
    fee = 400 * params.fee_bps // 10_000
    assert engine.vault.paid_to("alice") == 400 - fee
    assert engine.vault.paid_to(TREASURY) == fee


def test_repay_closes_the_loop_for_every_holder(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    engine.buy_tickets(lottery_id, "p2", 1, PRICE)
    engine.buy_tickets(lottery_id, "p3", 2, 2 * PRICE)
    engine.repay(lottery_id, "alice", 5 * PRICE)

    for holder, balance in [("p1", 2), ("p2", 1), ("p3", 2)]:
        assert engine.melt_tickets(lottery_id, holder).refund == balance * PRICE
        with pytest.raises(NoTicketsHeld):
            engine.melt_tickets(lottery_id, holder)
    assert engine.vault.balance == 0
    assert len(engine.events.of_type(TicketsMelted)) == 3


# ------------------------------------------------------------------ repay


def test_repay_requires_owner(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    with pytest.raises(NotLotteryOwner):
        engine.repay(lottery_id, "p1", 2 * PRICE)


def test_repay_requires_exact_amount(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    with pytest.raises(IncorrectRepaymentAmount):
        engine.repay(lottery_id, "alice", 2 * PRICE - 1)
    with pytest.raises(IncorrectRepaymentAmount):
        engine.repay(lottery_id, "alice", 2 * PRICE + 1)
    assert engine.get_lottery(lottery_id).state == LotteryState.ACTIVE


def test_repay_emits_event(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    engine.repay(lottery_id, "alice", 2 * PRICE)
    (event,) = engine.events.of_type(LoanRepaid)
    assert (event.lottery_id, event.owner, event.amount) == (lottery_id, "alice", 2 * PRICE)


def test_no_operations_after_cancel(engine, lottery_id):
    engine.repay(lottery_id, "alice", 0)
    with pytest.raises(LotteryNotActive):
        engine.buy_tickets(lottery_id, "p1", 1, PRICE)
    with pytest.raises(LotteryNotActive):
        engine.repay(lottery_id, "alice", 0)


# ------------------------------------------------------------------ expiry


def test_expired_lottery_with_sales_concludes_lazily(engine, clock, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    clock.advance(WEEK - 1)
    engine.buy_tickets(lottery_id, "p2", 1, PRICE)
    clock.advance(1)

    assert engine.get_active_lotteries() == []
    with pytest.raises(LotteryNotActive):
        engine.buy_tickets(lottery_id, "p3", 1, PRICE)

    # the expiry transition stuck even though the buy was rejected
    lottery = engine.get_lottery(lottery_id)
    assert lottery.state == LotteryState.CONCLUDED
    assert lottery.sold == 3
    assert lottery.randomness_requested_at == clock.now
    assert [p.lottery_id for p in engine.pending_randomness()] == [lottery_id]


def test_repay_after_expiry_is_rejected(engine, clock, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 1, PRICE)
    clock.advance(WEEK)
    with pytest.raises(LotteryNotActive):
        engine.repay(lottery_id, "alice", PRICE)


def test_settle_all(engine, clock, lottery_id):
    second = engine.create_lottery("alice", CollateralRef("0xNFT", 2), PRICE, 10, 30)
    engine.buy_tickets(lottery_id, "p1", 1, PRICE)
    clock.advance(WEEK)

    assert engine.settle_all() == [lottery_id]
    assert engine.get_active_lotteries() == [second]


# ------------------------------------------------------- claim and melting


def _finalized(engine, random_value=0):
    """Lottery 0 sold out to p1..p5 (2 each); returns (id, winner)."""
    lottery_id = engine.create_lottery("alice", NFT, PRICE, 10, 7)
    for holder in ("p1", "p2", "p3", "p4", "p5"):
        engine.buy_tickets(lottery_id, holder, 2, 2 * PRICE)
    request_id = engine.get_lottery(lottery_id).randomness_request_id
    return lottery_id, engine.fulfill_randomness(request_id, random_value)


def test_winner_claims_once(engine):
    lottery_id, winner = _finalized(engine, random_value=5)
    assert winner == "p3"  # ticket 5 lies in p3's range [4, 6)

    engine.claim_collateral(lottery_id, winner)
    assert engine.nfts.owner_of(NFT) == winner
    assert engine.get_lottery(lottery_id).claimed

    with pytest.raises(AlreadyClaimed):
        engine.claim_collateral(lottery_id, winner)
    assert len(engine.events.of_type(NFTClaimed)) == 1


def test_only_winner_claims(engine):
    lottery_id, _ = _finalized(engine, random_value=0)
    with pytest.raises(NotWinner):
        engine.claim_collateral(lottery_id, "p2")


def test_claim_before_draw_is_rejected(engine, lottery_id):
    with pytest.raises(LotteryNotFinalized):
        engine.claim_collateral(lottery_id, "alice")


def test_loser_melts_for_rewards_only(engine):
    lottery_id, winner = _finalized(engine, random_value=0)
    assert winner == "p1"
    chips_before = engine.rewards.token.balance_of("p2")

    result = engine.melt_tickets(lottery_id, "p2")
    assert result.refund == 0
    assert result.reward_minted == 2 * PRICE * 1000
    assert engine.rewards.token.balance_of("p2") == chips_before + result.reward_minted
    assert engine.vault.paid_to("p2") == 0


def test_winner_cannot_melt(engine):
    lottery_id, winner = _finalized(engine, random_value=0)
    with pytest.raises(LotteryNotMeltable):
        engine.melt_tickets(lottery_id, winner)


def test_melt_rejected_while_active_or_pending(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    with pytest.raises(LotteryNotMeltable):
        engine.melt_tickets(lottery_id, "p1")

    for holder in ("p2", "p3", "p4", "p5"):
        engine.buy_tickets(lottery_id, holder, 2, 2 * PRICE)
    assert engine.get_lottery(lottery_id).awaiting_randomness
    with pytest.raises(LotteryNotMeltable):
        engine.melt_tickets(lottery_id, "p1")
    with pytest.raises(LotteryNotFinalized):
        engine.claim_collateral(lottery_id, "p1")
    with pytest.raises(LotteryNotActive):
        engine.repay(lottery_id, "alice", 10 * PRICE)


def test_melt_without_tickets(engine, lottery_id):
    engine.repay(lottery_id, "alice", 0)
    with pytest.raises(NoTicketsHeld):
        engine.melt_tickets(lottery_id, "nobody")


# -------------------------------------------------------------------- reads


def test_views(engine, lottery_id):
    engine.buy_tickets(lottery_id, "p1", 2, 2 * PRICE)
    engine.buy_tickets(lottery_id, "p2", 2, 2 * PRICE)

    assert engine.get_active_lotteries() == [lottery_id]
    holder = engine.get_holder_lotteries("alice")
    assert holder.created == [lottery_id] and holder.participated == []
    assert engine.get_holder_lotteries("p1").participated == [lottery_id]
    assert engine.calculate_win_probability("p1", lottery_id) == 5_000
    assert engine.calculate_win_probability("p9", lottery_id) == 0
    assert engine.purchases(lottery_id) == [("p1", 2), ("p2", 2)]

    stats = engine.get_protocol_stats()
    assert stats.total_lotteries == 1
    assert stats.active_lotteries == 1
    assert stats.total_participants == 2
    assert stats.total_raised == 4 * PRICE
    assert stats.fees_collected == 4 * PRICE * 500 // 10_000
    assert stats.choco_chips_minted == 4 * PRICE * 1000


def test_get_lottery_returns_a_copy(engine, lottery_id):
    snapshot = engine.get_lottery(lottery_id)
    snapshot.sold = 99
    assert engine.get_lottery(lottery_id).sold == 0


def test_parameter_changes_do_not_touch_existing_lotteries(engine, lottery_id):
    engine.params.set_holder_cap_percent(GOVERNOR, 50)
    assert engine.get_lottery(lottery_id).holder_cap == 2
    with pytest.raises(ExceedsHolderCap):
        engine.buy_tickets(lottery_id, "p1", 3, 3 * PRICE)
