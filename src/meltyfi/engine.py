"""
Lottery lifecycle engine.

    ACTIVE -> CANCELLED   owner repays everything raised
    ACTIVE -> CONCLUDED   sold out, or expired with tickets sold
    ACTIVE -> TRASHED     expired with nothing sold

Every mutating operation on a lottery runs under that lottery's lock: guards
are checked first, then all effects are applied, so an operation either
commits completely or raises before touching state. Expiry is evaluated
lazily at the start of each operation (or by ``settle``), and the resulting
transition commits even if the operation itself is then rejected.

Proceeds are paid out at purchase time (fee to the treasury, the rest to the
owner), which is why repaying means returning the full amount raised: the
fee is the owner's cost of cancelling.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .collateral import CollateralRef, NftRegistry
from .draw import draw_winner
from .errors import (
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
    NotAwaitingRandomness,
    NotCollateralOwner,
    NotLotteryOwner,
    NotWinner,
    RandomnessAlreadyFulfilled,
    RandomnessUnavailable,
    Unauthorized,
    UnknownRandomnessRequest,
)
from .events import (
    EventLog,
    LoanRepaid,
    LotteryCreated,
    LotteryTrashed,
    NFTClaimed,
    ParameterUpdated,
    RandomnessRequested,
    TicketsMelted,
    TicketsPurchased,
    WinnerDrawn,
)
from .ledger import TicketLedger, Vault
from .params import ProtocolParameters
from .project_constants import BASIS_POINTS, PROTOCOL_CUSTODY, SECONDS_PER_DAY
from .randomness import ManualRandomness, RandomnessProvider
from .rewards import ChocoChip, FixedRate, RewardAccrual

log = logging.getLogger(__name__)


class LotteryState(IntEnum):
    ACTIVE = 0
    CANCELLED = 1
    CONCLUDED = 2
    TRASHED = 3


@dataclass
class Lottery:
    id: int
    owner: str
    collateral: CollateralRef
    ticket_price: int
    max_supply: int
    holder_cap: int
    created_at: int
    expiration: int
    display_name: str = ""
    display_image: str = ""
    sold: int = 0
    total_raised: int = 0
    state: LotteryState = LotteryState.ACTIVE
    winner: Optional[str] = None
    randomness_request_id: Optional[str] = None
    randomness_requested_at: Optional[int] = None
    randomness_provider: Optional[str] = None
    randomness_secure: bool = True
    randomness_error: Optional[str] = None
    random_value: Optional[int] = None
    winning_ticket: Optional[int] = None
    claimed: bool = False

    @property
    def awaiting_randomness(self) -> bool:
        return self.state == LotteryState.CONCLUDED and self.winner is None

    @property
    def finalized(self) -> bool:
        return self.state == LotteryState.CONCLUDED and self.winner is not None

    def is_expired(self, now: int) -> bool:
        return now >= self.expiration


@dataclass(frozen=True)
class PurchaseReceipt:
    lottery_id: int
    buyer: str
    amount: int
    payment: int
    fee: int
    owner_share: int
    reward_minted: int
    concluded: bool


@dataclass(frozen=True)
class MeltResult:
    amount: int
    refund: int
    reward_minted: int


@dataclass(frozen=True)
class HolderLotteries:
    created: List[int]
    participated: List[int]


@dataclass(frozen=True)
class PendingDraw:
    lottery_id: int
    request_id: Optional[str]
    requested_at: int
    error: Optional[str]


@dataclass(frozen=True)
class ProtocolStats:
    total_lotteries: int
    active_lotteries: int
    pending_randomness: int
    cancelled_lotteries: int
    concluded_lotteries: int
    trashed_lotteries: int
    total_participants: int
    total_raised: int
    fees_collected: int
    vault_balance: int
    choco_chips_minted: int


def _unix_now() -> int:
    return int(time.time())


class LotteryEngine:
    def __init__(
        self,
        params: Optional[ProtocolParameters] = None,
        nfts: Optional[NftRegistry] = None,
        ledger: Optional[TicketLedger] = None,
        vault: Optional[Vault] = None,
        rewards: Optional[RewardAccrual] = None,
        randomness: Optional[RandomnessProvider] = None,
        events: Optional[EventLog] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.params = params or ProtocolParameters()
        self.nfts = nfts or NftRegistry()
        self.ledger = ledger or TicketLedger()
        self.vault = vault or Vault()
        self.rewards = rewards or RewardAccrual(ChocoChip(), FixedRate())
        self.randomness = randomness or ManualRandomness()
        self.events = events if events is not None else EventLog()
        self.clock = clock or _unix_now

        self._lotteries: Dict[int, Lottery] = {}
        self._purchases: Dict[int, List[Tuple[str, int]]] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._by_owner: Dict[str, List[int]] = defaultdict(list)
        self._by_participant: Dict[str, List[int]] = defaultdict(list)
        self._active: Set[int] = set()
        self._requests: Dict[str, int] = {}

        self.params.subscribe(self._on_parameter_updated)

    # ------------------------------------------------------------------ writes

    def create_lottery(
        self,
        owner: str,
        collateral: CollateralRef,
        ticket_price: int,
        max_supply: int,
        duration_days: int,
        display_name: str = "",
        display_image: str = "",
    ) -> int:
        p = self.params
        if not isinstance(ticket_price, int) or isinstance(ticket_price, bool) or ticket_price <= 0:
            raise InvalidPrice(f"Ticket price must be a positive integer, got {ticket_price!r}")
        if (
            not isinstance(max_supply, int)
            or isinstance(max_supply, bool)
            or not p.min_supply <= max_supply <= p.max_supply
        ):
            raise InvalidSupply(
                f"Supply {max_supply} outside [{p.min_supply}, {p.max_supply}]"
            )
        if (
            not isinstance(duration_days, int)
            or isinstance(duration_days, bool)
            or not 1 <= duration_days <= p.max_duration_days
        ):
            raise InvalidDuration(
                f"Duration {duration_days} days outside [1, {p.max_duration_days}]"
            )
        if self.nfts.owner_of(collateral) != owner:
            raise NotCollateralOwner(f"{owner} does not own {collateral}")

        now = self.clock()
        with self._registry_lock:
            lottery_id = len(self._lotteries)
            self.nfts.transfer(collateral, owner, PROTOCOL_CUSTODY)
            lottery = Lottery(
                id=lottery_id,
                owner=owner,
                collateral=collateral,
                ticket_price=ticket_price,
                max_supply=max_supply,
                holder_cap=p.holder_cap(max_supply),
                created_at=now,
                expiration=now + duration_days * SECONDS_PER_DAY,
                display_name=display_name,
                display_image=display_image,
            )
            self._lotteries[lottery_id] = lottery
            self._purchases[lottery_id] = []
            self._locks[lottery_id] = threading.Lock()
            self._by_owner[owner].append(lottery_id)
            self._active.add(lottery_id)

            self.events.emit(
                LotteryCreated,
                now,
                lottery_id=lottery_id,
                owner=owner,
                collateral_contract=collateral.contract,
                collateral_token_id=collateral.token_id,
                ticket_price=ticket_price,
                max_supply=max_supply,
                expiration=lottery.expiration,
            )

        log.info(
            "Lottery %d created by %s: %s, %d x %d, expires %d",
            lottery_id,
            owner,
            collateral,
            max_supply,
            ticket_price,
            lottery.expiration,
        )
        return lottery_id

    def buy_tickets(self, lottery_id: int, buyer: str, amount: int, payment: int) -> PurchaseReceipt:
        with self._locked(lottery_id) as lottery:
            now = self.clock()
            self._settle_locked(lottery, now)
            if lottery.state != LotteryState.ACTIVE:
                raise LotteryNotActive(f"Lottery {lottery_id} is {lottery.state.name}")
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
                raise InvalidAmount(f"Must buy at least one ticket, got {amount!r}")

            cost = amount * lottery.ticket_price
            if payment < cost:
                raise InsufficientPayment(f"{amount} tickets cost {cost}, got {payment}")
            if payment > cost:
                raise ExcessPayment(f"{amount} tickets cost {cost}, got {payment}")
            if lottery.sold + amount > lottery.max_supply:
                raise ExceedsMaxSupply(
                    f"Lottery {lottery_id}: {lottery.sold} + {amount} > {lottery.max_supply}"
                )
            balance = self.ledger.balance_of(lottery_id, buyer)
            if balance + amount > lottery.holder_cap:
                raise ExceedsHolderCap(
                    f"{buyer} would hold {balance + amount} of lottery {lottery_id} "
                    f"(cap {lottery.holder_cap})"
                )
            reward = self.rewards.quote(payment)
            fee = payment * self.params.fee_bps // BASIS_POINTS
            owner_share = payment - fee
            treasury = self.params.treasury

            self.ledger.credit(lottery_id, buyer, amount)
            self._purchases[lottery_id].append((buyer, amount))
            lottery.sold += amount
            lottery.total_raised += payment
            self.vault.deposit(payment)
            self.vault.pay(treasury, fee)
            self.vault.pay(lottery.owner, owner_share)
            minted = self.rewards.token.mint(buyer, reward)
            with self._registry_lock:
                if lottery_id not in self._by_participant[buyer]:
                    self._by_participant[buyer].append(lottery_id)

            self.events.emit(
                TicketsPurchased,
                now,
                lottery_id=lottery_id,
                buyer=buyer,
                amount=amount,
                payment=payment,
                fee=fee,
                reward=minted,
            )
            log.info(
                "Lottery %d: %s bought %d (sold %d/%d)",
                lottery_id,
                buyer,
                amount,
                lottery.sold,
                lottery.max_supply,
            )

            concluded = lottery.sold == lottery.max_supply
            if concluded:
                self._conclude(lottery, now)

        return PurchaseReceipt(
            lottery_id=lottery_id,
            buyer=buyer,
            amount=amount,
            payment=payment,
            fee=fee,
            owner_share=owner_share,
            reward_minted=minted,
            concluded=concluded,
        )

    def repay(self, lottery_id: int, caller: str, payment: int) -> None:
        with self._locked(lottery_id) as lottery:
            now = self.clock()
            self._settle_locked(lottery, now)
            if lottery.state != LotteryState.ACTIVE:
                raise LotteryNotActive(f"Lottery {lottery_id} is {lottery.state.name}")
            if caller != lottery.owner:
                raise NotLotteryOwner(f"{caller} does not own lottery {lottery_id}")
            if payment != lottery.total_raised:
                raise IncorrectRepaymentAmount(
                    f"Lottery {lottery_id} needs exactly {lottery.total_raised}, got {payment}"
                )

            self.vault.deposit(payment)
            lottery.state = LotteryState.CANCELLED
            self._deactivate(lottery_id)
            self.nfts.transfer(lottery.collateral, PROTOCOL_CUSTODY, lottery.owner)
            self.events.emit(LoanRepaid, now, lottery_id=lottery_id, owner=caller, amount=payment)

        log.info("Lottery %d cancelled: owner repaid %d", lottery_id, payment)

    def claim_collateral(self, lottery_id: int, caller: str) -> None:
        with self._locked(lottery_id) as lottery:
            now = self.clock()
            self._settle_locked(lottery, now)
            if not lottery.finalized:
                raise LotteryNotFinalized(
                    f"Lottery {lottery_id} has no winner yet ({lottery.state.name})"
                )
            if caller != lottery.winner:
                raise NotWinner(f"{caller} did not win lottery {lottery_id}")
            if lottery.claimed:
                raise AlreadyClaimed(f"Lottery {lottery_id} collateral already claimed")

            self.nfts.transfer(lottery.collateral, PROTOCOL_CUSTODY, caller)
            lottery.claimed = True
            self.events.emit(
                NFTClaimed,
                now,
                lottery_id=lottery_id,
                winner=caller,
                collateral_contract=lottery.collateral.contract,
                collateral_token_id=lottery.collateral.token_id,
            )

        log.info("Lottery %d: %s claimed %s", lottery_id, caller, lottery.collateral)

    def melt_tickets(self, lottery_id: int, holder: str) -> MeltResult:
        with self._locked(lottery_id) as lottery:
            now = self.clock()
            self._settle_locked(lottery, now)
            cancelled = lottery.state == LotteryState.CANCELLED
            if not (cancelled or lottery.finalized):
                raise LotteryNotMeltable(
                    f"Lottery {lottery_id} is {lottery.state.name}"
                    + (" and awaiting randomness" if lottery.awaiting_randomness else "")
                )
            balance = self.ledger.balance_of(lottery_id, holder)
            if balance == 0:
                raise NoTicketsHeld(f"{holder} holds no tickets in lottery {lottery_id}")
            if holder == lottery.winner:
                raise LotteryNotMeltable(f"{holder} won lottery {lottery_id}; claim instead")

            value = balance * lottery.ticket_price
            refund = value if cancelled else 0
            reward = self.rewards.quote(value)

            self.ledger.burn(lottery_id, holder, balance)
            if refund:
                self.vault.pay(holder, refund)
            minted = self.rewards.token.mint(holder, reward)
            self.events.emit(
                TicketsMelted,
                now,
                lottery_id=lottery_id,
                holder=holder,
                amount=balance,
                refund=refund,
                reward=minted,
            )

        log.info("Lottery %d: %s melted %d (refund %d)", lottery_id, holder, balance, refund)
        return MeltResult(amount=balance, refund=refund, reward_minted=minted)

    def settle(self, lottery_id: int) -> LotteryState:
        with self._locked(lottery_id) as lottery:
            self._settle_locked(lottery, self.clock())
            return lottery.state

    def settle_all(self) -> List[int]:
        """Applies due expiry transitions everywhere; returns the ids that moved."""
        with self._registry_lock:
            candidates = sorted(self._active)
        moved = []
        for lottery_id in candidates:
            if self.settle(lottery_id) != LotteryState.ACTIVE:
                moved.append(lottery_id)
        return moved

    # ------------------------------------------------------------- randomness

    def fulfill_randomness(self, request_id: str, random_value: int) -> str:
        with self._registry_lock:
            lottery_id = self._requests.get(request_id)
        if lottery_id is None:
            raise UnknownRandomnessRequest(f"No lottery is waiting on request {request_id}")

        with self._locked(lottery_id) as lottery:
            if not lottery.awaiting_randomness:
                raise RandomnessAlreadyFulfilled(
                    f"Lottery {lottery_id} is not awaiting randomness (request {request_id})"
                )
            if lottery.randomness_request_id != request_id:
                raise UnknownRandomnessRequest(
                    f"Request {request_id} was superseded for lottery {lottery_id}"
                )
            if not isinstance(random_value, int) or random_value < 0:
                raise InvalidAmount(f"Random value must be a non-negative integer, got {random_value!r}")

            winner, ticket = draw_winner(self._purchases[lottery_id], random_value)
            if self.ledger.balance_of(lottery_id, winner.holder) < 1:
                raise RuntimeError(
                    f"Drawn holder {winner.holder} holds no tickets in lottery {lottery_id} (unexpected)."
                )

            lottery.random_value = random_value
            lottery.winning_ticket = ticket
            lottery.winner = winner.holder
            self.events.emit(
                WinnerDrawn,
                self.clock(),
                lottery_id=lottery_id,
                winner=winner.holder,
                winning_ticket=ticket,
                request_id=request_id,
            )

        log.info(
            "Lottery %d: ticket %d of %d wins -> %s",
            lottery_id,
            ticket,
            lottery.sold,
            winner.holder,
        )
        return winner.holder

    def poll_randomness(self) -> List[int]:
        """Asks the provider about every pending request; returns the finalized ids."""
        finalized = []
        for pending in self.pending_randomness():
            if pending.request_id is None:
                continue
            try:
                value = self.randomness.poll(pending.request_id, pending.requested_at)
            except RandomnessUnavailable:
                raise
            except Exception as e:
                raise RandomnessUnavailable(
                    f"Provider {self.randomness.name} failed for lottery {pending.lottery_id}: {e}"
                ) from e
            if value is None:
                continue
            self.fulfill_randomness(pending.request_id, value)
            finalized.append(pending.lottery_id)
        return finalized

    def retry_randomness(self, caller: str, lottery_id: int) -> str:
        if caller != self.params.governor:
            raise Unauthorized(f"{caller} is not the protocol governor")
        with self._locked(lottery_id) as lottery:
            if not lottery.awaiting_randomness:
                raise NotAwaitingRandomness(
                    f"Lottery {lottery_id} is not awaiting randomness ({lottery.state.name})"
                )
            request_id = self._request_randomness(lottery_id)
            now = self.clock()
            with self._registry_lock:
                if lottery.randomness_request_id is not None:
                    self._requests.pop(lottery.randomness_request_id, None)
                self._requests[request_id] = lottery_id
            lottery.randomness_request_id = request_id
            lottery.randomness_requested_at = now
            lottery.randomness_error = None
            lottery.randomness_provider = self.randomness.name
            lottery.randomness_secure = self.randomness.secure
            self.events.emit(
                RandomnessRequested, now, lottery_id=lottery_id, request_id=request_id
            )

        log.info("Lottery %d: randomness re-requested as %s", lottery_id, request_id)
        return request_id

    # ------------------------------------------------------------------ reads

    def get_lottery(self, lottery_id: int) -> Lottery:
        with self._locked(lottery_id) as lottery:
            return replace(lottery)

    def get_lotteries(self, state: Optional[LotteryState] = None) -> List[Lottery]:
        with self._registry_lock:
            ids = sorted(self._lotteries)
        out = [self.get_lottery(lottery_id) for lottery_id in ids]
        if state is not None:
            out = [lottery for lottery in out if lottery.state == state]
        return out

    def get_active_lotteries(self) -> List[int]:
        """Ids still accepting purchases (ACTIVE and not past expiration)."""
        now = self.clock()
        with self._registry_lock:
            return sorted(
                lottery_id
                for lottery_id in self._active
                if not self._lotteries[lottery_id].is_expired(now)
            )

    def get_holder_balance(self, lottery_id: int, holder: str) -> int:
        self._require(lottery_id)
        return self.ledger.balance_of(lottery_id, holder)

    def get_holder_lotteries(self, holder: str) -> HolderLotteries:
        with self._registry_lock:
            return HolderLotteries(
                created=list(self._by_owner.get(holder, [])),
                participated=list(self._by_participant.get(holder, [])),
            )

    def calculate_win_probability(self, holder: str, lottery_id: int) -> int:
        """Chance of winning in basis points, from the holder's current balance."""
        lottery = self.get_lottery(lottery_id)
        if lottery.sold == 0:
            return 0
        return self.ledger.balance_of(lottery_id, holder) * BASIS_POINTS // lottery.sold

    def purchases(self, lottery_id: int) -> List[Tuple[str, int]]:
        with self._locked(lottery_id):
            return list(self._purchases[lottery_id])

    def pending_randomness(self) -> List[PendingDraw]:
        out = []
        for lottery in self.get_lotteries(LotteryState.CONCLUDED):
            if lottery.awaiting_randomness:
                out.append(
                    PendingDraw(
                        lottery_id=lottery.id,
                        request_id=lottery.randomness_request_id,
                        requested_at=lottery.randomness_requested_at or 0,
                        error=lottery.randomness_error,
                    )
                )
        return out

    def get_protocol_stats(self) -> ProtocolStats:
        lotteries = self.get_lotteries()
        by_state: Dict[LotteryState, int] = defaultdict(int)
        for lottery in lotteries:
            by_state[lottery.state] += 1
        with self._registry_lock:
            participants = sum(1 for ids in self._by_participant.values() if ids)
        return ProtocolStats(
            total_lotteries=len(lotteries),
            active_lotteries=len(self.get_active_lotteries()),
            pending_randomness=sum(1 for lottery in lotteries if lottery.awaiting_randomness),
            cancelled_lotteries=by_state[LotteryState.CANCELLED],
            concluded_lotteries=by_state[LotteryState.CONCLUDED],
            trashed_lotteries=by_state[LotteryState.TRASHED],
            total_participants=participants,
            total_raised=sum(lottery.total_raised for lottery in lotteries),
            fees_collected=self.vault.paid_to(self.params.treasury),
            vault_balance=self.vault.balance,
            choco_chips_minted=self.rewards.token.total_supply,
        )

    # -------------------------------------------------------------- snapshots

    def load_records(
        self, lotteries: List[Lottery], purchases: Dict[int, List[Tuple[str, int]]]
    ) -> None:
        """Installs persisted lotteries and rebuilds every index from them."""
        with self._registry_lock:
            if self._lotteries:
                raise RuntimeError("Engine already holds lotteries.")
            for lottery in sorted(lotteries, key=lambda item: item.id):
                self._lotteries[lottery.id] = lottery
                self._locks[lottery.id] = threading.Lock()
                self._purchases[lottery.id] = list(purchases.get(lottery.id, []))
                self._by_owner[lottery.owner].append(lottery.id)
                if lottery.state == LotteryState.ACTIVE:
                    self._active.add(lottery.id)
                if lottery.randomness_request_id is not None:
                    self._requests[lottery.randomness_request_id] = lottery.id
                for holder, _ in self._purchases[lottery.id]:
                    if lottery.id not in self._by_participant[holder]:
                        self._by_participant[holder].append(lottery.id)
            if sorted(self._lotteries) != list(range(len(self._lotteries))):
                raise RuntimeError("Lottery ids in snapshot are not sequential.")

    def all_purchases(self) -> Dict[int, List[Tuple[str, int]]]:
        with self._registry_lock:
            ids = sorted(self._purchases)
        return {lottery_id: self.purchases(lottery_id) for lottery_id in ids}

    # --------------------------------------------------------------- internals

    @contextmanager
    def _locked(self, lottery_id: int) -> Iterator[Lottery]:
        with self._registry_lock:
            lock = self._locks.get(lottery_id)
            lottery = self._lotteries.get(lottery_id)
        if lock is None or lottery is None:
            raise LotteryNotFound(f"Lottery {lottery_id} does not exist")
        with lock:
            yield lottery

    def _require(self, lottery_id: int) -> None:
        with self._registry_lock:
            if lottery_id not in self._lotteries:
                raise LotteryNotFound(f"Lottery {lottery_id} does not exist")

    def _deactivate(self, lottery_id: int) -> None:
        with self._registry_lock:
            self._active.discard(lottery_id)

    def _settle_locked(self, lottery: Lottery, now: int) -> None:
        if lottery.state != LotteryState.ACTIVE or not lottery.is_expired(now):
            return
        if lottery.sold == 0:
            self._trash(lottery, now)
        else:
            self._conclude(lottery, now)

    def _trash(self, lottery: Lottery, now: int) -> None:
        lottery.state = LotteryState.TRASHED
        self._deactivate(lottery.id)
        self.nfts.transfer(lottery.collateral, PROTOCOL_CUSTODY, lottery.owner)
        self.events.emit(LotteryTrashed, now, lottery_id=lottery.id, owner=lottery.owner)
        log.info("Lottery %d expired unsold; collateral returned to %s", lottery.id, lottery.owner)

    def _conclude(self, lottery: Lottery, now: int) -> None:
        lottery.state = LotteryState.CONCLUDED
        lottery.randomness_requested_at = now
        self._deactivate(lottery.id)
        lottery.randomness_provider = self.randomness.name
        lottery.randomness_secure = self.randomness.secure
        # The concluding operation has already committed; a provider failure
        # leaves the lottery pending without a request for the governor to retry.
        try:
            request_id: Optional[str] = self._request_randomness(lottery.id)
        except RandomnessUnavailable as e:
            log.error("Lottery %d: randomness request failed: %s", lottery.id, e)
            lottery.randomness_error = str(e)
            request_id = None
        if request_id is not None:
            with self._registry_lock:
                self._requests[request_id] = lottery.id
        lottery.randomness_request_id = request_id
        self.events.emit(RandomnessRequested, now, lottery_id=lottery.id, request_id=request_id)
        log.info("Lottery %d concluded with %d sold; request %s", lottery.id, lottery.sold, request_id)

    def _request_randomness(self, lottery_id: int) -> str:
        try:
            return self.randomness.request_randomness(lottery_id)
        except RandomnessUnavailable:
            raise
        except Exception as e:
            raise RandomnessUnavailable(
                f"Provider {self.randomness.name} rejected request for lottery {lottery_id}: {e}"
            ) from e

    def _on_parameter_updated(self, name: str, old: object, new: object) -> None:
        self.events.emit(
            ParameterUpdated, self.clock(), parameter=name, old_value=str(old), new_value=str(new)
        )
