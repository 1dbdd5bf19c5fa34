from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, List, Tuple

from .errors import LedgerError


class TicketLedger:
    """
    Multi-token balance table: one fungible WonkaBar id per lottery.

    Holders are kept in first-credit order per lottery, which keeps listings
    deterministic.
    """

    def __init__(self) -> None:
        self._balances: Dict[int, Dict[str, int]] = defaultdict(dict)
        self._supply: Dict[int, int] = defaultdict(int)
        self._lock = threading.Lock()

    def credit(self, lottery_id: int, holder: str, amount: int) -> None:
        if amount <= 0:
            raise LedgerError(f"Credit amount must be positive, got {amount}")
        with self._lock:
            book = self._balances[lottery_id]
            book[holder] = book.get(holder, 0) + amount
            self._supply[lottery_id] += amount

    def burn(self, lottery_id: int, holder: str, amount: int) -> int:
        with self._lock:
            book = self._balances[lottery_id]
            balance = book.get(holder, 0)
            if amount <= 0 or amount > balance:
                raise LedgerError(
                    f"Cannot burn {amount} from {holder} in lottery {lottery_id} (balance {balance})"
                )
            remaining = balance - amount
            if remaining:
                book[holder] = remaining
            else:
                del book[holder]
            self._supply[lottery_id] -= amount
        return amount

    def balance_of(self, lottery_id: int, holder: str) -> int:
        with self._lock:
            return self._balances.get(lottery_id, {}).get(holder, 0)

    def supply(self, lottery_id: int) -> int:
        with self._lock:
            return self._supply.get(lottery_id, 0)

    def holders(self, lottery_id: int) -> List[Tuple[str, int]]:
        with self._lock:
            return list(self._balances.get(lottery_id, {}).items())

    def dump(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {str(lid): dict(book) for lid, book in self._balances.items() if book}

    @classmethod
    def load(cls, data: Dict[str, Dict[str, int]]) -> "TicketLedger":
        ledger = cls()
        for lid, book in data.items():
            for holder, amount in book.items():
                ledger.credit(int(lid), holder, int(amount))
        return ledger


class Vault:
    """
    Native-value account of the protocol.

    ``deposit`` records value received (purchases, repayments); ``pay``
    records value sent out (owner proceeds, fees, refunds). ``balance`` is
    what the protocol still holds.
    """

    def __init__(self) -> None:
        self._balance = 0
        self._paid: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    @property
    def balance(self) -> int:
        with self._lock:
            return self._balance

    def deposit(self, amount: int) -> None:
        if amount < 0:
            raise LedgerError(f"Deposit must not be negative, got {amount}")
        with self._lock:
            self._balance += amount

    def pay(self, to: str, amount: int) -> None:
        if amount < 0:
            raise LedgerError(f"Payment must not be negative, got {amount}")
        with self._lock:
            if amount > self._balance:
                raise LedgerError(f"Vault holds {self._balance}, cannot pay {amount} to {to}")
            self._balance -= amount
            self._paid[to] += amount

    def paid_to(self, address: str) -> int:
        with self._lock:
            return self._paid.get(address, 0)

    def dump(self) -> Dict[str, object]:
        with self._lock:
            return {"balance": self._balance, "paid": dict(self._paid)}

    @classmethod
    def load(cls, data: Dict[str, object]) -> "Vault":
        vault = cls()
        vault._balance = int(data.get("balance", 0))
        for address, amount in dict(data.get("paid", {})).items():
            vault._paid[address] = int(amount)
        return vault
