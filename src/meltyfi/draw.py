from __future__ import annotations

import hashlib
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, List, Tuple


@dataclass(frozen=True)
class TicketRange:
    holder: str
    amount: int
    start_ticket: int
    end_ticket: int  # exclusive


def build_ranges(purchases: Iterable[Tuple[str, int]]) -> Tuple[List[TicketRange], int]:
    """One contiguous range per purchase, in purchase order."""
    ranges: List[TicketRange] = []
    cursor = 0
    for holder, amount in purchases:
        start = cursor
        end = cursor + amount
        ranges.append(TicketRange(holder, amount, start, end))
        cursor = end
    return ranges, cursor


def seed_to_int(seed: str) -> Tuple[int, str]:
    """Hashes an arbitrary seed string (beacon output, feed file) to an integer."""
    seed_hash_hex = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(seed_hash_hex, 16), seed_hash_hex


def compute_ticket(random_value: int, total_tickets: int) -> int:
    if total_tickets <= 0:
        raise RuntimeError("Cannot draw from an empty ticket pool.")
    return random_value % total_tickets


def find_winner(ranges: List[TicketRange], ticket: int) -> TicketRange:
    ends = [r.end_ticket for r in ranges]
    idx = bisect_right(ends, ticket)
    if idx < 0 or idx >= len(ranges):
        raise RuntimeError("Ticket out of range (unexpected).")
    return ranges[idx]


def draw_winner(purchases: Iterable[Tuple[str, int]], random_value: int) -> Tuple[TicketRange, int]:
    ranges, total = build_ranges(purchases)
    ticket = compute_ticket(random_value, total)
    return find_winner(ranges, ticket), ticket
