from __future__ import annotations

import pytest

from meltyfi.draw import build_ranges, compute_ticket, draw_winner, find_winner, seed_to_int


def test_ranges_follow_purchase_order():
    ranges, total = build_ranges([("a", 3), ("b", 1), ("a", 2)])
    assert total == 6
    assert [(r.holder, r.start_ticket, r.end_ticket) for r in ranges] == [
        ("a", 0, 3),
        ("b", 3, 4),
        ("a", 4, 6),
    ]


@pytest.mark.parametrize(
    "ticket,holder",
    [(0, "a"), (2, "a"), (3, "b"), (4, "a"), (5, "a")],
)
def test_find_winner_at_range_edges(ticket, holder):
    ranges, _ = build_ranges([("a", 3), ("b", 1), ("a", 2)])
    assert find_winner(ranges, ticket).holder == holder


def test_find_winner_out_of_range():
    ranges, total = build_ranges([("a", 1)])
    with pytest.raises(RuntimeError):
        find_winner(ranges, total)


def test_empty_pool_cannot_be_drawn():
    with pytest.raises(RuntimeError):
        compute_ticket(5, 0)


def test_every_ticket_is_reachable():
    purchases = [("x", 3), ("y", 7)]
    winners = [draw_winner(purchases, value)[0].holder for value in range(10)]
    assert winners.count("x") == 3
    assert winners.count("y") == 7


def test_seed_to_int_is_deterministic():
    value, digest = seed_to_int("drand-round-42")
    assert value == int(digest, 16)
    assert seed_to_int("drand-round-42") == (value, digest)
    assert seed_to_int("drand-round-43")[0] != value
