from __future__ import annotations

import pytest

from clarity.store.rank import (
    RankError,
    rank_after,
    rank_before,
    rank_between,
    rank_between_unique,
    rank_initial,
    spaced_ranks,
)


def test_initial_rank_is_midpoint():
    assert rank_initial() == "h"


def test_after_and_before_leave_room():
    assert rank_after("h") == "q"
    assert rank_before("h") < "h"
    assert rank_between("", "1") == "0h"


def test_between_adjacent_digits_extends():
    mid = rank_between("h", "i")
    assert "h" < mid < "i"
    assert mid == "hh"


def test_between_is_case_insensitive():
    assert rank_between("A", "C") == "b"


def test_between_requires_ordered_bounds():
    with pytest.raises(RankError):
        rank_between("q", "h")
    with pytest.raises(RankError):
        rank_between("h", "h")


def test_no_room_between_prefix_and_zero_extension():
    with pytest.raises(RankError):
        rank_between("y", "y0")


def test_invalid_character():
    with pytest.raises(RankError):
        rank_between("!h", "")


def test_between_unique_skips_taken():
    got = rank_between_unique(["q"], "h", "")
    assert got != "q"
    assert got > "h"


def test_spaced_ranks_three():
    assert spaced_ranks(3) == ["9", "i", "r"]


def test_spaced_ranks_many_are_increasing():
    ranks = spaced_ranks(100)
    assert len(ranks) == 100
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == 100
    assert spaced_ranks(0) == []
