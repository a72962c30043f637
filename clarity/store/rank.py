"""
Rank algebra for ordering siblings.

Ranks are variable-length base-36 strings compared as plain strings. New
ranks are produced by fractional midpoints so inserting between two
neighbours never renumbers the rest of the sibling set.
"""

from __future__ import annotations

from typing import Iterable

RANK_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_MIN_DIGIT = 0
_MAX_DIGIT = len(RANK_ALPHABET) - 1
_MAX_POSITIONS = 256


class RankError(ValueError):
    """No rank can be produced for the requested bounds."""


def normalize_rank(rank: str | None) -> str:
    return (rank or "").strip().lower()


def _digit(ch: str, which: str) -> int:
    idx = RANK_ALPHABET.find(ch)
    if idx < 0:
        raise RankError(f"invalid rank character in {which}: {ch!r}")
    return idx


def rank_between(lower: str, upper: str) -> str:
    """
    Return a rank strictly between `lower` and `upper`.

    Either bound may be empty, meaning unbounded on that side. Raises
    RankError when lower >= upper or when the bounds leave no room
    (e.g. "y" and "y0"). Results never end in "0", so two ranks produced
    here always have room between them.
    """
    a = normalize_rank(lower)
    b = normalize_rank(upper)
    if a and b and not a < b:
        raise RankError("rank_between requires lower < upper")

    prefix: list[str] = []
    bounded = bool(b)
    for i in range(_MAX_POSITIONS):
        da = _digit(a[i], "lower") if i < len(a) else _MIN_DIGIT
        if bounded and i >= len(b):
            # Everything left sorts at or above upper.
            raise RankError("no space between ranks")
        db = _digit(b[i], "upper") if bounded else _MAX_DIGIT

        if db - da > 1:
            prefix.append(RANK_ALPHABET[(da + db) // 2])
            return "".join(prefix)

        prefix.append(RANK_ALPHABET[da])
        if db - da == 1:
            # The prefix now sorts below upper whatever follows.
            bounded = False

    raise RankError("unable to compute rank between bounds")


def rank_after(lower: str) -> str:
    return rank_between(lower, "")


def rank_before(upper: str) -> str:
    return rank_between("", upper)


def rank_initial() -> str:
    return rank_between("", "")


def rank_between_unique(existing: Iterable[str], lower: str, upper: str) -> str:
    """Like rank_between, but never returns a rank already in `existing`."""
    taken = {normalize_rank(r) for r in existing}
    cur_lower = normalize_rank(lower)
    for _ in range(_MAX_POSITIONS):
        candidate = rank_between(cur_lower, upper)
        if candidate not in taken:
            return candidate
        cur_lower = candidate
    raise RankError("unable to find unique rank")


def spaced_ranks(count: int) -> list[str]:
    """
    Return `count` strictly increasing ranks spread evenly over the space.

    Used when a sibling set has to be rebalanced as a whole. Every value
    leaves room on both sides so later midpoints succeed.
    """
    if count <= 0:
        return []
    base = len(RANK_ALPHABET)
    width = 1
    while base**width < 2 * (count + 1):
        width += 1
    step = base**width // (count + 1)
    ranks = []
    for i in range(count):
        value = (i + 1) * step
        digits = []
        for _ in range(width):
            value, rem = divmod(value, base)
            digits.append(RANK_ALPHABET[rem])
        ranks.append("".join(reversed(digits)).rstrip(RANK_ALPHABET[0]))
    return ranks
