"""
donutdemand.engine.selection — Giveaway Winner Selection
========================================================

Uniform selection without replacement via a Fisher–Yates shuffle.
Randomness is injectable so tests can pass a seeded :class:`random.Random`.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def fisher_yates(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a shuffled copy of *items*; the input is left untouched."""
    rng = rng or random.SystemRandom()
    pool = list(items)
    for i in range(len(pool) - 1, 0, -1):
        j = rng.randint(0, i)
        pool[i], pool[j] = pool[j], pool[i]
    return pool


def pick_winners(
    entries: Sequence[T],
    winner_count: int,
    rng: random.Random | None = None,
) -> list[T]:
    """Pick ``min(winner_count, len(entries))`` distinct winners.

    An empty entry list (or a non-positive count) yields no winners.
    """
    if not entries or winner_count <= 0:
        return []
    count = min(winner_count, len(entries))
    return fisher_yates(entries, rng)[:count]
