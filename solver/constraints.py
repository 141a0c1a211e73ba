# solver/constraints.py
"""
Derive the constraint list for one distribution.

Every consecutive pair of slots gets an adjacency constraint.  Categories
(2-char prefix) and subcategories (4-char prefix) that appear at least twice
additionally get window constraints depending on their flag:

* spread (``A`` / ``a``): ``count`` windows of width ``size / count``, at
  most one occurrence per window;
* half split (``B`` / ``b``): two halves, at most ``ceil(count / 2)``
  occurrences per half.
"""
import math
from typing import Callable, Dict, List, Sequence

from models import Constraint
from codes import (
    CATEGORY_LEN,
    SUBCATEGORY_LEN,
    SPREAD_FLAG,
    HALF_SPLIT_FLAG,
    SUB_SPREAD_FLAG,
    SUB_HALF_SPLIT_FLAG,
    decode,
)
from config import CFG


# ---------------- predicates (True == violated) ----------------

def adjacent_same_category(window: Sequence[str], bound: str, limit: int) -> bool:
    if len(window) < 2:
        return False
    return window[0][:CATEGORY_LEN] == window[1][:CATEGORY_LEN]


def _over_limit(window: Sequence[str], bound: str, limit: int, prefix_len: int) -> bool:
    key = bound[:prefix_len]
    hits = sum(1 for code in window if code[:prefix_len] == key)
    return hits > limit


def category_over_limit(window: Sequence[str], bound: str, limit: int) -> bool:
    return _over_limit(window, bound, limit, CATEGORY_LEN)


def subcategory_over_limit(window: Sequence[str], bound: str, limit: int) -> bool:
    return _over_limit(window, bound, limit, SUBCATEGORY_LEN)


# ---------------- rounding ----------------

def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _round_half_even(x: float) -> int:
    return int(round(x))


ROUNDING_POLICIES: Dict[str, Callable[[float], int]] = {
    "half_up": _round_half_up,
    "half_even": _round_half_even,
}


def _rounder(policy: str) -> Callable[[float], int]:
    try:
        return ROUNDING_POLICIES[policy]
    except KeyError:
        raise ValueError(
            f"unknown window rounding policy {policy!r} "
            f"(expected one of {', '.join(sorted(ROUNDING_POLICIES))})"
        ) from None


# ---------------- builders ----------------

def window_bounds(size: int, windows: int, rounding: str = "half_up") -> List[tuple]:
    """Return inclusive ``(start, end)`` pairs splitting ``size`` slots into ``windows``.

    Non-integral widths may produce overlapping or gapped windows.
    """
    if size <= 0 or windows <= 0:
        return []
    rnd = _rounder(rounding)
    width = size / windows
    return [(rnd(i * width), rnd((i + 1) * width - 1)) for i in range(windows)]


def adjacency_constraints(size: int) -> List[Constraint]:
    return [
        Constraint(i, i + 1, "", 0, adjacent_same_category, "adjacent")
        for i in range(size - 1)
    ]


def _group_constraints(
    groups: Dict[str, int],
    flags: Dict[str, str],
    size: int,
    *,
    spread_flag: str,
    split_flag: str,
    predicate,
    kind: str,
    rounding: str,
) -> List[Constraint]:
    out: List[Constraint] = []
    for key, count in groups.items():
        if count < 2:
            continue
        flag = flags[key]
        if flag == spread_flag:
            windows, limit = count, 1
        elif flag == split_flag:
            windows, limit = 2, math.ceil(count / 2)
        else:
            continue
        for start, end in window_bounds(size, windows, rounding):
            out.append(Constraint(start, end, key, limit, predicate, kind))
    return out


def build_constraints(distribution: Sequence[str], rounding: str = None) -> List[Constraint]:
    """Build the full constraint list for ``distribution`` (read only)."""
    policy = rounding if rounding is not None else CFG.WINDOW_ROUNDING
    _rounder(policy)

    size = len(distribution)
    constraints = adjacency_constraints(size)

    cat_counts: Dict[str, int] = {}
    cat_flags: Dict[str, str] = {}
    sub_counts: Dict[str, int] = {}
    sub_flags: Dict[str, str] = {}
    for raw in distribution:
        code = decode(raw)
        cat_counts[code.category] = cat_counts.get(code.category, 0) + 1
        cat_flags.setdefault(code.category, code.category_flag)
        sub_counts[code.sub_key] = sub_counts.get(code.sub_key, 0) + 1
        sub_flags.setdefault(code.sub_key, code.sub_flag)

    constraints.extend(_group_constraints(
        cat_counts, cat_flags, size,
        spread_flag=SPREAD_FLAG,
        split_flag=HALF_SPLIT_FLAG,
        predicate=category_over_limit,
        kind="category",
        rounding=policy,
    ))
    constraints.extend(_group_constraints(
        sub_counts, sub_flags, size,
        spread_flag=SUB_SPREAD_FLAG,
        split_flag=SUB_HALF_SPLIT_FLAG,
        predicate=subcategory_over_limit,
        kind="subcategory",
        rounding=policy,
    ))
    return constraints


__all__ = [
    "adjacent_same_category",
    "category_over_limit",
    "subcategory_over_limit",
    "window_bounds",
    "adjacency_constraints",
    "build_constraints",
    "ROUNDING_POLICIES",
]
