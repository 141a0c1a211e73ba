# solver/orchestrator.py
from __future__ import annotations

import random
import time
from typing import Any, List, Optional, Sequence, Tuple

from models import RowResult, SolveResult
from codes import category_counts, parse_distribution
from config import CFG
from progress import (
    log_attempt_detail,
    log_attempt_warning,
    set_attempt,
    set_best_violations,
    set_distribution_size,
    set_row,
    set_rows_done,
    set_rows_total,
    set_status,
)
from solver.constraints import ROUNDING_POLICIES, build_constraints
from solver.local_search import solve


def is_marked(row: Sequence[Any]) -> bool:
    """A row wants a template when its first cell is non-empty."""
    if not row:
        return False
    first = row[0]
    return first is not None and str(first).strip() != ""


def splice_row(row: Sequence[Any], codes: Sequence[str], offset: int) -> List[Any]:
    """Return a copy of ``row`` with ``codes`` written over ``len(codes)`` cells at ``offset``."""
    if offset < 0:
        raise ValueError(f"template offset must be >= 0, got {offset}")
    out = list(row)
    if len(out) < offset:
        out.extend([""] * (offset - len(out)))
    out[offset:offset + len(codes)] = list(codes)
    return out


def _make_rng(seed: Optional[int], rng: Optional[random.Random]) -> random.Random:
    if rng is not None:
        return rng
    if seed is None:
        seed = CFG.SEED
    return random.Random(seed)


def _check_settings(
    rounding: Optional[str],
    restart_depth: Optional[int],
    max_steps: Optional[int],
) -> None:
    # shared by every row; checked once before the row loop
    policy = rounding if rounding is not None else CFG.WINDOW_ROUNDING
    if policy not in ROUNDING_POLICIES:
        raise ValueError(f"unknown window rounding policy {policy!r}")
    depth = CFG.RESTART_DEPTH if restart_depth is None else restart_depth
    if int(depth) < 0:
        raise ValueError(f"restart_depth must be >= 0, got {depth}")
    steps = CFG.MAX_STEPS if max_steps is None else max_steps
    if int(steps) < 0:
        raise ValueError(f"max_steps must be >= 0, got {steps}")


def _solve_row(
    distribution: Sequence[str],
    rng: random.Random,
    *,
    label: str,
    rounding: Optional[str],
    restart_depth: Optional[int],
    max_steps: Optional[int],
    max_seconds: Optional[float],
) -> SolveResult:
    constraints = build_constraints(distribution, rounding=rounding)
    start = list(distribution)
    rng.shuffle(start)

    def _on_event(event: str, **fields: Any) -> None:
        if event == "restart":
            set_attempt(f"{label} restart {fields.get('restarts')}")
            set_best_violations(fields.get("best"))

    set_attempt(f"{label} restart 0")
    return solve(
        start,
        constraints,
        rng=rng,
        restart_depth=restart_depth,
        max_steps=max_steps,
        max_seconds=max_seconds,
        on_event=_on_event,
    )


def generate_templates(
    distribution: Any,
    rows: Sequence[Sequence[Any]],
    *,
    offset: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
    rounding: Optional[str] = None,
    restart_depth: Optional[int] = None,
    max_steps: Optional[int] = None,
    max_seconds: Optional[float] = None,
) -> Tuple[List[List[Any]], List[RowResult]]:
    """
    Fill every marked row of ``rows`` with an arrangement of ``distribution``.

    Returns ``(rows_out, results)``: the full table (unmarked rows copied
    unchanged) and one :class:`RowResult` per input row.  Rows that fail to
    converge are still written with the best arrangement found; a row whose
    solve raises is left unchanged and the remaining rows carry on.
    """
    codes, err = parse_distribution(distribution)
    if err:
        raise ValueError(f"Bad distribution: {err}")
    if offset is None:
        offset = CFG.TEMPLATE_OFFSET
    offset = int(offset)
    if offset < 0:
        raise ValueError(f"template offset must be >= 0, got {offset}")

    _check_settings(rounding, restart_depth, max_steps)

    rng = _make_rng(seed, rng)
    marked_total = sum(1 for r in rows if is_marked(r))

    log_attempt_detail(
        "Run setup",
        distribution_size=len(codes),
        categories=len(category_counts(codes)),
        rows=len(rows),
        marked=marked_total,
        offset=offset,
    )
    set_status("Solving")
    set_distribution_size(len(codes))
    set_rows_total(marked_total)

    rows_out: List[List[Any]] = []
    results: List[RowResult] = []
    done = unconverged = 0

    for index, row in enumerate(rows):
        if not is_marked(row):
            rows_out.append(list(row))
            results.append(RowResult(index=index, marked=False))
            continue

        label = f"row {index}"
        set_row(index)
        t0 = time.time()
        try:
            res = _solve_row(
                codes,
                rng,
                label=label,
                rounding=rounding,
                restart_depth=restart_depth,
                max_steps=max_steps,
                max_seconds=max_seconds,
            )
        except Exception as exc:
            log_attempt_warning(
                "Row failed",
                row=index,
                error=f"{type(exc).__name__}: {exc}",
            )
            rows_out.append(list(row))
            results.append(RowResult(index=index, marked=True,
                                     error=f"{type(exc).__name__}: {exc}"))
            done += 1
            unconverged += 1
            set_rows_done(done, unconverged=unconverged)
            continue

        rows_out.append(splice_row(row, res.arrangement, offset))
        results.append(RowResult(index=index, marked=True, result=res))
        done += 1
        if not res.converged:
            unconverged += 1
            log_attempt_warning(
                "Row not converged",
                row=index,
                violations=res.violations,
                reason=res.reason,
                steps=res.steps,
                restarts=res.restarts,
            )
        log_attempt_detail(
            "Row solved",
            row=index,
            violations=res.violations,
            steps=res.steps,
            restarts=res.restarts,
            seconds=f"{time.time() - t0:.2f}",
        )
        set_best_violations(res.violations)
        set_rows_done(done, unconverged=unconverged)

    set_attempt("")
    return rows_out, results


__all__ = ["generate_templates", "is_marked", "splice_row"]
