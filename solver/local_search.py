# solver/local_search.py
"""
Steepest-descent pairwise-swap search with randomized restarts.

Each step scans every swap of two positions and moves to the strictly best
neighbour (first found on ties).  After ``restart_depth + 1`` consecutive
steps from one shuffle, or as soon as no swap improves the current
arrangement, the arrangement is reshuffled.  The best arrangement seen across
all restarts is returned once the violation count reaches zero, the step
ceiling is hit, or the timebox expires.
"""
import random
import time
from typing import Callable, List, Optional, Sequence, Tuple

from models import Constraint, SolveResult
from solver.evaluate import violations
from config import CFG

EventHook = Callable[..., None]


def _best_swap(
    current: List[str],
    constraints: Sequence[Constraint],
    score: int,
) -> Tuple[int, Optional[Tuple[int, int]]]:
    """Return (score, (i, j)) of the strictly best swap, or (score, None) if none improves.

    Swaps are applied in place and undone, so ``current`` is unchanged on return.
    """
    best_score = score
    best_pair: Optional[Tuple[int, int]] = None
    n = len(current)
    for i in range(n - 1):
        for j in range(i + 1, n):
            if current[i] == current[j]:
                continue
            current[i], current[j] = current[j], current[i]
            s = violations(current, constraints)
            current[i], current[j] = current[j], current[i]
            if s < best_score:
                best_score = s
                best_pair = (i, j)
                if s == 0:
                    return best_score, best_pair
    return best_score, best_pair


def _emit(hook: Optional[EventHook], event: str, **fields) -> None:
    if hook is not None:
        hook(event, **fields)


def solve(
    arrangement: Sequence[str],
    constraints: Sequence[Constraint],
    *,
    rng: Optional[random.Random] = None,
    restart_depth: Optional[int] = None,
    max_steps: Optional[int] = None,
    max_seconds: Optional[float] = None,
    on_event: Optional[EventHook] = None,
) -> SolveResult:
    """Reorder ``arrangement`` to minimise violated ``constraints``.

    The input is not mutated; the returned arrangement is always a
    permutation of it.  ``on_event(event, **fields)`` is called on every
    restart and stall.
    """
    if restart_depth is None:
        restart_depth = CFG.RESTART_DEPTH
    if max_steps is None:
        max_steps = CFG.MAX_STEPS
    if max_seconds is None:
        max_seconds = CFG.MAX_SECONDS
    restart_depth = int(restart_depth)
    max_steps = int(max_steps)
    if restart_depth < 0:
        raise ValueError(f"restart_depth must be >= 0, got {restart_depth}")
    if max_steps < 0:
        raise ValueError(f"max_steps must be >= 0, got {max_steps}")
    deadline = time.time() + float(max_seconds) if max_seconds and max_seconds > 0 else None
    if rng is None:
        rng = random.Random()

    current = list(arrangement)
    score = violations(current, constraints)
    best, best_score = list(current), score

    if len(current) < 2:
        return SolveResult(best, best_score, converged=best_score == 0, reason="degenerate")

    depth = steps = restarts = max_depth = 0
    reason = ""
    while True:
        if score == 0:
            reason = "solved"
            break
        if steps >= max_steps:
            reason = "step limit"
            break
        if deadline is not None and time.time() > deadline:
            reason = "timebox"
            break

        if depth > restart_depth:
            rng.shuffle(current)
            score = violations(current, constraints)
            depth = 0
            restarts += 1
            if score < best_score:
                best, best_score = list(current), score
            _emit(on_event, "restart", restarts=restarts, steps=steps,
                  violations=score, best=best_score)
            continue

        new_score, pair = _best_swap(current, constraints, score)
        steps += 1
        max_depth = max(max_depth, depth)

        if pair is None:
            # local optimum: descent from here is a no-op, so reshuffle next
            _emit(on_event, "stall", steps=steps, depth=depth, violations=score)
            depth = restart_depth + 1
            continue

        i, j = pair
        current[i], current[j] = current[j], current[i]
        score = new_score
        depth += 1
        if score < best_score:
            best, best_score = list(current), score

    return SolveResult(
        arrangement=best,
        violations=best_score,
        steps=steps,
        restarts=restarts,
        max_depth=max_depth,
        converged=best_score == 0,
        reason=reason,
    )


__all__ = ["solve"]
