# solver/evaluate.py
from typing import List, Sequence

from models import Constraint


def violations(arrangement: Sequence[str], constraints: Sequence[Constraint]) -> int:
    """Count the constraints currently violated by ``arrangement``."""
    return sum(1 for c in constraints if c.is_violated(arrangement))


def violated(arrangement: Sequence[str], constraints: Sequence[Constraint]) -> List[Constraint]:
    return [c for c in constraints if c.is_violated(arrangement)]


__all__ = ["violations", "violated"]
