from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

Predicate = Callable[[Sequence[str], str, int], bool]

@dataclass(frozen=True)
class Code:
    raw: str
    category: str
    category_flag: str
    sub_key: str
    sub_flag: str

    def __str__(self) -> str:
        return self.raw

@dataclass(frozen=True)
class Constraint:
    start: int
    end: int
    bound: str
    limit: int
    predicate: Predicate = field(compare=False)
    kind: str = "adjacent"

    def window(self, arrangement: Sequence[str]) -> Sequence[str]:
        return arrangement[self.start:self.end + 1]

    def is_violated(self, arrangement: Sequence[str]) -> bool:
        return self.predicate(self.window(arrangement), self.bound, self.limit)

    def describe(self) -> str:
        return f"{self.kind} {self.bound!r} [{self.start}..{self.end}] limit {self.limit}"

@dataclass
class SolveResult:
    arrangement: List[str]
    violations: int
    steps: int = 0
    restarts: int = 0
    max_depth: int = 0
    converged: bool = False
    reason: str = ""

@dataclass
class RowResult:
    index: int
    marked: bool
    result: Optional[SolveResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        if not self.marked:
            return True
        return self.error is None and self.result is not None and self.result.converged

    def as_dict(self):
        out = dict(index=self.index, marked=self.marked, ok=self.ok, error=self.error)
        if self.result is not None:
            out.update(
                violations=self.result.violations,
                steps=self.result.steps,
                restarts=self.result.restarts,
                converged=self.result.converged,
                reason=self.result.reason,
            )
        return out
