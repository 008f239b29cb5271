"""
Shared type definitions for the lattice explorer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Direction(Enum):
    """Outgoing edge of a lattice point."""

    N = "N"  # North (increasing y)
    E = "E"  # East (increasing x)


class TerminationReason(Enum):
    """Reason why a forward trace terminated."""

    BUDGET_EXHAUSTED = "budget_exhausted"  # Step budget used up
    COORDINATE_CAP = "coordinate_cap"  # |x| or |y| left the allowed window
    TARGET_REACHED = "target_reached"  # Landed on the requested target point


class AncestorTarget(Enum):
    """Which reachable ancestor counts as extremal during backward search."""

    LEFTMOST = "leftmost"  # Smallest x, then smallest y
    BOTTOM_RIGHT = "bottom_right"  # Smallest y, then largest x


class AncestorStrategy(Enum):
    """Algorithm used to find an ancestor path."""

    BFS = "bfs"  # Bounded breadth-first search (always correct)
    BINARY_SEARCH = "binary_search"  # Ground-row bisection (jump-eligible only)
    AUTO = "auto"  # Bisection when eligible, BFS otherwise or on a miss


@dataclass(frozen=True, order=True)
class Point:
    """An integer lattice point."""

    x: int
    y: int

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


Path = list[Point]


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class RowShift:
    """Per-row coordinate offset parameters."""

    amount: int = 0
    randomize: bool = False


@dataclass(frozen=True)
class ExplorerSettings:
    """Everything the settings layer hands to the path engine."""

    transform_text: str = ""  # Blank = identity transform
    rule_text: str = ""  # Blank = gcd(x,y)==1
    row_shift: RowShift = field(default_factory=RowShift)
    path_step_limit: int = 2000
    backtrace_limit: int = 5000
    coordinate_cap: int | None = None  # None = unbounded window
    ancestor_target: AncestorTarget = AncestorTarget.LEFTMOST
    ancestor_strategy: AncestorStrategy = AncestorStrategy.BFS
