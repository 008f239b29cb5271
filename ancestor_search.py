"""
Backward search: find a far-away ancestor of a point, i.e. a point whose
forward trace passes through it, and the path connecting the two.

Two strategies:
1. Bounded breadth-first search over predecessors. Works for every rule.
2. Ground-row binary search. Only for the jump-eligible configuration
   (identity transform with the default coprimality rule), where a forward
   trace is cheap and start positions on a row are ordered.

Every returned path has the query point at index 0, and each point is the
forward successor of the point after it.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Callable

from lattice import DirectionOracle, traverse_forward
from lattice_types import AncestorStrategy, AncestorTarget, Direction, Path, Point, TerminationReason

logger = logging.getLogger(__name__)

__all__ = [
    "find_ancestor_bfs",
    "find_ancestor_binary_search",
    "trace_backward_ancestor",
]

# Smaller key = more extremal
_EXTREMAL_KEYS: dict[AncestorTarget, Callable[[Point], tuple[int, int]]] = {
    AncestorTarget.LEFTMOST: lambda p: (p.x, p.y),
    AncestorTarget.BOTTOM_RIGHT: lambda p: (p.y, -p.x),
}


def _outside(point: Point, cap: int | None) -> bool:
    return cap is not None and (abs(point.x) > cap or abs(point.y) > cap)


# =============================================================================
# Breadth-first search
# =============================================================================


def find_ancestor_bfs(
    start: Point,
    step_budget: int,
    oracle: DirectionOracle,
    target: AncestorTarget = AncestorTarget.LEFTMOST,
    coordinate_cap: int | None = None,
) -> Path:
    """
    Bounded BFS over predecessors, returning the path to the most extremal
    ancestor found.

    The west neighbour is a predecessor if it moves east; the south
    neighbour is a predecessor if it moves north. The budget counts expanded
    nodes; when it runs out the best ancestor found so far is returned.

    Returns:
        [start, ..., ancestor], or [] if start lies outside coordinate_cap
    """
    if _outside(start, coordinate_cap):
        return []

    key = _EXTREMAL_KEYS[target]
    budget = max(1, step_budget)
    queue: deque[Point] = deque([start])
    parent: dict[Point, Point | None] = {start: None}
    best = start
    expanded = 0

    while queue and expanded < budget:
        current = queue.popleft()
        expanded += 1
        if key(current) < key(best):
            best = current

        candidates = (
            (Point(current.x - 1, current.y), Direction.E),
            (Point(current.x, current.y - 1), Direction.N),
        )
        for candidate, connecting in candidates:
            if candidate in parent or _outside(candidate, coordinate_cap):
                continue
            if oracle.direction(candidate.x, candidate.y) is connecting:
                parent[candidate] = current
                queue.append(candidate)

    if queue:
        logger.info(
            "find_ancestor_bfs: budget of %d exhausted at %s with %d nodes queued",
            budget,
            start,
            len(queue),
        )

    path: Path = []
    node: Point | None = best
    while node is not None:
        path.append(node)
        node = parent[node]
    path.reverse()
    return path


# =============================================================================
# Ground-row binary search
# =============================================================================


class _Probe(Enum):
    HIT = "hit"  # Trace passes through the goal
    LEFT = "left"  # Trace rises past the goal's row west of it
    RIGHT = "right"  # Trace passes the goal's column below or east of it
    UNKNOWN = "unknown"  # Budget ran out first


class _ProbeRunner:
    """Classifies start points on a row, charging every probe to one budget."""

    def __init__(self, goal: Point, oracle: DirectionOracle, budget: int, coordinate_cap: int | None):
        self.goal = goal
        self.oracle = oracle
        self.remaining = budget
        self.coordinate_cap = coordinate_cap
        self.hits: dict[Point, Path] = {}

    def classify(self, start: Point) -> _Probe:
        if self.remaining <= 0:
            return _Probe.UNKNOWN
        goal = self.goal
        trace = traverse_forward(start, self.remaining, self.oracle, self.coordinate_cap, target=goal)
        points: Path = []
        outcome = _Probe.UNKNOWN
        for point in trace:
            points.append(point)
            if point == goal:
                outcome = _Probe.HIT
                break
            if point.x > goal.x:
                outcome = _Probe.RIGHT
                break
            if point.y > goal.y:
                outcome = _Probe.LEFT
                break
        self.remaining -= max(1, trace.steps_taken)
        if outcome is _Probe.UNKNOWN and trace.termination_reason is TerminationReason.COORDINATE_CAP:
            # Left the window before deciding; treat like a miss on the far side
            outcome = _Probe.LEFT if points[-1].x <= goal.x else _Probe.RIGHT
        if outcome is _Probe.HIT:
            self.hits[start] = points
        logger.debug("probe %s -> %s (%d steps left)", start, outcome.value, self.remaining)
        return outcome


def _search_row(runner: _ProbeRunner, row: int) -> Point | None:
    """Smallest start x on row whose trace hits the goal, or None."""
    goal = runner.goal
    hi = goal.x
    hi_class = runner.classify(Point(hi, row))
    if hi_class is not _Probe.HIT and hi_class is not _Probe.RIGHT:
        return None

    # Widen westward until a LEFT probe brackets the boundary
    width = goal.y - row
    lo = hi - width
    while True:
        lo_class = runner.classify(Point(lo, row))
        if lo_class is _Probe.LEFT:
            break
        if lo_class is _Probe.UNKNOWN:
            return None
        hi, hi_class = lo, lo_class
        width *= 2
        lo = hi - width

    # Invariant: lo is LEFT, hi is HIT or RIGHT
    while hi - lo > 1:
        mid = (lo + hi) // 2
        mid_class = runner.classify(Point(mid, row))
        if mid_class is _Probe.UNKNOWN:
            return None
        if mid_class is _Probe.LEFT:
            lo = mid
        else:
            hi, hi_class = mid, mid_class

    return Point(hi, row) if hi_class is _Probe.HIT else None


def _expand_jumps(points: Path) -> Path:
    """Fill in the unit east steps that a jump skipped over."""
    expanded: Path = []
    for point in points:
        if expanded:
            prev = expanded[-1]
            if point.y == prev.y:
                expanded.extend(Point(x, prev.y) for x in range(prev.x + 1, point.x))
        expanded.append(point)
    return expanded


def find_ancestor_binary_search(
    start: Point,
    step_budget: int,
    oracle: DirectionOracle,
    coordinate_cap: int | None = None,
) -> Path | None:
    """
    Find a deep ancestor of start by bisecting ground rows.

    Ground rows start.y - 1, start.y - 2, start.y - 4, ... are searched in
    turn for the smallest x whose forward trace hits start; the deepest row
    with a hit wins. Once a row has no hit, no deeper row can have one.
    Assumes the hit/miss classification is monotone along a row, which holds
    for the jump-eligible configuration.

    Returns:
        [start, ..., ancestor], or None if no ancestor below start was found
    """
    runner = _ProbeRunner(start, oracle, max(1, step_budget), coordinate_cap)
    best: Point | None = None
    depth = 1
    while runner.remaining > 0:
        row = start.y - depth
        if coordinate_cap is not None and abs(row) > coordinate_cap:
            break
        found = _search_row(runner, row)
        if found is None:
            break
        best = found
        depth *= 2

    if best is None:
        return None
    path = _expand_jumps(runner.hits[best])
    path.reverse()
    return path


# =============================================================================
# Entry point
# =============================================================================


def trace_backward_ancestor(
    start: Point,
    step_budget: int,
    oracle: DirectionOracle,
    *,
    target: AncestorTarget = AncestorTarget.LEFTMOST,
    strategy: AncestorStrategy = AncestorStrategy.BFS,
    coordinate_cap: int | None = None,
) -> Path:
    """
    Path from start back to an extremal ancestor, start first.

    BINARY_SEARCH and AUTO only bisect in the jump-eligible configuration and
    use BFS otherwise. AUTO also falls back to BFS when bisection finds
    nothing; BINARY_SEARCH then returns [start].
    """
    match strategy:
        case AncestorStrategy.BFS:
            return find_ancestor_bfs(start, step_budget, oracle, target, coordinate_cap)
        case AncestorStrategy.BINARY_SEARCH | AncestorStrategy.AUTO:
            if not oracle.is_jump_eligible:
                logger.info("trace_backward_ancestor: rules not jump-eligible, using BFS")
                return find_ancestor_bfs(start, step_budget, oracle, target, coordinate_cap)
            if _outside(start, coordinate_cap):
                return []
            path = find_ancestor_binary_search(start, step_budget, oracle, coordinate_cap)
            if path is not None:
                return path
            if strategy is AncestorStrategy.AUTO:
                logger.info("trace_backward_ancestor: bisection found nothing below %s, using BFS", start)
                return find_ancestor_bfs(start, step_budget, oracle, target, coordinate_cap)
            return [start]
        case _:
            raise ValueError(
                f"Unknown ancestor strategy: {strategy!r}\n"
                f"  Valid strategies: {', '.join(s.value for s in AncestorStrategy)}"
            )
