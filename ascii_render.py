"""
ASCII rendering for lattice windows.

Each cell shows its outgoing edge (↑ or →) preceded by a label: the gcd of
the transformed coordinates when it is greater than 1, or its prime
factorization when factored=True. The origin is always labeled ("0" when
its gcd is not above 1). Points on a highlighted path and the origin can be
colored with simple_chalk.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

import simple_chalk as chalk  # type: ignore[import-untyped]

from expr_builtins import prime_factor_count, prime_factors, to_int
from lattice import DirectionOracle
from lattice_types import Direction, Point

logger = logging.getLogger(__name__)

__all__ = ["format_value", "render_window"]

ARROWS = {Direction.N: "↑", Direction.E: "→"}
PATH_ARROWS = {Direction.N: "⇑", Direction.E: "⇒"}
_SUPERSCRIPTS = str.maketrans("0123456789", "⁰¹²³⁴⁵⁶⁷⁸⁹")


def format_value(n: int) -> str:
    """
    Prime factorization with superscript exponents, e.g. 360 -> "2³·3²·5".

    Returns "" for 1 and 0, and the plain number if it cannot be factored.
    """
    factors = prime_factors(n)
    if factors is None:
        return str(n)
    if not factors:
        return ""

    parts: list[str] = []
    i = 0
    while i < len(factors):
        p = factors[i]
        count = 1
        while i + count < len(factors) and factors[i + count] == p:
            count += 1
        parts.append(str(p) if count == 1 else f"{p}{str(count).translate(_SUPERSCRIPTS)}")
        i += count
    return "·".join(parts)


def _cell_label(g: int, factored: bool, origin: bool = False) -> str:
    if g <= 1:
        return "0" if origin else "·"
    return format_value(g) if factored else str(g)


def _matches_degree(oracle: DirectionOracle, x: int, y: int, g: int, degree: int) -> bool:
    """Simple view: g has exactly degree prime factors and equals |f(x')| or |f(y)|."""
    if g <= 1 or prime_factor_count(g) != degree:
        return False
    vx = to_int(oracle.transform.evaluate(oracle.effective_x(x, y)))
    vy = to_int(oracle.transform.evaluate(y))
    return g in {abs(v) for v in (vx, vy) if v is not None}


def render_window(
    oracle: DirectionOracle,
    x_range: tuple[int, int],
    y_range: tuple[int, int],
    path: Iterable[Point] = (),
    cell_width: int = 5,
    factored: bool = False,
    color: bool = True,
    degree: int | None = None,
) -> str:
    """
    Render the lattice points with x in x_range and y in y_range (inclusive).

    Rows run top (largest y) to bottom, each prefixed by its y value, with an
    x axis underneath.

    Args:
        oracle: Edge oracle for the current rules
        x_range: (min_x, max_x)
        y_range: (min_y, max_y)
        path: Points to highlight
        cell_width: Characters per cell including the arrow
        factored: Label cells with factorizations instead of gcd values
        color: Emit ANSI colors
        degree: Simple view; hide labels whose gcd does not have this many
            prime factors or does not equal a transformed coordinate

    Returns:
        Multi-line string
    """
    (min_x, max_x), (min_y, max_y) = x_range, y_range
    if min_x > max_x or min_y > max_y or cell_width < 2:
        raise ValueError(
            f"Invalid window: x_range={x_range}, y_range={y_range}, cell_width={cell_width}\n"
            f"  Ranges must be (low, high) with low <= high and cells at least 2 wide"
        )

    on_path = set(path)
    label_width = cell_width - 1
    axis_width = max(len(str(min_y)), len(str(max_y)))
    logger.debug("render_window: %dx%d cells", max_x - min_x + 1, max_y - min_y + 1)

    def paint(text: str, point: Point, g: int, hidden: bool) -> str:
        if not color:
            return text
        colorize: Callable[[str], str] | None = None
        if point == Point(0, 0):
            colorize = chalk.yellow
        elif point in on_path:
            colorize = chalk.cyan
        elif g > 1 and not hidden:
            colorize = chalk.red
        return colorize(text) if colorize else text

    lines: list[str] = []
    for y in range(max_y, min_y - 1, -1):
        cells: list[str] = []
        for x in range(min_x, max_x + 1):
            point = Point(x, y)
            g = oracle.gcd_at(x, y)
            origin = point == Point(0, 0)
            hidden = degree is not None and not origin and not _matches_degree(oracle, x, y, g, degree)
            label = "·" if hidden else _cell_label(g, factored, origin)
            label = label[-label_width:].rjust(label_width)
            arrows = PATH_ARROWS if point in on_path else ARROWS
            arrow = arrows[oracle.direction(x, y)]
            cells.append(paint(label + arrow, point, g, hidden))
        lines.append(f"{str(y).rjust(axis_width)} │" + "".join(cells))

    lines.append(" " * axis_width + " └" + "─" * (cell_width * (max_x - min_x + 1)))
    axis = "".join(str(x).rjust(cell_width) for x in range(min_x, max_x + 1))
    lines.append(" " * (axis_width + 2) + axis)
    return "\n".join(lines)
