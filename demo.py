"""
Command-line demonstration of the lattice explorer.

Examples:
    python demo.py                          # default coprimality lattice
    python demo.py fibonacci --start 8 5
    python demo.py --rule "gcd(x,y)==1 || x%3==0" --strategy auto
    python demo.py shifted --verbose
    python demo.py squares --degree 1
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ancestor_search import trace_backward_ancestor
from ascii_render import format_value, render_window
from lattice import DirectionOracle, traverse_forward
from lattice_cache import LatticeCaches
from lattice_types import AncestorStrategy, AncestorTarget, ExplorerSettings, Path, Point, RowShift

PRESETS: dict[str, ExplorerSettings] = dict(
    coprime=ExplorerSettings(),
    fibonacci=ExplorerSettings(transform_text="fib(n)"),
    squares=ExplorerSettings(transform_text="n^2+1"),
    shifted=ExplorerSettings(row_shift=RowShift(3)),
    scrambled=ExplorerSettings(row_shift=RowShift(5, randomize=True)),
    threes=ExplorerSettings(rule_text="gcd(x,y)==1 || x%3==0"),
    broken=ExplorerSettings(transform_text="fib(n", rule_text="gcd(x,y"),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trace paths through a gcd lattice.")
    parser.add_argument("preset", nargs="?", default="coprime", choices=sorted(PRESETS))
    parser.add_argument("--transform", help="transform f(n), e.g. 'fib(n)'")
    parser.add_argument("--rule", help="move-east rule P(x,y), e.g. 'gcd(x,y)==1'")
    parser.add_argument("--shift", type=int, help="row shift amount k")
    parser.add_argument("--randomize", action="store_true", help="randomize row shift magnitudes")
    parser.add_argument("--start", type=int, nargs=2, default=(3, 2), metavar=("X", "Y"))
    parser.add_argument("--steps", type=int, default=60, help="forward trace step budget")
    parser.add_argument("--backtrace", type=int, default=5000, help="ancestor search budget")
    parser.add_argument("--cap", type=int, help="coordinate cap for traces")
    parser.add_argument("--target", choices=[t.value for t in AncestorTarget], default="leftmost")
    parser.add_argument("--strategy", choices=[s.value for s in AncestorStrategy], default="bfs")
    parser.add_argument("--window", type=int, default=12, help="half-width of the rendered window")
    parser.add_argument("--factored", action="store_true", help="label cells with factorizations")
    parser.add_argument("--degree", type=int, help="simple view: only label gcds with this many prime factors")
    parser.add_argument("--verbose", action="store_true", help="log engine decisions")
    return parser


def settings_from_args(args: argparse.Namespace) -> ExplorerSettings:
    """Preset settings with command-line overrides applied."""
    settings = PRESETS[args.preset]
    changes: dict[str, object] = dict(
        path_step_limit=args.steps,
        backtrace_limit=args.backtrace,
        coordinate_cap=args.cap,
        ancestor_target=AncestorTarget(args.target),
        ancestor_strategy=AncestorStrategy(args.strategy),
    )
    if args.transform is not None:
        changes["transform_text"] = args.transform
    if args.rule is not None:
        changes["rule_text"] = args.rule
    if args.shift is not None or args.randomize:
        base = settings.row_shift
        amount = args.shift if args.shift is not None else base.amount
        changes["row_shift"] = RowShift(amount, args.randomize or base.randomize)
    return replace(settings, **changes)  # type: ignore[arg-type]


def rules_panel(oracle: DirectionOracle) -> Panel:
    """Compiled rule summary, with compile errors if any."""
    status = Text()
    for label, compiled in (("Transform", oracle.transform), ("Rule", oracle.predicate)):
        status.append(f"{label}: ", style="bold")
        status.append(f"{compiled.source}\n")
        if compiled.error:
            status.append(f"  {compiled.error}\n", style="red")
            status.append("  (falling back to the default)\n", style="dim")
    shift = oracle.row_shift
    status.append("Row shift: ", style="bold")
    status.append(f"{shift.amount}{' (randomized)' if shift.randomize else ''}\n")
    status.append("Jump eligible: ", style="bold")
    status.append("yes" if oracle.is_jump_eligible else "no")
    has_error = bool(oracle.transform.error or oracle.predicate.error)
    return Panel(status, title="Rules", border_style="red" if has_error else "green")


def path_table(title: str, path: Path, oracle: DirectionOracle, limit: int = 20) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("point")
    table.add_column("edge")
    table.add_column("gcd", justify="right")
    table.add_column("factors")
    indexed = list(enumerate(path))
    shown = indexed if len(indexed) <= limit else indexed[: limit - 1] + indexed[-1:]
    for index, point in shown:
        g = oracle.gcd_at(point.x, point.y)
        table.add_row(
            str(index),
            str(point),
            oracle.direction(point.x, point.y).value,
            str(g),
            format_value(g),
        )
    if len(path) > limit:
        table.caption = f"{len(path) - limit} points omitted"
    return table


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    console = Console()
    settings = settings_from_args(args)
    oracle = DirectionOracle.from_settings(settings, LatticeCaches())
    start = Point(*args.start)

    console.print(rules_panel(oracle))

    trace = traverse_forward(start, settings.path_step_limit, oracle, settings.coordinate_cap)
    forward = list(trace)
    console.print(path_table(f"Forward trace from {start}", forward, oracle))
    reason = trace.termination_reason.value if trace.termination_reason else "unknown"
    console.print(f"Stopped ({reason}) after {trace.steps_taken} steps\n")

    ancestor = trace_backward_ancestor(
        start,
        settings.backtrace_limit,
        oracle,
        target=settings.ancestor_target,
        strategy=settings.ancestor_strategy,
        coordinate_cap=settings.coordinate_cap,
    )
    if ancestor:
        console.print(path_table(f"Ancestor path ({settings.ancestor_strategy.value})", ancestor, oracle))
    else:
        console.print("[red]Start point is outside the coordinate cap[/red]")

    half = max(1, args.window)
    window = render_window(
        oracle,
        (start.x - half, start.x + half),
        (start.y - half // 2, start.y + half // 2),
        path=set(forward) | set(ancestor),
        factored=args.factored,
        degree=args.degree,
    )
    console.print(Panel(Text.from_ansi(window), title="Lattice", border_style="blue"))


if __name__ == "__main__":
    main(sys.argv[1:])
