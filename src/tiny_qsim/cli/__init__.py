"""
Command-line interface for tiny-qsim.

Usage:
    tiny-qsim run "H X#0\\nI X#1" --seed 7 --probabilities
    tiny-qsim run --file bell.grid
    tiny-qsim sample bell --shots 1000 --workers 4
    tiny-qsim gates
"""
import argparse
import logging
import sys
from pathlib import Path

DEMOS = {
    "bell": "H X#0 M#0\nI X#1 M#1",
    "ghz": "H X#0 X#0 M#0\nI X#1 -   M#1\nI -   X#1 M#2",
    "coin": "H M",
}


def _load_grid(args):
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    if not args.grid:
        raise SystemExit("error: give a grid, a demo name or --file")
    if args.grid in DEMOS:
        return DEMOS[args.grid]
    return args.grid.replace("\\n", "\n")


def _options(args, **extra):
    from ..config import load_options

    return load_options(args.config, seed=args.seed, **extra)


def cmd_run(args):
    """Run a grid circuit once and print its state and measurements."""
    from ..runner import run_circuit
    from ..text import parse_grid

    circuit = parse_grid(_load_grid(args))
    options = _options(args, collect_probabilities=args.probabilities or None)
    result = run_circuit(circuit, options)

    print(f"\n{circuit!r}")
    print("\nFinal state:")
    state = result.final_state
    for i, amp in enumerate(state.data):
        if abs(amp) > 1e-10:
            print(f"  |{state.bitstring(i)}⟩: {amp: .4f}")
    if result.measurements:
        print("\nMeasurements:")
        for m in result.measurements:
            print(f"  moment {m.moment}: registers {list(m.registers)} -> {m.bitstring}")
    if result.probabilities is not None:
        print("\nProbabilities:")
        for bits, p in result.probabilities.items():
            print(f"  |{bits}⟩: {p:.2%}")
    return 0


def cmd_sample(args):
    """Run a grid circuit many times and print the histogram."""
    from ..runner import sample_with_options
    from ..text import parse_grid

    circuit = parse_grid(_load_grid(args))
    options = _options(args, shots=args.shots, workers=args.workers)
    result = sample_with_options(circuit, options)

    print(f"\n{circuit!r}: {result.shots} shots")
    for bits, count in result.counts.items():
        pct = 100 * count / result.shots
        bar = "█" * int(pct / 2)
        print(f"  {bits}: {count:6d} ({pct:5.1f}%) {bar}")
    return 0


def cmd_gates(args):
    """List the gate catalog."""
    from ..gates import catalog

    for gate in catalog():
        names = ", ".join((gate.name, *gate.aliases))
        arity = f"{gate.n_controls}c+{gate.n_targets}t" if gate.n_controls else f"{gate.n_targets}"
        params = f" params={gate.n_params}" if gate.n_params else ""
        print(f"  {names:<28} registers={arity}{params}  {gate.description}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tiny-qsim",
        description="A small quantum state-vector simulator",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def add_grid_args(sub):
        sub.add_argument("grid", nargs="?", help=f"Grid text (rows split by \\n) or demo: {', '.join(DEMOS)}")
        sub.add_argument("--file", help="Read the grid from a file")
        sub.add_argument("--seed", type=int, default=None, help="Random seed")
        sub.add_argument("--config", default=None, help="YAML options file")

    run_parser = subparsers.add_parser("run", help="Run a circuit once")
    add_grid_args(run_parser)
    run_parser.add_argument("--probabilities", action="store_true", help="Print final probabilities")
    run_parser.set_defaults(func=cmd_run)

    sample_parser = subparsers.add_parser("sample", help="Histogram over many shots")
    add_grid_args(sample_parser)
    sample_parser.add_argument("--shots", type=int, default=None, help="Number of shots")
    sample_parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    sample_parser.set_defaults(func=cmd_sample)

    gates_parser = subparsers.add_parser("gates", help="List available gates")
    gates_parser.set_defaults(func=cmd_gates)
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )

    if args.command is None:
        parser.print_help()
        return 0

    from ..exceptions import QuantumError
    from ..text import GridParseError

    try:
        return args.func(args)
    except (QuantumError, GridParseError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
