from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import config as cfg
from .config import ConfigError, RunConfig, Shape
from .kernels import CANDIDATES
from .report import report_run
from .runner import benchmark_run
from .sweep import parse_block_sizes, sweep_run


def _abs_path(p: str) -> Path:
    return Path(p).expanduser().resolve()


def _add_bench_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("-ar", "--arows", type=int, default=cfg.A_ROWS, help="Rows of matrix A (default = %(default)s).")
    p.add_argument(
        "-acbr",
        "--acolsnbrows",
        type=int,
        default=cfg.A_COLS_B_ROWS,
        help="Columns of A / rows of B (default = %(default)s).",
    )
    p.add_argument("-bc", "--bcols", type=int, default=cfg.B_COLS, help="Columns of matrix B (default = %(default)s).")
    p.add_argument("--nruns", type=int, default=cfg.NUM_RUNS, help="Number of timed runs (default = %(default)s).")
    p.add_argument(
        "--nstdevs",
        type=float,
        default=cfg.NUM_STDEVS,
        help="Standard deviations beyond which a runtime is an outlier (default = %(default)s).",
    )
    p.add_argument("--warmup", type=int, default=cfg.WARMUP_RUNS, help="Untimed invocations before timing (default = %(default)s).")
    p.add_argument("--tolerance", type=float, default=cfg.TOLERANCE, help="Absolute verification tolerance (default = %(default)s).")
    p.add_argument("--dtype", default=cfg.DEFAULT_DTYPE, choices=list(cfg.DTYPES))
    p.add_argument("--seed", type=lambda s: int(s, 0), default=cfg.SEED, help="Input data seed (default = %(default)#x).")
    p.add_argument("-n", "--nthreads", type=int, default=cfg.NTHREADS, help="CPUs in the affinity mask (default = %(default)s).")
    p.add_argument("-c", "--cpu", type=int, default=cfg.CPU, help="First CPU of the affinity mask (default = %(default)s).")
    p.add_argument("--out-dir", type=_abs_path, default=None, help="Output directory (default: current directory).")
    p.add_argument("--no-sched-hints", action="store_true", help="Skip niceness, FIFO scheduling and affinity setup.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cpu_microbench.mmult",
        description="Matrix-multiply micro-benchmark (naive vs cache-blocked kernels).",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Benchmark one implementation.")
    impl_help = "; ".join(f"{k}: {kern.description}" for k, kern in sorted(CANDIDATES.items()))
    run.add_argument("-i", "--impl", default=None, help=f"Implementation to run ({impl_help})")
    run.add_argument("--block-size", type=int, default=cfg.BLOCK_SIZE, help="Tile size of the opt kernel (default = %(default)s).")
    run.add_argument("--strict", action="store_true", help="Exit 1 when verification fails.")
    _add_bench_args(run)

    sweep = sub.add_parser("sweep", help="Benchmark naive plus opt over several block sizes.")
    sweep.add_argument("--block-sizes", default="8,16,32,64", help="Comma-separated opt block sizes (default = %(default)s).")
    _add_bench_args(sweep)

    report = sub.add_parser("report", help="Generate report.md from results.json (no benchmark run).")
    report.add_argument("--out-dir", type=_abs_path, required=True)

    return parser


def config_from_args(ns: argparse.Namespace, *, impl: str, block_size: int = cfg.BLOCK_SIZE) -> RunConfig:
    return RunConfig(
        impl=impl,
        shape=Shape(rows_a=ns.arows, cols_a=ns.acolsnbrows, cols_b=ns.bcols),
        num_runs=ns.nruns,
        nstdevs=ns.nstdevs,
        warmup_runs=ns.warmup,
        block_size=block_size,
        tolerance=ns.tolerance,
        dtype=ns.dtype,
        seed=ns.seed,
        cpu=ns.cpu,
        nthreads=ns.nthreads,
        out_dir=ns.out_dir or Path.cwd(),
    )


def _impl_error(parser: argparse.ArgumentParser, impl: str | None) -> int:
    if impl is None:
        print("ERROR: No implementation was chosen.", file=sys.stderr)
    else:
        print(f'ERROR: Unknown "{impl}" implementation.', file=sys.stderr)
    parser.print_usage(sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    if ns.cmd == "report":
        return report_run(out_dir=ns.out_dir)

    if ns.cmd == "run":
        if ns.impl not in cfg.IMPLEMENTATIONS:
            return _impl_error(parser, ns.impl)
        try:
            config = config_from_args(ns, impl=ns.impl, block_size=ns.block_size)
        except ConfigError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        return benchmark_run(config, sched_hints=not ns.no_sched_hints, strict=ns.strict)

    if ns.cmd == "sweep":
        try:
            block_sizes = parse_block_sizes(ns.block_sizes)
            base = config_from_args(ns, impl="opt", block_size=block_sizes[0])
            for bs in block_sizes:
                if bs < 1:
                    raise ConfigError(f"block_size must be a positive integer, got {bs}")
        except ValueError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        return sweep_run(base=base, block_sizes=block_sizes, sched_hints=not ns.no_sched_hints)

    raise AssertionError(f"Unhandled cmd: {ns.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
