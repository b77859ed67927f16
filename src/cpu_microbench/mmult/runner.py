from __future__ import annotations

import sys
import time
from typing import Any

import attrs
import numpy as np
from jsonschema import ValidationError

from . import sched
from .buffers import BenchBuffers, allocate_buffers
from .config import RunConfig
from .export import (
    build_record,
    normalize_results,
    runtimes_csv_path,
    update_results,
    utc_now_iso,
    write_runtimes_csv,
)
from .kernels import REFERENCE, MmultArgs, get_kernel
from .stats import Clock, RobustAverage, robust_average, run_invocations
from .verify import VerificationResult, verify


@attrs.define(frozen=True, slots=True)
class Measurement:
    runtimes: np.ndarray = attrs.field(eq=False)
    stats: RobustAverage
    verification: VerificationResult


def measure(config: RunConfig, buffers: BenchBuffers, *, clock: Clock = time.perf_counter_ns) -> Measurement:
    """Run the reference once, then time the configured candidate and verify its last output."""
    kernel = get_kernel(config.impl)

    REFERENCE(MmultArgs(a=buffers.a, b=buffers.b, out=buffers.ref.matrix))

    args = MmultArgs(a=buffers.a, b=buffers.b, out=buffers.out.matrix, block_size=config.block_size)
    print(f'Running "{kernel.impl_str}" implementation:')
    if config.warmup_runs:
        print(f"  * Warming up ({config.warmup_runs} untimed invocation(s)) .... ", end="")
        for _ in range(config.warmup_runs):
            kernel(args)
        print("Finished")

    print(f"  * Invoking the implementation {config.num_runs} times .... ", end="")
    runtimes = run_invocations(kernel, args, config.num_runs, clock=clock)
    print("Finished")

    print("  * Verifying results .... ", end="")
    verification = verify(buffers.ref, buffers.out, tolerance=config.tolerance)
    print(verification.message)

    print("  * Running statistics:")
    stats = robust_average(runtimes, config.nstdevs)
    for p in stats.passes:
        print(f"    + Starting statistics run number #{p.index}:")
        print(f"      - Standard deviation = {p.stdev:.0f}")
        print(f"      - Average = {p.mean:.0f}")
        print(f"      - Number of active elements = {p.active}")
        print(f"      - Number of masked-off = {p.masked}")
    match_str = "Success" if verification.match else "Fail"
    print(f"  * Runtimes ({match_str}):  {stats.mean_ns} ns")

    return Measurement(runtimes=runtimes, stats=stats, verification=verification)


def print_sched_hints(hints: list[sched.SchedHint]) -> None:
    print("Setting up schedulers and affinity:")
    for h in hints:
        details = f" ({h.details})" if h.details else ""
        print(f"  * {h.name} ... {h.status}{details}")
    print("")


def dump_runtimes(config: RunConfig, m: Measurement) -> bool:
    path = runtimes_csv_path(config.out_dir, config.impl_str)
    print("  * Dumping runtime informations:")
    print(f"    - Filename: {path}")
    try:
        config.out_dir.mkdir(parents=True, exist_ok=True)
        write_runtimes_csv(path, impl_str=config.impl_str, runtimes=m.runtimes, avg_ns=m.stats.mean_ns)
    except OSError as e:
        print(f"Failed to write {path}: {e}", file=sys.stderr)
        return False
    print("    - Writing runtimes ... Finished")
    return True


def dump_results(config: RunConfig, record: dict[str, Any], *, started_at: str) -> dict[str, Any] | None:
    try:
        results = normalize_results([record], config=config, started_at=started_at, finished_at=utc_now_iso())
        return update_results(config.out_dir, results)
    except (OSError, ValueError, ValidationError) as e:
        print(f"Failed to update results.json under {config.out_dir}: {e}", file=sys.stderr)
        return None


def benchmark_run(config: RunConfig, *, sched_hints: bool = True, strict: bool = False, clock: Clock = time.perf_counter_ns) -> int:
    """Run one full benchmark for `config` and persist its results.

    Returns 0 on completion. Verification failures do not change the exit
    code unless `strict` is set; report-write failures never do.
    """
    started_at = utc_now_iso()

    hints: list[sched.SchedHint] = []
    if sched_hints:
        hints = sched.apply_all(config.affinity_cpus)
        print_sched_hints(hints)

    buffers = allocate_buffers(config)
    m = measure(config, buffers, clock=clock)

    dump_runtimes(config, m)
    record = build_record(config, runtimes=m.runtimes, stats=m.stats, verification=m.verification, sched=hints)
    dump_results(config, record, started_at=started_at)
    print("")

    if strict and m.verification.status == "fail":
        return 1
    return 0
