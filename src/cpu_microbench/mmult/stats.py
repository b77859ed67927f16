"""Invocation timing and outlier-rejecting runtime statistics."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import attrs
import numpy as np

T = TypeVar("T")

Clock = Callable[[], int]


def run_invocations(kernel: Callable[[T], Any], args: T, num_runs: int, *, clock: Clock = time.perf_counter_ns) -> np.ndarray:
    """Call `kernel(args)` exactly `num_runs` times in sequence, timing each call.

    `clock` must be monotonic and return nanoseconds. Returns a uint64 array of
    per-invocation elapsed times, in call order.
    """
    if num_runs < 1:
        raise ValueError(f"num_runs must be >= 1, got {num_runs}")
    runtimes = np.zeros(num_runs, dtype=np.uint64)
    for i in range(num_runs):
        start = clock()
        kernel(args)
        end = clock()
        runtimes[i] = end - start
    return runtimes


@attrs.define(frozen=True, slots=True)
class StatsPass:
    index: int
    mean: float
    stdev: float
    active: int
    masked: int

    def to_dict(self) -> dict[str, Any]:
        return attrs.asdict(self)


@attrs.define(frozen=True, slots=True)
class RobustAverage:
    mean: float
    stdev: float
    active_count: int
    iterations: int
    min_ns: int
    max_ns: int
    mask: np.ndarray = attrs.field(eq=False, repr=False)
    passes: tuple[StatsPass, ...] = ()

    @property
    def masked_count(self) -> int:
        return int(self.mask.size) - self.active_count

    @property
    def mean_ns(self) -> int:
        return int(round(self.mean))

    def to_dict(self) -> dict[str, Any]:
        return {
            "mean_ns": self.mean,
            "stdev_ns": self.stdev,
            "min_ns": self.min_ns,
            "max_ns": self.max_ns,
            "active_count": self.active_count,
            "masked_count": self.masked_count,
            "iterations": self.iterations,
            "passes": [p.to_dict() for p in self.passes],
        }


def robust_average(records: Sequence[int] | np.ndarray, nstdevs: float) -> RobustAverage:
    """Mean of `records` after iteratively masking outliers.

    Each pass computes the mean and population standard deviation of the
    still-active records and masks every active record whose absolute
    deviation from that mean exceeds `nstdevs * stdev`. The loop stops at the
    first pass that masks nothing. A pass that would mask every active record
    (possible only for `nstdevs < 1`) masks nothing instead, so at least one
    record always stays active.
    """
    runtimes = np.asarray(records, dtype=np.float64)
    if runtimes.ndim != 1 or runtimes.size == 0:
        raise ValueError("robust_average requires a non-empty 1-D sequence of runtimes")
    if nstdevs < 0:
        raise ValueError(f"nstdevs must be non-negative, got {nstdevs}")

    mask = np.ones(runtimes.size, dtype=bool)
    passes: list[StatsPass] = []
    while True:
        active = runtimes[mask]
        mean = float(active.mean())
        stdev = float(active.std())

        outliers = mask & (np.abs(runtimes - mean) > nstdevs * stdev)
        n_masked = int(np.count_nonzero(outliers))
        if n_masked == active.size:
            n_masked = 0
        else:
            mask[outliers] = False

        passes.append(StatsPass(index=len(passes) + 1, mean=mean, stdev=stdev, active=int(active.size), masked=n_masked))
        if n_masked == 0:
            break

    active = runtimes[mask]
    return RobustAverage(
        mean=mean,
        stdev=stdev,
        active_count=int(active.size),
        iterations=len(passes),
        min_ns=int(active.min()),
        max_ns=int(active.max()),
        mask=mask,
        passes=tuple(passes),
    )
