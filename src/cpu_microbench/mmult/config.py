from __future__ import annotations

from pathlib import Path
from typing import Any

import attrs

# Defaults carried over from the original C harness.
A_ROWS = 2500
A_COLS_B_ROWS = 3000
B_COLS = 2100

NUM_RUNS = 100
NUM_STDEVS = 3.0
WARMUP_RUNS = 1
BLOCK_SIZE = 16
TOLERANCE = 1e-5
SEED = 0xDEADBEEF

NTHREADS = 1
CPU = 0

DTYPES: tuple[str, ...] = ("float32", "float64")
DEFAULT_DTYPE = "float32"

# Implementation key -> reporting name (used for file names and reports).
IMPLEMENTATIONS: dict[str, str] = {
    "naive": "mmult_naive",
    "opt": "mmult_opt",
}


class ConfigError(ValueError):
    """Raised when a run configuration is invalid (fails before any allocation)."""


def _positive(_inst: Any, attribute: attrs.Attribute, value: int) -> None:
    if value < 1:
        raise ConfigError(f"{attribute.name} must be a positive integer, got {value!r}")


def _non_negative(_inst: Any, attribute: attrs.Attribute, value: float) -> None:
    if value < 0:
        raise ConfigError(f"{attribute.name} must be non-negative, got {value!r}")


def _known_impl(_inst: Any, _attribute: attrs.Attribute, value: str) -> None:
    if value not in IMPLEMENTATIONS:
        raise ConfigError(f'Unknown "{value}" implementation. Available: {sorted(IMPLEMENTATIONS)}')


def _known_dtype(_inst: Any, _attribute: attrs.Attribute, value: str) -> None:
    if value not in DTYPES:
        raise ConfigError(f"Unsupported dtype={value!r}. Known: {list(DTYPES)}")


@attrs.define(frozen=True, slots=True)
class Shape:
    rows_a: int = attrs.field(validator=_positive)
    cols_a: int = attrs.field(validator=_positive)
    cols_b: int = attrs.field(validator=_positive)

    @property
    def flop_count(self) -> int:
        return 2 * self.rows_a * self.cols_a * self.cols_b

    def to_axis_value(self) -> str:
        return f"{self.rows_a}x{self.cols_a}x{self.cols_b}"

    @staticmethod
    def from_axis_value(v: str) -> "Shape":
        parts = v.split("x")
        if len(parts) != 3:
            raise ConfigError(f"Invalid shape value: {v!r} (expected RxKxC)")
        try:
            rows_a, cols_a, cols_b = (int(p) for p in parts)
        except ValueError as e:
            raise ConfigError(f"Invalid shape value: {v!r} (expected RxKxC)") from e
        return Shape(rows_a=rows_a, cols_a=cols_a, cols_b=cols_b)


@attrs.define(frozen=True, slots=True)
class RunConfig:
    """Everything one harness execution needs; read-only once built."""

    impl: str = attrs.field(validator=_known_impl)
    shape: Shape = attrs.field(factory=lambda: Shape(A_ROWS, A_COLS_B_ROWS, B_COLS))
    num_runs: int = attrs.field(default=NUM_RUNS, validator=_positive)
    nstdevs: float = attrs.field(default=NUM_STDEVS, converter=float, validator=_non_negative)
    warmup_runs: int = attrs.field(default=WARMUP_RUNS, validator=_non_negative)
    block_size: int = attrs.field(default=BLOCK_SIZE, validator=_positive)
    tolerance: float = attrs.field(default=TOLERANCE, converter=float, validator=_non_negative)
    dtype: str = attrs.field(default=DEFAULT_DTYPE, validator=_known_dtype)
    seed: int = attrs.field(default=SEED, validator=_non_negative)
    cpu: int = attrs.field(default=CPU, validator=_non_negative)
    nthreads: int = attrs.field(default=NTHREADS, validator=_positive)
    out_dir: Path = attrs.field(factory=Path.cwd, converter=Path)

    @property
    def impl_str(self) -> str:
        return IMPLEMENTATIONS[self.impl]

    @property
    def affinity_cpus(self) -> range:
        return range(self.cpu, self.cpu + self.nthreads)

    def settings_dict(self) -> dict[str, Any]:
        return {"seed": self.seed, "cpu": self.cpu, "nthreads": self.nthreads}
