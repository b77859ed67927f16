from __future__ import annotations

from collections.abc import Callable

import attrs
import numpy as np
from numba import njit

from .config import BLOCK_SIZE, IMPLEMENTATIONS


class ShapeMismatchError(ValueError):
    """Raised when A, B and the output do not form a valid A @ B product."""


def _matrix_2d(_inst: object, attribute: attrs.Attribute, value: np.ndarray) -> None:
    if not isinstance(value, np.ndarray) or value.ndim != 2:
        raise ShapeMismatchError(f"{attribute.name} must be a 2-D ndarray")
    if not np.issubdtype(value.dtype, np.floating):
        raise ShapeMismatchError(f"{attribute.name} must have a floating-point dtype, got {value.dtype}")


def _positive_block(_inst: object, attribute: attrs.Attribute, value: int) -> None:
    if value < 1:
        raise ValueError(f"{attribute.name} must be >= 1, got {value!r}")


@attrs.define(frozen=True, slots=True)
class MmultArgs:
    """Operands of `out = a @ b`; checked once here so the kernels can stay unchecked."""

    a: np.ndarray = attrs.field(eq=False, validator=_matrix_2d)
    b: np.ndarray = attrs.field(eq=False, validator=_matrix_2d)
    out: np.ndarray = attrs.field(eq=False, validator=_matrix_2d)
    block_size: int = attrs.field(default=BLOCK_SIZE, validator=_positive_block)

    def __attrs_post_init__(self) -> None:
        rows_a, cols_a = self.a.shape
        rows_b, cols_b = self.b.shape
        if cols_a != rows_b:
            raise ShapeMismatchError(f"Shared dimension mismatch: A is {rows_a}x{cols_a}, B is {rows_b}x{cols_b}")
        if self.out.shape != (rows_a, cols_b):
            raise ShapeMismatchError(f"Output must be {rows_a}x{cols_b}, got {self.out.shape[0]}x{self.out.shape[1]}")
        if not (self.a.dtype == self.b.dtype == self.out.dtype):
            raise ShapeMismatchError(f"Mixed dtypes: a={self.a.dtype}, b={self.b.dtype}, out={self.out.dtype}")

    @property
    def rows_a(self) -> int:
        return self.a.shape[0]

    @property
    def cols_a(self) -> int:
        return self.a.shape[1]

    @property
    def cols_b(self) -> int:
        return self.b.shape[1]


@njit
def _mmult_ref(a, b, out):
    rows_a, cols_a = a.shape
    cols_b = b.shape[1]
    for i in range(rows_a):
        for j in range(cols_b):
            out[i, j] = 0.0
    for i in range(rows_a):
        for j in range(cols_b):
            acc = out[i, j]
            for k in range(cols_a):
                acc += a[i, k] * b[k, j]
            out[i, j] = acc


@njit
def _mmult_naive(a, b, out):
    rows_a, cols_a = a.shape
    cols_b = b.shape[1]
    for i in range(rows_a):
        for j in range(cols_b):
            out[i, j] = 0.0
            for k in range(cols_a):
                out[i, j] += a[i, k] * b[k, j]


@njit
def _mmult_blocked(a, b, out, block_size):
    rows_a, cols_a = a.shape
    cols_b = b.shape[1]
    for i in range(rows_a):
        for j in range(cols_b):
            out[i, j] = 0.0

    for ii in range(0, rows_a, block_size):
        i_end = min(ii + block_size, rows_a)
        for jj in range(0, cols_b, block_size):
            j_end = min(jj + block_size, cols_b)
            for kk in range(0, cols_a, block_size):
                k_end = min(kk + block_size, cols_a)
                for i in range(ii, i_end):
                    for j in range(jj, j_end):
                        # Partial sum from earlier kk tiles; never re-zeroed.
                        val = out[i, j]
                        for k in range(kk, k_end):
                            val += a[i, k] * b[k, j]
                        out[i, j] = val


def mmult_ref(args: MmultArgs) -> None:
    _mmult_ref(args.a, args.b, args.out)


def mmult_naive(args: MmultArgs) -> None:
    _mmult_naive(args.a, args.b, args.out)


def mmult_opt(args: MmultArgs) -> None:
    _mmult_blocked(args.a, args.b, args.out, args.block_size)


@attrs.define(frozen=True, slots=True)
class Kernel:
    key: str
    impl_str: str
    description: str
    func: Callable[[MmultArgs], None] = attrs.field(eq=False)
    uses_block_size: bool = False

    def __call__(self, args: MmultArgs) -> None:
        self.func(args)


REFERENCE = Kernel(key="ref", impl_str="mmult_ref", description="Reference triple loop (oracle).", func=mmult_ref)

CANDIDATES: dict[str, Kernel] = {
    "naive": Kernel(key="naive", impl_str=IMPLEMENTATIONS["naive"], description="Naive triple loop.", func=mmult_naive),
    "opt": Kernel(
        key="opt",
        impl_str=IMPLEMENTATIONS["opt"],
        description="Cache-blocked (tiled) six-level loop nest.",
        func=mmult_opt,
        uses_block_size=True,
    ),
}


def get_kernel(key: str) -> Kernel:
    if key == REFERENCE.key:
        return REFERENCE
    if key not in CANDIDATES:
        raise KeyError(f"Unknown kernel={key!r}. Known: {sorted(CANDIDATES)}")
    return CANDIDATES[key]
