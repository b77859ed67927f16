from __future__ import annotations

import attrs
import numpy as np

from .config import RunConfig

GUARD_WORD = 0xDEADCAFE
GUARD_ELEMENTS = 4


def _guard_pattern(nbytes: int) -> np.ndarray:
    word = GUARD_WORD.to_bytes(4, "little")
    reps = -(-nbytes // len(word))
    return np.frombuffer(word * reps, dtype=np.uint8)[:nbytes]


class GuardedBuffer:
    """A rows x cols row-major matrix followed by a guard sentinel region.

    The storage is one flat allocation of `rows * cols + guard_elements`
    elements. Kernels only ever see `matrix`, a 2-D view over the logical
    region; the trailing elements hold the repeated `GUARD_WORD` pattern and
    must stay byte-identical for the buffer's whole life.
    """

    __slots__ = ("rows", "cols", "_data", "_guard_snapshot")

    def __init__(self, rows: int, cols: int, *, dtype: str | np.dtype = np.float32, guard_elements: int = GUARD_ELEMENTS) -> None:
        if rows < 1 or cols < 1:
            raise ValueError(f"Buffer dimensions must be positive, got {rows}x{cols}")
        if guard_elements < 1:
            raise ValueError("guard_elements must be >= 1")
        self.rows = rows
        self.cols = cols
        self._data = np.zeros(rows * cols + guard_elements, dtype=dtype)

        guard_bytes = self._data[self.logical_size :].view(np.uint8)
        guard_bytes[:] = _guard_pattern(guard_bytes.size)
        self._guard_snapshot = guard_bytes.tobytes()

    @property
    def logical_size(self) -> int:
        return self.rows * self.cols

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def matrix(self) -> np.ndarray:
        return self._data[: self.logical_size].reshape(self.rows, self.cols)

    @property
    def storage(self) -> np.ndarray:
        """Full flat allocation, sentinel included (for overrun tests and diagnostics)."""
        return self._data

    def guard_bytes(self) -> bytes:
        return self._data[self.logical_size :].tobytes()

    def guard_intact(self) -> bool:
        return self.guard_bytes() == self._guard_snapshot

    def fill_random(self, rng: np.random.Generator) -> None:
        self.matrix[...] = rng.random(self.matrix.shape, dtype=self.dtype)


@attrs.define(frozen=True, slots=True)
class BenchBuffers:
    a: np.ndarray = attrs.field(eq=False)
    b: np.ndarray = attrs.field(eq=False)
    ref: GuardedBuffer = attrs.field(eq=False)
    out: GuardedBuffer = attrs.field(eq=False)


def random_matrix(rng: np.random.Generator, rows: int, cols: int, dtype: str | np.dtype) -> np.ndarray:
    return rng.random((rows, cols), dtype=np.dtype(dtype))


def allocate_buffers(config: RunConfig) -> BenchBuffers:
    """Allocate A, B and the two guarded output buffers for one run.

    Inputs are deterministic for a given seed. Both outputs start with random
    contents so that a kernel skipping zero-initialization cannot pass by
    accident.
    """
    rng = np.random.default_rng(config.seed)
    shape = config.shape
    a = random_matrix(rng, shape.rows_a, shape.cols_a, config.dtype)
    b = random_matrix(rng, shape.cols_a, shape.cols_b, config.dtype)

    ref = GuardedBuffer(shape.rows_a, shape.cols_b, dtype=config.dtype)
    out = GuardedBuffer(shape.rows_a, shape.cols_b, dtype=config.dtype)
    ref.fill_random(rng)
    out.fill_random(rng)
    return BenchBuffers(a=a, b=b, ref=ref, out=out)
