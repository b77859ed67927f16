from __future__ import annotations

from typing import Any, Literal

import attrs
import numpy as np

from .buffers import GuardedBuffer

Outcome = Literal["match", "mismatch", "match_guard_violated", "mismatch_guard_violated"]

_MESSAGES: dict[Outcome, str] = {
    "match": "Success",
    "mismatch": "Fail, but no buffer overruns",
    "match_guard_violated": "Success, but failed buffer overruns check",
    "mismatch_guard_violated": "Failed, and failed buffer overruns check",
}


@attrs.define(frozen=True, slots=True)
class VerificationResult:
    match: bool
    guard_intact: bool
    tolerance: float
    max_abs_error: float
    mismatches: int

    @property
    def outcome(self) -> Outcome:
        if self.guard_intact:
            return "match" if self.match else "mismatch"
        return "match_guard_violated" if self.match else "mismatch_guard_violated"

    @property
    def status(self) -> Literal["pass", "fail"]:
        return "pass" if self.match and self.guard_intact else "fail"

    @property
    def message(self) -> str:
        return _MESSAGES[self.outcome]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "outcome": self.outcome,
            "match": self.match,
            "guard_intact": self.guard_intact,
            "tolerance": self.tolerance,
            "max_abs_error": self.max_abs_error,
            "mismatches": self.mismatches,
        }


def compare_outputs(ref: np.ndarray, cand: np.ndarray, tolerance: float) -> tuple[bool, float, int]:
    """Return (match, max_abs_error, mismatches) for `|ref - cand| <= tolerance` element-wise.

    NaN on either side counts as a mismatch; max_abs_error is then reported as inf.
    """
    if ref.shape != cand.shape:
        raise ValueError(f"Cannot compare outputs of different shapes: {ref.shape} vs {cand.shape}")
    diff = np.abs(ref.astype(np.float64) - cand.astype(np.float64))
    within = diff <= tolerance
    mismatches = int(within.size - np.count_nonzero(within))
    if diff.size == 0:
        return True, 0.0, 0
    max_abs = float(np.nanmax(diff)) if not np.isnan(diff).any() else float("inf")
    return mismatches == 0, max_abs, mismatches


def verify(ref: GuardedBuffer, cand: GuardedBuffer, *, tolerance: float) -> VerificationResult:
    match, max_abs, mismatches = compare_outputs(ref.matrix, cand.matrix, tolerance)
    return VerificationResult(
        match=match,
        guard_intact=cand.guard_intact(),
        tolerance=tolerance,
        max_abs_error=max_abs,
        mismatches=mismatches,
    )
