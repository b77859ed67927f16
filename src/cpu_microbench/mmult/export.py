from __future__ import annotations

import csv
import json
import platform
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numba
import numpy as np
from jsonschema import Draft202012Validator

from .config import RunConfig
from .kernels import get_kernel
from .sched import SchedHint
from .stats import RobustAverage
from .verify import VerificationResult

SCHEMA_VERSION = "1.0.0"
RESULTS_FILE = "results.json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def runtimes_csv_path(out_dir: Path, impl_str: str) -> Path:
    return out_dir / f"{impl_str}_runtimes.csv"


def write_runtimes_csv(path: Path, *, impl_str: str, runtimes: np.ndarray, avg_ns: int) -> None:
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["impl", impl_str])
        writer.writerow(["num_of_runs", len(runtimes)])
        writer.writerow(["runtimes", *(int(v) for v in runtimes)])
        writer.writerow(["avg", avg_ns])


def read_runtimes_csv(path: Path) -> dict[str, Any]:
    with path.open(newline="") as f:
        rows = {row[0]: row[1:] for row in csv.reader(f) if row}
    return {
        "impl": rows["impl"][0],
        "num_of_runs": int(rows["num_of_runs"][0]),
        "runtimes": [int(v) for v in rows["runtimes"]],
        "avg": int(rows["avg"][0]),
    }


def default_schema_path() -> Path:
    return Path(__file__).resolve().parent / "schemas" / "results.schema.json"


def validate_results_schema(results: dict[str, Any], *, schema_path: Path | None = None) -> None:
    schema_path = default_schema_path() if schema_path is None else schema_path
    schema = json.loads(schema_path.read_text())
    Draft202012Validator(schema).validate(results)


def record_block_size(impl: str, block_size: int) -> int | None:
    """Block size as recorded: only kernels that tile carry one."""
    return block_size if get_kernel(impl).uses_block_size else None


def _gflops(flop_count: int, mean_ns: float) -> float | None:
    if mean_ns <= 0:
        return None
    return flop_count / mean_ns


def build_record(
    config: RunConfig,
    *,
    runtimes: np.ndarray,
    stats: RobustAverage,
    verification: VerificationResult,
    sched: list[SchedHint] | None = None,
) -> dict[str, Any]:
    shape = config.shape
    return {
        "impl": config.impl,
        "impl_str": config.impl_str,
        "shape": {"rows_a": shape.rows_a, "cols_a": shape.cols_a, "cols_b": shape.cols_b},
        "dtype": config.dtype,
        "block_size": record_block_size(config.impl, config.block_size),
        "flop_count": shape.flop_count,
        "timing": {
            "clock": "perf_counter_ns",
            "num_runs": config.num_runs,
            "warmup_runs": config.warmup_runs,
            "nstdevs": config.nstdevs,
            "runtimes_ns": [int(v) for v in runtimes],
            "gflops": _gflops(shape.flop_count, stats.mean),
            **stats.to_dict(),
        },
        "verification": verification.to_dict(),
        "sched": [h.to_dict() for h in (sched or [])],
        "ratios": {},
    }


def _environment() -> dict[str, Any]:
    return {
        "platform": {"os": platform.system().lower(), "arch": platform.machine().lower()},
        "python": platform.python_version(),
        "numpy": np.__version__,
        "numba": numba.__version__,
    }


def _run_status(records: list[dict[str, Any]]) -> tuple[str, str]:
    failures = [r for r in records if r.get("verification", {}).get("status") == "fail"]
    if failures:
        return "fail", f"{len(failures)} record(s) failed verification"
    return "pass", ""


def normalize_results(
    records: list[dict[str, Any]],
    *,
    config: RunConfig,
    started_at: str,
    finished_at: str,
) -> dict[str, Any]:
    status, reason = _run_status(records)
    out = {
        "schema_version": SCHEMA_VERSION,
        "run": {
            "run_id": started_at,
            "started_at": started_at,
            "finished_at": finished_at,
            "status": status,
            "failure_reason": reason,
            "environment": _environment(),
            "settings": config.settings_dict(),
            "artifacts_dir": str(config.out_dir),
        },
        "records": records,
    }
    validate_results_schema(out)
    return out


def record_key(rec: dict[str, Any]) -> tuple:
    s = rec.get("shape", {}) or {}
    return (
        rec.get("impl"),
        int(s.get("rows_a", 0)),
        int(s.get("cols_a", 0)),
        int(s.get("cols_b", 0)),
        str(rec.get("dtype", "")),
        rec.get("block_size"),
    )


def merge_results(existing: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """Merge `new` into `existing`; records with the same key are replaced by the newer one."""
    merged = dict(existing)
    merged_run = dict(existing.get("run", {}))

    # Keep the first started_at; everything else comes from the newest run.
    for k, v in (new.get("run", {}) or {}).items():
        if k in {"started_at", "run_id"} and k in merged_run:
            continue
        merged_run[k] = v

    by_key: dict[tuple, dict[str, Any]] = {}
    for r in existing.get("records", []) or []:
        by_key[record_key(r)] = r
    for r in new.get("records", []) or []:
        by_key[record_key(r)] = r
    merged["records"] = list(by_key.values())

    # Derived, not preserved: a rerun may flip a record from fail to pass.
    status, reason = _run_status(merged["records"])
    merged_run["status"] = status
    merged_run["failure_reason"] = reason
    merged["run"] = merged_run
    merged["schema_version"] = new.get("schema_version", SCHEMA_VERSION)

    validate_results_schema(merged)
    return merged


def load_results(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text())


def write_results(path: Path, results: dict[str, Any]) -> None:
    path.write_text(json.dumps(results, indent=2, sort_keys=True) + "\n")


def update_results(out_dir: Path, results: dict[str, Any]) -> dict[str, Any]:
    """Merge `results` into `<out_dir>/results.json` (creating it if needed) and return what was written."""
    results_path = out_dir / RESULTS_FILE
    if results_path.exists():
        results = merge_results(load_results(results_path), results)
    write_results(results_path, results)
    return results
