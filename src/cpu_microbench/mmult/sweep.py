from __future__ import annotations

import sys
from typing import Any

import attrs
from jsonschema import ValidationError

from .config import RunConfig
from .export import RESULTS_FILE, load_results, record_block_size, record_key, validate_results_schema, write_results
from .report import write_report
from .runner import benchmark_run


def sweep_configs(base: RunConfig, block_sizes: list[int]) -> list[RunConfig]:
    """The naive baseline followed by one `opt` config per block size (duplicates dropped)."""
    configs = [attrs.evolve(base, impl="naive")]
    for bs in dict.fromkeys(block_sizes):
        configs.append(attrs.evolve(base, impl="opt", block_size=bs))
    return configs


def _expected_keys(configs: list[RunConfig]) -> set[tuple]:
    expected: set[tuple] = set()
    for c in configs:
        s = c.shape
        expected.add(
            record_key(
                {
                    "impl": c.impl,
                    "shape": {"rows_a": s.rows_a, "cols_a": s.cols_a, "cols_b": s.cols_b},
                    "dtype": c.dtype,
                    "block_size": record_block_size(c.impl, c.block_size),
                }
            )
        )
    return expected


def sweep_run(*, base: RunConfig, block_sizes: list[int], sched_hints: bool = True) -> int:
    out_dir = base.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    configs = sweep_configs(base, block_sizes)
    for i, config in enumerate(configs):
        # Scheduling hints are process-wide; apply them once.
        benchmark_run(config, sched_hints=sched_hints and i == 0)

    results_path = out_dir / RESULTS_FILE
    try:
        results: dict[str, Any] = load_results(results_path)
    except (OSError, ValueError) as e:
        print(f"Failed to read {results_path}: {e}", file=sys.stderr)
        return 1

    actual = {record_key(r) for r in results.get("records", []) or []}
    missing = sorted(_expected_keys(configs) - actual, key=str)
    if missing:
        results.setdefault("run", {})["status"] = "fail"
        results["run"]["failure_reason"] = f"missing {len(missing)} expected record(s)"
        try:
            validate_results_schema(results)
            write_results(results_path, results)
        except (OSError, ValidationError) as e:
            print(f"Failed to update {results_path}: {e}", file=sys.stderr)

    try:
        write_report(results, out_dir)
    except OSError as e:
        print(f"Failed to write report under {out_dir}: {e}", file=sys.stderr)

    return 0 if results.get("run", {}).get("status") == "pass" else 1


def parse_block_sizes(v: str) -> list[int]:
    out: list[int] = []
    for part in v.split(","):
        part = part.strip()
        if not part:
            continue
        out.append(int(part))
    if not out:
        raise ValueError(f"No block sizes in {v!r}")
    return out
