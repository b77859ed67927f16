from __future__ import annotations

import json
from pathlib import Path

import pytest

from cpu_microbench.mmult.report import compute_ratios_in_place, report_run, results_table


def _record(impl: str, mean_ns: float, *, shape=(17, 33, 9), dtype: str = "float32", block_size: int | None = None) -> dict:
    return {
        "impl": impl,
        "impl_str": f"mmult_{impl}",
        "shape": {"rows_a": shape[0], "cols_a": shape[1], "cols_b": shape[2]},
        "dtype": dtype,
        "block_size": block_size,
        "flop_count": 2 * shape[0] * shape[1] * shape[2],
        "timing": {"num_runs": 10, "active_count": 9, "mean_ns": mean_ns, "stdev_ns": 1.0, "min_ns": 1, "max_ns": 2, "gflops": 0.5},
        "verification": {"status": "pass", "match": True, "guard_intact": True, "tolerance": 1e-5},
        "ratios": {},
    }


def test_ratios_relative_to_naive_of_same_shape() -> None:
    results = {
        "records": [
            _record("naive", 400.0),
            _record("opt", 100.0, block_size=16),
            _record("opt", 200.0, block_size=32),
            _record("opt", 50.0, shape=(8, 8, 8), block_size=16),
        ]
    }

    compute_ratios_in_place(results)
    recs = results["records"]

    assert recs[0]["ratios"]["ratio_to_naive"] == 1.0
    assert recs[1]["ratios"]["ratio_to_naive"] == 0.25
    assert recs[1]["ratios"]["speedup_vs_naive"] == 4.0
    assert recs[2]["ratios"]["speedup_vs_naive"] == 2.0
    # No naive record for 8x8x8.
    assert recs[3]["ratios"] == {}


def test_ratios_do_not_cross_dtypes() -> None:
    results = {"records": [_record("naive", 100.0), _record("opt", 50.0, dtype="float64", block_size=16)]}
    compute_ratios_in_place(results)
    assert "ratio_to_naive" not in results["records"][1]["ratios"]


def test_results_table_lists_naive_first() -> None:
    table = results_table([_record("opt", 100.0, block_size=16), _record("naive", 400.0)])
    lines = table.splitlines()
    assert lines[0].startswith("| impl | shape |")
    assert "mmult_naive" in lines[2]
    assert "mmult_opt" in lines[3]
    assert "17x33x9" in lines[3]


def test_report_run_writes_markdown(tmp_path: Path) -> None:
    results = {
        "schema_version": "1.0.0",
        "run": {"started_at": "2026-01-01T00:00:00Z", "finished_at": "2026-01-01T00:00:01Z", "status": "pass"},
        "records": [_record("naive", 400.0), _record("opt", 100.0, block_size=16)],
    }
    (tmp_path / "results.json").write_text(json.dumps(results))

    assert report_run(out_dir=tmp_path) == 0

    report_md = (tmp_path / "report.md").read_text()
    assert "Matrix Multiply Benchmark Report" in report_md
    assert "Run Metadata" in report_md
    assert "ratio_to_naive" in report_md
    assert "| mmult_opt | 17x33x9 | float32 | 16 |" in report_md


def test_report_run_requires_results(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        report_run(out_dir=tmp_path)
