from __future__ import annotations

from pathlib import Path
from typing import Any

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]

from .export import RESULTS_FILE, load_results

BASELINE_IMPL = "naive"


def _format_float(v: float | None, digits: int = 3) -> str:
    if v is None:
        return "NA"
    return f"{v:.{digits}f}"


def _format_int(v: int | None) -> str:
    if v is None:
        return "NA"
    return str(v)


def _group_key(rec: dict[str, Any]) -> tuple[int, int, int, str]:
    s = rec["shape"]
    return (s["rows_a"], s["cols_a"], s["cols_b"], str(rec["dtype"]))


def _safe_ratio(num: float | None, den: float | None) -> float | None:
    if num is None or den is None or den == 0:
        return None
    return num / den


def compute_ratios_in_place(results: dict[str, Any]) -> None:
    """Fill `record.ratios` relative to the naive record of the same shape and dtype.

    - ratio_to_naive: mean time over the naive mean (< 1 is faster).
    - speedup_vs_naive: naive mean over this mean.
    Groups without a naive record get no ratios.
    """
    by_cfg: dict[tuple[int, int, int, str], list[dict[str, Any]]] = {}
    for r in results.get("records", []):
        by_cfg.setdefault(_group_key(r), []).append(r)

    for recs in by_cfg.values():
        baseline = next((r for r in recs if r["impl"] == BASELINE_IMPL), None)
        base_t = None if baseline is None else baseline.get("timing", {}).get("mean_ns")

        for r in recs:
            t = r.get("timing", {}).get("mean_ns")
            existing = r.get("ratios")
            ratios: dict[str, Any] = existing if isinstance(existing, dict) else {}

            ratio = _safe_ratio(t, base_t)
            if ratio is not None:
                ratios["ratio_to_naive"] = float(ratio)
            speedup = _safe_ratio(base_t, t)
            if speedup is not None:
                ratios["speedup_vs_naive"] = float(speedup)
            r["ratios"] = ratios


def _sort_key(rec: dict[str, Any]) -> tuple:
    block = rec.get("block_size")
    return (*_group_key(rec), rec["impl"] != BASELINE_IMPL, rec["impl"], -1 if block is None else block)


def results_table(records: list[dict[str, Any]]) -> str:
    header = [
        "impl",
        "shape",
        "dtype",
        "block",
        "runs",
        "active",
        "mean_ns",
        "stdev_ns",
        "min_ns",
        "max_ns",
        "gflops",
        "ratio_to_naive",
        "verify",
        "guard",
    ]
    lines = ["| " + " | ".join(header) + " |", "|" + "|".join(["---"] * len(header)) + "|"]
    for r in sorted(records, key=_sort_key):
        s = r["shape"]
        timing = r.get("timing", {})
        verification = r.get("verification", {})
        lines.append(
            "| "
            + " | ".join(
                [
                    str(r["impl_str"]),
                    f"{s['rows_a']}x{s['cols_a']}x{s['cols_b']}",
                    str(r["dtype"]),
                    _format_int(r.get("block_size")),
                    _format_int(timing.get("num_runs")),
                    _format_int(timing.get("active_count")),
                    _format_float(timing.get("mean_ns"), 1),
                    _format_float(timing.get("stdev_ns"), 1),
                    _format_int(timing.get("min_ns")),
                    _format_int(timing.get("max_ns")),
                    _format_float(timing.get("gflops")),
                    _format_float(r.get("ratios", {}).get("ratio_to_naive")),
                    str(verification.get("status", "NA")),
                    "intact" if verification.get("guard_intact", False) else "violated",
                ]
            )
            + " |"
        )
    return "\n".join(lines)


def write_report(results: dict[str, Any], out_dir: Path) -> Path:
    compute_ratios_in_place(results)
    records = list(results.get("records", []))
    run = results.get("run", {})

    md = MdUtils(file_name=str(out_dir / "report"), title="Matrix Multiply Benchmark Report")
    md.new_header(level=1, title="Run Metadata")
    md.new_list(
        [
            f"Started: `{run.get('started_at', '')}`",
            f"Finished: `{run.get('finished_at', '')}`",
            f"Status: `{run.get('status', '')}`",
            f"Settings: `{run.get('settings', {})}`",
        ]
    )

    md.new_header(level=1, title="Results")
    if records:
        md.new_paragraph(results_table(records))
    else:
        md.new_paragraph("No records.")

    md.new_header(level=1, title="Column Definitions")
    md.new_list(
        [
            "`mean_ns`, `stdev_ns`: robust mean / population stdev after iterative outlier rejection.",
            "`min_ns`, `max_ns`: extremes of the runtimes that survived outlier rejection.",
            "`active`: runtimes kept out of `runs`.",
            "`gflops`: `2*M*K*N` over the robust mean.",
            "`ratio_to_naive`: robust mean over the naive robust mean for the same shape and dtype (`NA` without a naive record).",
            "`verify`: `pass` when all elements match the reference within tolerance and the guard is intact.",
        ]
    )
    md.create_md_file()
    return out_dir / "report.md"


def report_run(*, out_dir: Path) -> int:
    results_path = out_dir / RESULTS_FILE
    if not results_path.exists():
        raise FileNotFoundError(f"Missing {RESULTS_FILE} at {results_path}")

    results = load_results(results_path)
    write_report(results, out_dir)
    return 0
