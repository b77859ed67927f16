from __future__ import annotations

import json
from pathlib import Path

import pytest

from cpu_microbench.mmult import __main__ as cli
from cpu_microbench.mmult.config import RunConfig


def test_help_exits_zero() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "--help"])
    assert exc.value.code == 0


def test_missing_impl_is_a_startup_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["run", "--no-sched-hints"]) == 1
    assert "No implementation was chosen" in capsys.readouterr().err


def test_unknown_impl_is_a_startup_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["run", "-i", "vec", "--no-sched-hints"]) == 1
    assert 'Unknown "vec" implementation' in capsys.readouterr().err


def test_invalid_dimensions_fail_before_running(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    called: list[RunConfig] = []
    monkeypatch.setattr(cli, "benchmark_run", lambda config, **_kw: called.append(config) or 0)

    assert cli.main(["run", "-i", "opt", "-ar", "0"]) == 1
    assert called == []
    assert "rows_a" in capsys.readouterr().err


def test_run_builds_config_from_flags(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[tuple[RunConfig, dict]] = []

    def fake_run(config: RunConfig, **kw: object) -> int:
        seen.append((config, kw))
        return 0

    monkeypatch.setattr(cli, "benchmark_run", fake_run)
    rc = cli.main(
        [
            "run",
            "-i",
            "opt",
            "-ar",
            "17",
            "-acbr",
            "33",
            "-bc",
            "9",
            "--nruns",
            "5",
            "--nstdevs",
            "2",
            "--block-size",
            "8",
            "-n",
            "2",
            "-c",
            "1",
            "--seed",
            "0x10",
            "--out-dir",
            str(tmp_path),
            "--no-sched-hints",
            "--strict",
        ]
    )
    assert rc == 0
    config, kw = seen[0]
    assert (config.shape.rows_a, config.shape.cols_a, config.shape.cols_b) == (17, 33, 9)
    assert config.num_runs == 5
    assert config.nstdevs == 2.0
    assert config.block_size == 8
    assert list(config.affinity_cpus) == [1, 2]
    assert config.seed == 16
    assert config.out_dir == tmp_path
    assert kw == {"sched_hints": False, "strict": True}


def test_sweep_rejects_bad_block_sizes(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["sweep", "--block-sizes", "8,0", "--no-sched-hints"]) == 1
    assert cli.main(["sweep", "--block-sizes", "a,b", "--no-sched-hints"]) == 1


def test_report_subcommand(tmp_path: Path) -> None:
    results = {"schema_version": "1.0.0", "run": {"status": "pass"}, "records": []}
    (tmp_path / "results.json").write_text(json.dumps(results))
    assert cli.main(["report", "--out-dir", str(tmp_path)]) == 0
    assert "No records." in (tmp_path / "report.md").read_text()


def test_run_help_describes_each_kernel(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["run", "--help"])
    out = " ".join(capsys.readouterr().out.split())
    assert "naive: Naive triple loop." in out
    assert "(tiled)" in out
