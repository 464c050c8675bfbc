from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
SCRIPT = REPO_ROOT / "scripts" / "generate_slidebox.py"


def _run(runs_dir: Path, *extra: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(SCRIPT), "--runs-dir", str(runs_dir), "--name", "cli_test", *extra]
    return subprocess.run(cmd, capture_output=True, text=True)


def _only_run_dir(runs_dir: Path) -> Path:
    run_dirs = sorted(
        [path for path in runs_dir.iterdir() if path.is_dir() and path.name != "latest"]
    )
    assert len(run_dirs) == 1
    return run_dirs[0]


def test_cli_writes_run_folder(run_dir: Path):
    proc = _run(run_dir)
    assert proc.returncode == 0, proc.stderr
    assert "Run ID:" in proc.stdout

    run = _only_run_dir(run_dir)
    artifacts = run / "artifacts"
    for name in ("box_base.scad", "box_lid.scad", "assembly.scad", "audit_index.json"):
        assert (artifacts / name).exists(), name
    assert len(list((artifacts / "checkpoints").glob("phase_*.json"))) == 4

    base_scad = (artifacts / "box_base.scad").read_text(encoding="utf-8")
    assert "// slot_array" in base_scad
    assert base_scad.count("// retention_rib") == 26

    report = json.loads((run / "report.json").read_text(encoding="utf-8"))
    assert report["status"] == "ok"
    assert report["ok"] is True

    metrics = json.loads((run / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["derived"]["pitch_mm"] == 3.5
    assert metrics["counts"]["parts"] == 2
    assert metrics["render_estimate"]["seconds"] == 18.0
    assert metrics["parts"]["box_base"]["metadata"]["slot_numbers"][0] == 1
    size = metrics["parts"]["box_base"]["size_mm"]
    assert len(size) == 3 and all(v > 0 for v in size)

    manifest = json.loads((run / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "ok"
    assert manifest["mode"] == "box"
    assert set(manifest["artifacts"]["scad"]) == {"box_base", "box_lid", "assembly"}

    params = json.loads((run / "input" / "params.json").read_text(encoding="utf-8"))
    assert params["num_slots"] == 25
    assert (run / "summary.md").read_text(encoding="utf-8").startswith(f"# Run {run.name}")
    assert (run_dir / "latest").exists()


def test_cli_params_file_and_overrides(run_dir: Path, tmp_path: Path):
    params_path = tmp_path / "params.json"
    params_path.write_text(json.dumps({"mode": "box", "num_slots": 8, "fn": 48}), encoding="utf-8")
    proc = _run(
        run_dir,
        "--params", str(params_path),
        "--mode", "staining_rack",
        "--set", "handle=false",
        "--constrained",
    )
    assert proc.returncode == 0, proc.stderr

    run = _only_run_dir(run_dir)
    manifest = json.loads((run / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["mode"] == "staining_rack"
    assert manifest["params"]["num_slots"] == 8
    assert manifest["params"]["handle"] is False
    assert set(manifest["artifacts"]["scad"]) == {"rack_body", "rack_drip_tray", "assembly"}

    body_scad = (run / "artifacts" / "rack_body.scad").read_text(encoding="utf-8")
    assert "$fn = 48;" in body_scad

    metrics = json.loads((run / "metrics.json").read_text(encoding="utf-8"))
    # (2 + 0.4 * 8 + 3 * 2 + 5) * 3
    assert metrics["render_estimate"]["seconds"] == 48.6
    assert metrics["render_estimate"]["constrained"] is True


def test_cli_blocked_request_exits_2(run_dir: Path):
    proc = _run(run_dir, "--set", "num_slots=0")
    assert proc.returncode == 2
    assert "min_slots" in proc.stderr

    run = _only_run_dir(run_dir)
    report = json.loads((run / "report.json").read_text(encoding="utf-8"))
    assert report["status"] == "blocked"
    assert report["violations"][0]["rule_id"] == "min_slots"
    assert not list((run / "artifacts").glob("*.scad"))
    manifest = json.loads((run / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "blocked"


def test_cli_rejects_unknown_parameter(run_dir: Path):
    proc = _run(run_dir, "--set", "num_slotz=3")
    assert proc.returncode == 2
    assert "num_slotz" in proc.stderr
    assert not [p for p in run_dir.iterdir()]


def test_cli_unbuildable_geometry_writes_blocked_run(run_dir: Path):
    proc = _run(run_dir, "--mode", "staining_rack", "--set", "drainage_angle=-5")
    assert proc.returncode == 2
    assert "Traceback" not in proc.stderr
    assert "ERROR geometry:" in proc.stderr

    run = _only_run_dir(run_dir)
    report = json.loads((run / "report.json").read_text(encoding="utf-8"))
    assert report["status"] == "blocked"
    assert report["ok"] is False
    assert report["errors"][0].startswith("geometry: Drainage angle")
    assert not list((run / "artifacts").glob("*.scad"))
    manifest = json.loads((run / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "blocked"
    assert "BLOCKED" in (run / "summary.md").read_text(encoding="utf-8")
