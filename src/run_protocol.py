"""Run-folder layout for slidebox generation runs.

Each run gets ``<runs_root>/<timestamp>_<slug>/`` holding the input
parameters, generated artifacts and run-level reports; ``latest`` is a
symlink to the most recent run.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

LATEST_LINK = "latest"


@dataclass(frozen=True)
class RunPaths:
    run_id: str
    run_dir: Path

    @property
    def input_dir(self) -> Path:
        return self.run_dir / "input"

    @property
    def artifacts_dir(self) -> Path:
        return self.run_dir / "artifacts"

    @property
    def report_path(self) -> Path:
        return self.run_dir / "report.json"

    @property
    def manifest_path(self) -> Path:
        return self.run_dir / "manifest.json"

    @property
    def metrics_path(self) -> Path:
        return self.run_dir / "metrics.json"

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.md"


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "run"


def create_run_id(design_name: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    return f"{stamp}_{slugify(design_name)}"


def prepare_run_dir(runs_root: str, design_name: str) -> RunPaths:
    """Create the run folder with empty ``input/`` and ``artifacts/``."""
    run_id = create_run_id(design_name)
    paths = RunPaths(run_id=run_id, run_dir=Path(runs_root) / run_id)
    for directory in (paths.input_dir, paths.artifacts_dir):
        directory.mkdir(parents=True, exist_ok=True)
    return paths


def write_input_params(params: Dict[str, Any], input_dir: Path) -> Path:
    """Snapshot the effective parameter set the run was generated from."""
    path = input_dir / "params.json"
    write_json(path, params)
    return path


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    write_text(path, json.dumps(payload, indent=2) + "\n")


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def update_latest_pointer(runs_root: str, run_dir: Path) -> None:
    """Point ``<runs_root>/latest`` at ``run_dir``, replacing any older link."""
    latest = Path(runs_root) / LATEST_LINK
    if latest.is_symlink() or latest.is_file():
        latest.unlink()
    try:
        latest.symlink_to(os.path.relpath(run_dir, runs_root))
    except OSError as exc:
        logger.warning("Could not link %s to %s: %s", latest, run_dir.name, exc)
