#!/usr/bin/env python3
"""Generate a slide-storage assembly into a run folder."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from run_protocol import (
    RunPaths,
    prepare_run_dir,
    update_latest_pointer,
    write_input_params,
    write_json,
    write_text,
)
from slidebox import (
    ConstraintError,
    GenerationParams,
    GenerationResult,
    GeometryError,
    Mode,
    generate,
)
from slidebox.audit import AuditTrail
from slidebox.constraints import validate
from slidebox.csg import bounds, extents
from slidebox.render_estimate import estimate_render_seconds
from slidebox.scad_writer import render_part, render_parts

logger = logging.getLogger("generate_slidebox")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate printable microscope-slide storage as OpenSCAD parts"
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in Mode],
        default=None,
        help="Product family (overrides the mode in --params)",
    )
    parser.add_argument("--params", default=None, help="JSON file with a flat parameter mapping")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override one parameter; repeatable",
    )
    parser.add_argument("--name", default="slidebox", help="Design/run name")
    parser.add_argument("--runs-dir", default="runs", help="Runs output root")
    parser.add_argument(
        "--constrained",
        action="store_true",
        help="Estimate render time for a slow/browser-hosted OpenSCAD",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logs")
    return parser


def load_params(args: argparse.Namespace) -> GenerationParams:
    mapping: Dict[str, Any] = {}
    if args.params:
        with open(args.params, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"{args.params}: expected a JSON object")
        mapping.update(loaded)
    for item in args.overrides:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Bad --set value {item!r} (expected KEY=VALUE)")
        mapping[key.strip()] = value.strip()
    if args.mode:
        mapping["mode"] = args.mode
    return GenerationParams.from_mapping(mapping)


def _report_payload(run_id: str, status: str, report) -> Dict[str, Any]:
    payload = {"run_id": run_id, "status": status}
    payload.update(report.to_dict())
    return payload


def _build_summary(
    *,
    run_id: str,
    status: str,
    mode: str,
    elapsed_s: float,
    part_ids: List[str],
    errors: List[str],
    warnings: List[str],
    render_seconds: float,
) -> str:
    lines = [
        f"# Run {run_id}",
        "",
        f"- Status: **{status.upper()}**",
        f"- Mode: {mode}",
        f"- Duration: {elapsed_s:.2f}s",
        f"- Parts: {', '.join(part_ids) if part_ids else 'none'}",
        f"- Estimated OpenSCAD render: {render_seconds:.0f}s",
        f"- Violations: {len(errors)} error, {len(warnings)} warning",
        "",
    ]
    if errors or warnings:
        lines.append("## Violations")
        lines.extend(f"- ERROR {e}" for e in errors)
        lines.extend(f"- WARNING {w}" for w in warnings)
        lines.append("")
    return "\n".join(lines)


def _finish_blocked(
    *,
    args: argparse.Namespace,
    run_paths: RunPaths,
    manifest: Dict[str, Any],
    params: GenerationParams,
    report,
    errors: List[str],
    render_seconds: float,
    started: float,
    audit: AuditTrail,
) -> int:
    elapsed = time.perf_counter() - started
    audit.finalize()
    payload = _report_payload(run_paths.run_id, "blocked", report)
    payload["ok"] = False
    payload["errors"] = errors
    write_json(run_paths.report_path, payload)
    write_text(
        run_paths.summary_path,
        _build_summary(
            run_id=run_paths.run_id,
            status="blocked",
            mode=params.mode.value,
            elapsed_s=elapsed,
            part_ids=[],
            errors=errors,
            warnings=[f"{v.rule_id}: {v.message}" for v in report.warnings],
            render_seconds=render_seconds,
        ),
    )
    manifest["status"] = "blocked"
    write_json(run_paths.manifest_path, manifest)
    update_latest_pointer(args.runs_dir, run_paths.run_dir)
    for line in errors:
        print(f"ERROR {line}", file=sys.stderr)
    print(f"Run dir: {run_paths.run_dir}")
    return 2


def _write_artifacts(run_paths: RunPaths, result: GenerationResult) -> Dict[str, str]:
    fn = result.params.fn
    written = {}
    for part in result.parts:
        path = run_paths.artifacts_dir / f"{part.part_id}.scad"
        write_text(path, render_part(part, fn=fn))
        written[part.part_id] = str(path)
    assembly_path = run_paths.artifacts_dir / "assembly.scad"
    write_text(assembly_path, render_parts(result.parts, fn=fn))
    written["assembly"] = str(assembly_path)
    return written


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        params = load_params(args)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    started = time.perf_counter()
    run_paths = prepare_run_dir(args.runs_dir, args.name)
    params_path = write_input_params(params.to_dict(), run_paths.input_dir)
    audit = AuditTrail(run_id=run_paths.run_id, artifacts_dir=run_paths.artifacts_dir)
    estimate = estimate_render_seconds(params, constrained=args.constrained)

    manifest: Dict[str, Any] = {
        "run_id": run_paths.run_id,
        "design_name": args.name,
        "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "mode": params.mode.value,
        "params": params.to_dict(),
        "artifacts": {
            "params": str(params_path),
            "report": str(run_paths.report_path),
            "metrics": str(run_paths.metrics_path),
            "summary": str(run_paths.summary_path),
        },
    }

    try:
        result = generate(params, audit=audit)
    except ConstraintError as exc:
        errors = [f"{v.rule_id}: {v.message}" for v in exc.report.errors]
        report = exc.report
    except ValueError as exc:
        # GeometryError, or an option index no strategy knows.
        rule_id = "geometry" if isinstance(exc, GeometryError) else "parameters"
        errors = [f"{rule_id}: {exc}"]
        report = validate(params)
    else:
        errors = []
        report = result.report
    if errors:
        return _finish_blocked(
            args=args,
            run_paths=run_paths,
            manifest=manifest,
            params=params,
            report=report,
            errors=errors,
            render_seconds=estimate.seconds,
            started=started,
            audit=audit,
        )

    scad_paths = _write_artifacts(run_paths, result)
    logger.info("Wrote %d OpenSCAD file(s) to %s", len(scad_paths), run_paths.artifacts_dir)
    audit_index = audit.finalize()
    elapsed = time.perf_counter() - started

    write_json(run_paths.report_path, _report_payload(run_paths.run_id, "ok", report))
    metrics = {
        "run_id": run_paths.run_id,
        "mode": params.mode.value,
        "elapsed_s": round(elapsed, 3),
        "slide": {
            "name": result.slide.name,
            "length_mm": result.slide.length_mm,
            "width_mm": result.slide.width_mm,
            "thickness_mm": result.slide.thickness_mm,
        },
        "derived": {
            "slot_width_mm": result.derived.slot_width,
            "pitch_mm": result.derived.pitch,
            "rib_root_width_mm": result.derived.rib_root_width,
            "rib_tip_width_mm": result.derived.rib_tip_width,
            "chamfer_height_mm": result.derived.chamfer_height,
        },
        "counts": {
            "parts": len(result.parts),
            "slots": params.num_slots,
            "violations_error": len(report.errors),
            "violations_warning": len(report.warnings),
        },
        "parts": {
            part.part_id: {
                "bounds_mm": [list(corner) for corner in bounds(part.geometry)],
                "size_mm": list(extents(part.geometry)),
                "fingerprint": result.fingerprints[part.part_id],
                "metadata": part.metadata,
            }
            for part in result.parts
        },
        "render_estimate": estimate.to_dict(),
    }
    write_json(run_paths.metrics_path, metrics)

    warning_lines = [f"{v.rule_id}: {v.message}" for v in report.warnings]
    write_text(
        run_paths.summary_path,
        _build_summary(
            run_id=run_paths.run_id,
            status="ok",
            mode=params.mode.value,
            elapsed_s=elapsed,
            part_ids=result.part_ids,
            errors=[],
            warnings=warning_lines,
            render_seconds=estimate.seconds,
        ),
    )

    manifest["status"] = "ok"
    manifest["artifacts"].update(
        {
            "scad": scad_paths,
            "audit_index": str(audit_index),
            "checkpoints": [str(c.path) for c in audit.checkpoints],
            "decision_log": str(audit.decision_log_path),
        }
    )
    write_json(run_paths.manifest_path, manifest)
    update_latest_pointer(args.runs_dir, run_paths.run_dir)

    for line in warning_lines:
        print(f"WARNING {line}")
    if estimate.warn:
        print(f"WARNING estimated render time {estimate.seconds:.0f}s")
    print(f"Run ID: {run_paths.run_id}")
    print(f"Run dir: {run_paths.run_dir}")
    print(f"Parts: {', '.join(result.part_ids)}")
    print(f"Assembly: {scad_paths['assembly']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
