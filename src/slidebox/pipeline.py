"""Slide-storage generation: parameters -> validated, assembled parts."""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import List, Optional, Sequence, Union

from slidebox.assembly import ASSEMBLERS, assemble
from slidebox.audit import AuditTrail
from slidebox.constraints import validate
from slidebox.contracts import (
    ConstraintError,
    GenerationParams,
    GeometryError,
    GenerationResult,
    ResolvedSlide,
)
from slidebox.csg import fingerprint
from slidebox.dimensions import derive_geometry
from slidebox.standards import resolve_slide

logger = logging.getLogger(__name__)

BatchOutcome = Union[GenerationResult, ConstraintError, GeometryError]


def resolve(params: GenerationParams) -> ResolvedSlide:
    return resolve_slide(
        params.slide_standard,
        params.custom_slide_length,
        params.custom_slide_width,
        params.custom_slide_thickness,
    )


def generate(params: GenerationParams, audit: Optional[AuditTrail] = None) -> GenerationResult:
    """Resolve, validate, derive and assemble one request.

    Raises ConstraintError, with the full report attached, when any
    error-severity rule fails; no geometry is built in that case. Raises
    GeometryError when the accepted parameters still describe a solid that
    cannot be built; no parts are returned.
    """
    slide = resolve(params)
    logger.debug("Resolved slide %s: %s", slide.name, slide.as_tuple())
    if audit is not None:
        audit.checkpoint(
            "resolve",
            metrics={
                "slide_length_mm": slide.length_mm,
                "slide_width_mm": slide.width_mm,
                "slide_thickness_mm": slide.thickness_mm,
            },
            outputs={"standard": slide.name, "params": params.to_dict()},
        )

    report = validate(params)
    for violation in report.warnings:
        logger.warning("%s: %s", violation.rule_id, violation.message)
    if audit is not None:
        audit.checkpoint(
            "validate",
            counts={"errors": len(report.errors), "warnings": len(report.warnings)},
            outputs=report.to_dict(),
        )
    if not report.ok:
        error = ConstraintError(report)
        logger.error("%s", error)
        raise error

    derived = derive_geometry(slide, params)
    logger.debug(
        "Slot %.3f mm, pitch %.3f mm, rib %.3f/%.3f mm",
        derived.slot_width, derived.pitch, derived.rib_root_width, derived.rib_tip_width,
    )
    if audit is not None:
        audit.decide(
            "derive",
            "rib_width_source",
            alternatives=["density_tier", "override"],
            selected="override" if params.rib_width > 0 else "density_tier",
            reason=f"rib_width={params.rib_width}, density={params.density}",
            metadata={"rib_width_mm": derived.rib_width},
        )
        audit.checkpoint(
            "derive",
            metrics={
                "slot_width_mm": derived.slot_width,
                "pitch_mm": derived.pitch,
                "rib_root_width_mm": derived.rib_root_width,
                "rib_tip_width_mm": derived.rib_tip_width,
                "chamfer_height_mm": derived.chamfer_height,
            },
            outputs={"tapered": derived.tapered},
        )

    try:
        parts = assemble(params.mode, slide, derived, params)
    except GeometryError as exc:
        logger.error("Cannot build %s geometry: %s", params.mode.value, exc)
        raise
    fingerprints = {part.part_id: fingerprint(part.geometry) for part in parts}
    if audit is not None:
        audit.decide(
            "assemble",
            "mode_strategy",
            alternatives=[mode.value for mode in ASSEMBLERS],
            selected=params.mode.value,
            reason="requested mode",
            metadata={"part_ids": [p.part_id for p in parts]},
        )
        audit.checkpoint(
            "assemble",
            counts={"parts": len(parts)},
            outputs={"fingerprints": fingerprints},
        )

    logger.info(
        "Generated %s: %d part(s), %d slot(s) at %.2f mm pitch, %d warning(s)",
        params.mode.value, len(parts), params.num_slots, derived.pitch, len(report.warnings),
    )
    return GenerationResult(
        params=params,
        slide=slide,
        derived=derived,
        report=report,
        parts=parts,
        fingerprints=fingerprints,
    )


def _generate_or_error(params: GenerationParams) -> BatchOutcome:
    try:
        return generate(params)
    except (ConstraintError, GeometryError) as exc:
        return exc


def _is_process_pool_unavailable_error(exc: Exception) -> bool:
    """Return True if an exception indicates process pool execution is unavailable."""
    if isinstance(exc, (PermissionError, BrokenProcessPool)):
        return True
    if isinstance(exc, OSError) and "SC_SEM_NSEMS_MAX" in str(exc):
        return True
    return False


def generate_batch(
    params_list: Sequence[GenerationParams],
    max_workers: Optional[int] = None,
) -> List[BatchOutcome]:
    """Generate independent requests in parallel, in input order.

    A request blocked by constraints or by unbuildable geometry yields its
    ConstraintError or GeometryError in place of a result. Falls back to
    serial execution when no process pool can start.
    """
    items = list(params_list)
    if not items:
        return []
    if max_workers == 1 or len(items) == 1:
        return [_generate_or_error(p) for p in items]
    try:
        with ProcessPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(_generate_or_error, items))
    except Exception as exc:
        if not _is_process_pool_unavailable_error(exc):
            raise
        logger.warning("Process pool unavailable (%s); generating serially", exc)
        return [_generate_or_error(p) for p in items]
