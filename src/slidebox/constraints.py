"""
Manufacturability rules for slide-storage parameter sets.

Each rule is a (predicate, severity, message) record evaluated against the
raw input parameters. Error-severity violations block geometry generation;
warnings are reported and generation proceeds. Rules never depend on one
another, so new ones are added to RULES without touching validate().
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from slidebox.contracts import ConstraintReport, ConstraintViolation, GenerationParams
from slidebox.standards import ARCHIVAL_DENSITY_INDEX, SUPA_MEGA_INDEX

logger = logging.getLogger(__name__)

MIN_SLOTS = 1
MAX_SLOTS = 50
MIN_WALL_THICKNESS_MM = 1.2
MIN_TOLERANCE_XY_MM = 0.2


@dataclass(frozen=True)
class ConstraintRule:
    """A named predicate over the parameter set.

    ``predicate`` returns True when the parameters satisfy the rule.
    ``value`` optionally extracts the offending number for the report.
    """

    rule_id: str
    severity: str
    message: str
    predicate: Callable[[GenerationParams], bool]
    value: Optional[Callable[[GenerationParams], float]] = None
    limit: Optional[float] = None


# Custom-slide rules are checked even when a built-in standard is selected.
RULES: Tuple[ConstraintRule, ...] = (
    ConstraintRule(
        rule_id="min_slots",
        severity="error",
        message="At least 1 slot is required",
        predicate=lambda p: p.num_slots >= MIN_SLOTS,
        value=lambda p: float(p.num_slots),
        limit=float(MIN_SLOTS),
    ),
    ConstraintRule(
        rule_id="custom_thickness_positive",
        severity="error",
        message="Custom slide thickness must be greater than 0",
        predicate=lambda p: p.custom_slide_thickness > 0,
        value=lambda p: p.custom_slide_thickness,
        limit=0.0,
    ),
    ConstraintRule(
        rule_id="custom_length_gt_width",
        severity="error",
        message="Custom slide length must be greater than its width",
        predicate=lambda p: p.custom_slide_length > p.custom_slide_width,
        value=lambda p: p.custom_slide_length,
    ),
    ConstraintRule(
        rule_id="min_wall_thickness",
        severity="warning",
        message=f"Walls thinner than {MIN_WALL_THICKNESS_MM} mm may print weak or leak",
        predicate=lambda p: p.wall_thickness >= MIN_WALL_THICKNESS_MM,
        value=lambda p: p.wall_thickness,
        limit=MIN_WALL_THICKNESS_MM,
    ),
    ConstraintRule(
        rule_id="max_slots",
        severity="warning",
        message=f"More than {MAX_SLOTS} slots makes a long, slow print",
        predicate=lambda p: p.num_slots <= MAX_SLOTS,
        value=lambda p: float(p.num_slots),
        limit=float(MAX_SLOTS),
    ),
    ConstraintRule(
        rule_id="min_tolerance_xy",
        severity="warning",
        message=f"XY tolerance below {MIN_TOLERANCE_XY_MM} mm may make slides bind",
        predicate=lambda p: p.tolerance_xy >= MIN_TOLERANCE_XY_MM,
        value=lambda p: p.tolerance_xy,
        limit=MIN_TOLERANCE_XY_MM,
    ),
    ConstraintRule(
        rule_id="supa_mega_archival",
        severity="warning",
        message="Supa Mega slides at archival density will likely exceed a typical print bed",
        predicate=lambda p: not (
            p.slide_standard == SUPA_MEGA_INDEX and p.density == ARCHIVAL_DENSITY_INDEX
        ),
    ),
)


def validate(
    params: GenerationParams,
    rules: Tuple[ConstraintRule, ...] = RULES,
) -> ConstraintReport:
    """Evaluate every rule and collect the violated ones in rule order."""
    violations = []
    for rule in rules:
        if rule.predicate(params):
            continue
        violations.append(
            ConstraintViolation(
                rule_id=rule.rule_id,
                severity=rule.severity,
                message=rule.message,
                value=rule.value(params) if rule.value is not None else None,
                limit=rule.limit,
            )
        )
        logger.debug("Rule %s violated (%s)", rule.rule_id, rule.severity)
    return ConstraintReport(violations=tuple(violations))
