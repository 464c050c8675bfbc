"""Rough OpenSCAD render-time estimate for a parameter set."""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from slidebox.assembly import part_count
from slidebox.contracts import GenerationParams

logger = logging.getLogger(__name__)

BASE_SECONDS = 2.0
SECONDS_PER_SLOT = 0.4
SECONDS_PER_PART = 3.0
FN_SECONDS = 5.0
CONSTRAINED_MULTIPLIER = 3.0
WARN_SECONDS = 60.0


@dataclass(frozen=True)
class RenderEstimate:
    seconds: float
    slots: int
    parts: int
    constrained: bool
    warn: bool

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def estimate_render_seconds(
    params: GenerationParams,
    constrained: bool = False,
    parts: Optional[int] = None,
) -> RenderEstimate:
    """Linear cost model; ``constrained`` covers slow or browser-hosted renderers."""
    slots = max(0, params.num_slots)
    parts = part_count(params) if parts is None else parts
    seconds = BASE_SECONDS + SECONDS_PER_SLOT * slots + SECONDS_PER_PART * parts
    if params.fn > 0:
        seconds += FN_SECONDS
    if constrained:
        seconds *= CONSTRAINED_MULTIPLIER
    warn = seconds > WARN_SECONDS
    if warn:
        logger.warning("Estimated render time %.0f s exceeds %.0f s", seconds, WARN_SECONDS)
    return RenderEstimate(
        seconds=round(seconds, 3),
        slots=slots,
        parts=parts,
        constrained=constrained,
        warn=warn,
    )
