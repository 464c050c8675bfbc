"""
Slide standard and density tier catalog.

Physical slide sizes for the built-in standards and the rib-width tiers that
set slot density. Resolution is a pure function of the selected index.
"""

from dataclasses import dataclass
from typing import Tuple

from slidebox.contracts import ResolvedSlide, SlideStandard

CUSTOM_STANDARD_INDEX = 4
SUPA_MEGA_INDEX = 3
ARCHIVAL_DENSITY_INDEX = 0

# Slot width of an ISO slide at the default Z tolerance. Published tier
# spacings are quoted against it.
REFERENCE_SLOT_WIDTH_MM = 2.0


SLIDE_STANDARDS: Tuple[SlideStandard, ...] = (
    SlideStandard(length_mm=76.0, width_mm=26.0, thickness_mm=1.0, name="ISO 8037"),
    SlideStandard(length_mm=76.2, width_mm=25.4, thickness_mm=1.0, name="US 3x1 in"),
    SlideStandard(length_mm=46.0, width_mm=27.0, thickness_mm=1.2, name="Petrographic"),
    SlideStandard(length_mm=75.0, width_mm=50.0, thickness_mm=1.0, name="Supa Mega"),
)


@dataclass(frozen=True)
class DensityTier:
    """A named rib-width preset."""

    name: str
    rib_width_mm: float

    @property
    def nominal_pitch_mm(self) -> float:
        return REFERENCE_SLOT_WIDTH_MM + self.rib_width_mm


DENSITY_TIERS: Tuple[DensityTier, ...] = (
    DensityTier(name="archival", rib_width_mm=0.6),  # 2.6 mm spacing
    DensityTier(name="working", rib_width_mm=1.5),  # 3.5 mm spacing
    DensityTier(name="staining", rib_width_mm=3.0),  # 5.0 mm spacing
    DensityTier(name="mailer", rib_width_mm=4.0),  # 6.0 mm spacing
)


def resolve_slide(
    standard_index: int,
    custom_length: float,
    custom_width: float,
    custom_thickness: float,
) -> ResolvedSlide:
    """Pick a built-in slide row, or build one from the custom values.

    Custom values are ignored whenever the index selects a built-in row.
    """
    if 0 <= standard_index < len(SLIDE_STANDARDS):
        return SLIDE_STANDARDS[standard_index]
    return SlideStandard(
        length_mm=float(custom_length),
        width_mm=float(custom_width),
        thickness_mm=float(custom_thickness),
        name="custom",
    )


def density_tier(density_index: int) -> DensityTier:
    if not 0 <= density_index < len(DENSITY_TIERS):
        raise ValueError(
            f"Unknown density index {density_index} (expected 0..{len(DENSITY_TIERS) - 1})"
        )
    return DENSITY_TIERS[density_index]
