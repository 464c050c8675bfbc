"""Slot, pitch and rib dimensions derived from a resolved slide."""

from slidebox.contracts import DerivedGeometry, GenerationParams, ResolvedSlide
from slidebox.standards import density_tier

WAVINESS_ALLOWANCE_MM = 0.1
RIB_CHAMFER_HEIGHT_MM = 2.0
MIN_RIB_TIP_MM = 0.4
RIB_PROFILE_TAPERED = 0
RIB_PROFILE_RECTANGULAR = 1


def slot_width(thickness: float, tol_z: float) -> float:
    return thickness + tol_z + WAVINESS_ALLOWANCE_MM


def pitch(slot_width: float, rib_width: float) -> float:
    return slot_width + rib_width


def rib_width_for_density(density_index: int) -> float:
    return density_tier(density_index).rib_width_mm


def rib_tip_width(root_width: float, tapered: bool) -> float:
    if not tapered:
        return root_width
    return min(root_width, max(MIN_RIB_TIP_MM, root_width / 2.0))


def derive_geometry(slide: ResolvedSlide, params: GenerationParams) -> DerivedGeometry:
    """Full set of slot/rib dimensions for one request."""
    if params.rib_profile not in (RIB_PROFILE_TAPERED, RIB_PROFILE_RECTANGULAR):
        raise ValueError(f"Unknown rib profile: {params.rib_profile}")

    if params.rib_width > 0:
        rib = float(params.rib_width)
    else:
        rib = rib_width_for_density(params.density)
    tapered = params.rib_profile == RIB_PROFILE_TAPERED
    slot = slot_width(slide.thickness_mm, params.tolerance_z)

    return DerivedGeometry(
        slot_width=slot,
        pitch=pitch(slot, rib),
        rib_width=rib,
        rib_root_width=rib,
        rib_tip_width=rib_tip_width(rib, tapered),
        chamfer_height=RIB_CHAMFER_HEIGHT_MM if tapered else 0.0,
        tapered=tapered,
    )
