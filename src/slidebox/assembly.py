"""
Mode assemblers: lay out primitives into the parts of each product family.

Each strategy is a pure function ``(slide, derived, params) -> List[Part]``;
``assemble`` dispatches on the Mode tag. Parts come out in their assembled
orientation, each in its own frame with z=0 at the part's underside.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from slidebox import primitives as prim
from slidebox.contracts import DerivedGeometry, GenerationParams, Mode, Part, ResolvedSlide
from slidebox.csg import Cylinder, Node, box, difference, named, rotate, translate, union
from slidebox.primitives import OVERLAP_MM

logger = logging.getLogger(__name__)

RIB_HEIGHT_FRACTION = 0.5
ANTI_CAPILLARY_HEIGHT_MM = 0.6

# Stacking
STACK_LIP_HEIGHT_MM = 2.0
STACK_LIP_INSET_MM = 1.0
STACK_MIN_OPENING_MM = 2.0

# Box
LID_SKIRT_MM = 6.0
LABEL_MAX_WIDTH_MM = 50.0
LABEL_MAX_HEIGHT_MM = 12.0
LABEL_DEPTH_MM = 0.6
LABEL_MARGIN_MM = 3.0
LID_LATCH_SNAP = 0
LID_LATCH_MAGNETIC = 1
LID_LATCH_NONE = 2

# Snap latch, lid frame: catch wedge starts LATCH_CATCH_Z_MM above the skirt bottom.
LATCH_WIDTH_MM = 8.0
LATCH_ARM_THICKNESS_MM = 1.6
LATCH_HOOK_HEIGHT_MM = 1.5
LATCH_CATCH_DEPTH_MM = 1.0
LATCH_CATCH_HEIGHT_MM = 1.5
LATCH_CATCH_Z_MM = 1.0
LATCH_ROOT_MM = 8.0

MAGNET_DIAMETER_MM = 6.2
MAGNET_DEPTH_MM = 3.2
MAGNET_BOSS_MM = 9.0

# Tray
TRAY_POCKET_HEADROOM_MM = 1.0
TRAY_LID_SKIRT_MM = 3.0
FINGER_NOTCH_MAX_RADIUS_MM = 8.0

# Staining rack
RACK_CROSSBAR_WIDTH_MM = 3.0
RACK_CROSSBAR_SPACING_MM = 15.0
HANDLE_WIDTH_MM = 6.0
HANDLE_CLEARANCE_MM = 10.0
HANDLE_TAB_BASE_MM = 3.0
HANDLE_TAB_TOP_MM = 4.5
HANDLE_TAB_HEIGHT_MM = 3.0
HANDLE_TAB_TOL_MM = 0.3
DRIP_TRAY_HEIGHT_MM = 8.0

# Cabinet
DRAWER_WALL_FRACTION = 0.6
MAX_DRAWERS_PER_SHELL = 5
PULL_NOTCH_RADIUS_MM = 10.0
RAIL_T_SLOT = 0
RAIL_L_RAIL = 1
RAIL_STEM_DEPTH_MM = 1.5
RAIL_STEM_HEIGHT_MM = 3.0
RAIL_CAP_DEPTH_MM = 1.5
RAIL_CAP_HEIGHT_MM = 6.0
RAIL_FLANGE_DEPTH_MM = 2.5
RAIL_FLANGE_HEIGHT_MM = 2.0
BACKSTOP_WIDTH_MM = 10.0
BACKSTOP_HEIGHT_MM = 1.5
# Backstop tab rides on a beam cut free from the drawer's rear wall.
BACKSTOP_BEAM_LENGTH_MM = 20.0
BACKSTOP_BEAM_HEIGHT_MM = 1.6
BACKSTOP_RELIEF_MM = BACKSTOP_HEIGHT_MM
BACKSTOP_TIP_MARGIN_MM = 1.0

PART_COLORS = {
    "box_base": "#3b7dd8",
    "box_lid": "#d8e4f2",
    "tray": "#3b9c6d",
    "tray_lid": "#d5eadf",
    "rack_body": "#c9463d",
    "rack_handle": "#8a8f98",
    "rack_drip_tray": "#e8d5d3",
    "cabinet_shell": "#6b5b95",
    "drawer": "#f2b134",
}


# ─── Shared layout helpers ──────────────────────────────────────────────────


def rib_height(slide: ResolvedSlide) -> float:
    return slide.width_mm * RIB_HEIGHT_FRACTION


def notch_segments(params: GenerationParams) -> int:
    return max(prim.MIN_NOTCH_SEGMENTS, params.fn)


def groove_allowance(stackable: bool) -> float:
    """Extra floor needed to hold a stacking groove underneath."""
    if not stackable:
        return 0.0
    return STACK_LIP_HEIGHT_MM + prim.STACK_CLEARANCE_MM


def lip_width(wall: float) -> float:
    return max(prim.LIP_MIN_TOP_WIDTH_MM, wall)


def stacking_fits(outer_x: float, outer_y: float, wall: float) -> bool:
    """True when the stacking groove ring leaves a usable opening in the footprint."""
    ring = lip_width(wall) + prim.STACK_CLEARANCE_MM
    span = 2 * STACK_LIP_INSET_MM - prim.STACK_CLEARANCE_MM
    return min(outer_x, outer_y) - span - 2 * ring >= STACK_MIN_OPENING_MM


def resolve_stackable(params: GenerationParams, outer_x: float, outer_y: float) -> bool:
    if not params.stackable:
        return False
    if stacking_fits(outer_x, outer_y, params.wall_thickness):
        return True
    logger.debug(
        "Footprint %.1f x %.1f mm is too small for a stacking lip; building unstacked",
        outer_x, outer_y,
    )
    return False


def slot_numbers(start: int, count: int) -> List[int]:
    return list(range(start, start + count))


def _slot_array(count: int, derived: DerivedGeometry, height: float, depth: float) -> Node:
    return prim.slot_array(
        count,
        derived.pitch,
        height,
        depth,
        derived.rib_root_width,
        derived.rib_tip_width,
        derived.chamfer_height,
        derived.tapered,
    )


def _lip_on_top(outer_x: float, outer_y: float, z: float, wall: float) -> Node:
    inset = STACK_LIP_INSET_MM
    lip = prim.stacking_lip(
        outer_x - 2 * inset, outer_y - 2 * inset, STACK_LIP_HEIGHT_MM, lip_width(wall)
    )
    return translate(lip, inset, inset, z)


def _groove_underneath(outer_x: float, outer_y: float, wall: float) -> Node:
    inset = STACK_LIP_INSET_MM
    groove = prim.stacking_groove(
        outer_x - 2 * inset, outer_y - 2 * inset, STACK_LIP_HEIGHT_MM, lip_width(wall)
    )
    half = prim.STACK_CLEARANCE_MM / 2.0
    return translate(groove, inset - half, inset - half, -OVERLAP_MM)


def _on_end_walls(
    node: Node,
    width: float,
    outer_x: float,
    center_y: float,
    z: float,
    standoff: float,
    inward: bool,
) -> List[Node]:
    """Mount a +Y-facing feature on both X end walls.

    ``standoff`` is the distance of the feature's y=0 plane outside the wall
    face; ``inward`` turns local +Y toward the part, otherwise away from it.
    """
    placed = []
    for right in (False, True):
        rz = -90.0 if inward != right else 90.0
        x = outer_x + standoff if right else -standoff
        y = center_y + width / 2.0 if rz < 0 else center_y - width / 2.0
        placed.append(translate(rotate(node, rz=rz), x, y, z))
    return placed


def _lid_shell(outer_x: float, outer_y: float, wall: float, skirt: float) -> Node:
    """Top plate over a skirt, open underneath."""
    cavity = translate(
        box(outer_x - 2 * wall, outer_y - 2 * wall, skirt + OVERLAP_MM), wall, wall, -OVERLAP_MM
    )
    return difference(box(outer_x, outer_y, skirt + wall), cavity)


def _slotted_core(
    count: int,
    derived: DerivedGeometry,
    inner_x: float,
    inner_y: float,
    wall: float,
    floor: float,
    inner_h: float,
    ribs_h: float,
    rail_h: float,
) -> Node:
    """Open shell with a slot array standing on its floor (box base, drawer)."""
    shell = prim.open_shell(inner_x + 2 * wall, inner_y + 2 * wall, floor + inner_h, wall, floor)
    ribs = translate(_slot_array(count, derived, ribs_h + rail_h, inner_y), wall, wall, floor)
    rails = None
    if rail_h > 0:
        rails = translate(prim.anti_capillary_ribs(inner_x, inner_y, rail_h), wall, wall, floor)
    return union(shell, ribs, rails)


# ─── Box ─────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BoxLayout:
    inner_x: float
    inner_y: float
    outer_x: float
    outer_y: float
    wall: float
    floor: float
    base_inner_h: float
    base_h: float
    rib_h: float
    rail_h: float
    lid_h: float
    stackable: bool


def box_layout(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> BoxLayout:
    wall = params.wall_thickness
    rail_h = ANTI_CAPILLARY_HEIGHT_MM if params.anti_capillary else 0.0
    inner_x = prim.slot_array_length(params.num_slots, derived.pitch, derived.rib_root_width)
    inner_y = slide.length_mm + 2 * params.tolerance_xy
    outer_x = inner_x + 2 * wall
    outer_y = inner_y + 2 * wall
    stackable = resolve_stackable(params, outer_x, outer_y)
    floor = wall + groove_allowance(stackable)
    base_inner_h = slide.width_mm + params.tolerance_xy + rail_h
    return BoxLayout(
        inner_x=inner_x,
        inner_y=inner_y,
        outer_x=outer_x,
        outer_y=outer_y,
        wall=wall,
        floor=floor,
        base_inner_h=base_inner_h,
        base_h=floor + base_inner_h,
        rib_h=rib_height(slide),
        rail_h=rail_h,
        lid_h=LID_SKIRT_MM + wall,
        stackable=stackable,
    )


def _front_label_recess(outer_x: float, z_lo: float, z_hi: float, wall: float) -> Optional[Node]:
    width = min(LABEL_MAX_WIDTH_MM, outer_x - 2 * LABEL_MARGIN_MM)
    height = min(LABEL_MAX_HEIGHT_MM, (z_hi - z_lo) * 0.5)
    if width <= 0 or height <= 0:
        logger.debug("Front face %.1f mm wide is too small for a label", outer_x)
        return None
    depth = min(LABEL_DEPTH_MM, wall / 2.0)
    recess = prim.label_recess(width, height, depth)
    z0 = z_lo + ((z_hi - z_lo) - height) / 2.0
    # Opening on the y=0 face, relief edge at the top.
    return translate(rotate(recess, rx=90.0), (outer_x - width) / 2.0, depth, z0)


def _magnet_corners(outer_x: float, outer_y: float) -> List[Tuple[float, float]]:
    """Lower-left corners of the four magnet bosses on the front and back faces."""
    b = MAGNET_BOSS_MM
    xs = (0.0, outer_x - b)
    ys = (-b + OVERLAP_MM, outer_y - OVERLAP_MM)
    return [(x, y) for y in ys for x in xs]


def _magnet_bosses(outer_x: float, outer_y: float, height: float) -> Node:
    b = MAGNET_BOSS_MM
    bosses = [
        named("magnet_boss", translate(box(b, b, height), x, y))
        for x, y in _magnet_corners(outer_x, outer_y)
    ]
    return union(*bosses)


def _magnet_pockets(outer_x: float, outer_y: float, z: float, segments: int) -> List[Node]:
    half = MAGNET_BOSS_MM / 2.0
    pocket = Cylinder(MAGNET_DIAMETER_MM / 2.0, MAGNET_DEPTH_MM + OVERLAP_MM, segments)
    return [
        named("magnet_pocket", translate(pocket, x + half, y + half, z))
        for x, y in _magnet_corners(outer_x, outer_y)
    ]


def latch_arm_length() -> float:
    catch_top = LATCH_CATCH_Z_MM + LATCH_CATCH_DEPTH_MM + LATCH_CATCH_HEIGHT_MM
    return LATCH_ROOT_MM + catch_top + LATCH_HOOK_HEIGHT_MM


def _latch_arms(layout: BoxLayout) -> List[Node]:
    arm = prim.snap_latch_arm(
        latch_arm_length(),
        LATCH_WIDTH_MM,
        LATCH_ARM_THICKNESS_MM,
        LATCH_CATCH_DEPTH_MM,
        LATCH_HOOK_HEIGHT_MM,
    )
    root_z = layout.base_h - LATCH_ROOT_MM
    center_y = layout.outer_y / 2.0
    arms = _on_end_walls(
        arm,
        LATCH_WIDTH_MM,
        layout.outer_x,
        center_y,
        root_z,
        standoff=LATCH_CATCH_DEPTH_MM + LATCH_ARM_THICKNESS_MM,
        inward=True,
    )
    standoff = box(LATCH_CATCH_DEPTH_MM + OVERLAP_MM, LATCH_WIDTH_MM, LATCH_ROOT_MM / 2.0)
    y0 = center_y - LATCH_WIDTH_MM / 2.0
    blocks = [
        translate(standoff, -LATCH_CATCH_DEPTH_MM, y0, root_z),
        translate(standoff, layout.outer_x - OVERLAP_MM, y0, root_z),
    ]
    return arms + blocks


def _latch_catches(layout: BoxLayout) -> List[Node]:
    catch = prim.snap_latch_catch(LATCH_WIDTH_MM, LATCH_CATCH_DEPTH_MM, LATCH_CATCH_HEIGHT_MM)
    return _on_end_walls(
        catch,
        LATCH_WIDTH_MM,
        layout.outer_x,
        layout.outer_y / 2.0,
        LATCH_CATCH_Z_MM,
        standoff=0.0,
        inward=False,
    )


def assemble_box(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> List[Part]:
    """Slotted base with lid; slides stand on their long edge along X."""
    layout = box_layout(slide, derived, params)
    segments = notch_segments(params)
    logger.debug(
        "Box %.1f x %.1f x %.1f mm, %d slots", layout.outer_x, layout.outer_y,
        layout.base_h, params.num_slots,
    )

    base_solids: List[Optional[Node]] = [
        _slotted_core(
            params.num_slots, derived, layout.inner_x, layout.inner_y, layout.wall,
            layout.floor, layout.base_inner_h, layout.rib_h, layout.rail_h,
        )
    ]
    base_cuts: List[Optional[Node]] = []
    lid_solids: List[Optional[Node]] = [
        _lid_shell(layout.outer_x, layout.outer_y, layout.wall, LID_SKIRT_MM)
    ]
    lid_cuts: List[Optional[Node]] = []

    if params.label_area:
        base_cuts.append(_front_label_recess(layout.outer_x, layout.floor, layout.base_h, layout.wall))
    if layout.stackable:
        base_cuts.append(_groove_underneath(layout.outer_x, layout.outer_y, layout.wall))
        lid_solids.append(_lip_on_top(layout.outer_x, layout.outer_y, layout.lid_h, layout.wall))

    if params.lid_latch == LID_LATCH_SNAP:
        base_solids.extend(_latch_arms(layout))
        lid_solids.extend(_latch_catches(layout))
    elif params.lid_latch == LID_LATCH_MAGNETIC:
        base_solids.append(_magnet_bosses(layout.outer_x, layout.outer_y, layout.base_h))
        base_cuts.extend(
            _magnet_pockets(layout.outer_x, layout.outer_y, layout.base_h - MAGNET_DEPTH_MM, segments)
        )
        lid_solids.append(_magnet_bosses(layout.outer_x, layout.outer_y, layout.lid_h))
        lid_cuts.extend(_magnet_pockets(layout.outer_x, layout.outer_y, -OVERLAP_MM, segments))
    elif params.lid_latch != LID_LATCH_NONE:
        raise ValueError(f"Unknown lid latch: {params.lid_latch}")

    base = difference(union(*base_solids), *base_cuts)
    lid = difference(union(*lid_solids), *lid_cuts)
    numbers = slot_numbers(params.numbering_start, params.num_slots)
    return [
        Part(
            part_id="box_base",
            label="Box base",
            default_color=PART_COLORS["box_base"],
            geometry=base,
            metadata={"slot_numbers": numbers, "slot_count": params.num_slots},
        ),
        Part(
            part_id="box_lid",
            label="Box lid",
            default_color=PART_COLORS["box_lid"],
            geometry=lid,
        ),
    ]


# ─── Tray ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrayLayout:
    rows: int
    columns: int
    pocket_x: float
    pocket_y: float
    pocket_depth: float
    wall: float
    floor: float
    outer_x: float
    outer_y: float
    height: float
    rail_h: float
    stackable: bool

    def pocket_origin(self, row: int, column: int) -> Tuple[float, float]:
        return (
            self.wall + column * (self.pocket_x + self.wall),
            self.wall + row * (self.pocket_y + self.wall),
        )


def tray_layout(slide: ResolvedSlide, params: GenerationParams) -> TrayLayout:
    rows = max(1, params.tray_rows)
    columns = max(1, params.tray_columns)
    wall = params.wall_thickness
    rail_h = ANTI_CAPILLARY_HEIGHT_MM if params.anti_capillary else 0.0
    pocket_x = slide.length_mm + 2 * params.tolerance_xy
    pocket_y = slide.width_mm + 2 * params.tolerance_xy
    pocket_depth = slide.thickness_mm + params.tolerance_z + TRAY_POCKET_HEADROOM_MM + rail_h
    outer_x = columns * pocket_x + (columns + 1) * wall
    outer_y = rows * pocket_y + (rows + 1) * wall
    stackable = resolve_stackable(params, outer_x, outer_y)
    floor = wall + groove_allowance(stackable)
    return TrayLayout(
        rows=rows,
        columns=columns,
        pocket_x=pocket_x,
        pocket_y=pocket_y,
        pocket_depth=pocket_depth,
        wall=wall,
        floor=floor,
        outer_x=outer_x,
        outer_y=outer_y,
        height=floor + pocket_depth,
        rail_h=rail_h,
        stackable=stackable,
    )


def assemble_tray(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> List[Part]:
    """Flat grid of pockets, one slide per pocket."""
    layout = tray_layout(slide, params)
    segments = notch_segments(params)
    notch_r = min(FINGER_NOTCH_MAX_RADIUS_MM, layout.pocket_y / 4.0)

    pocket = box(layout.pocket_x, layout.pocket_y, layout.pocket_depth + OVERLAP_MM)
    cuts: List[Optional[Node]] = []
    rails: List[Node] = []
    for row in range(layout.rows):
        for column in range(layout.columns):
            x0, y0 = layout.pocket_origin(row, column)
            cuts.append(named("pocket", translate(pocket, x0, y0, layout.floor)))
            if params.finger_notch:
                notch = prim.finger_notch(notch_r, layout.pocket_depth, segments)
                cuts.append(translate(notch, x0 + layout.pocket_x / 2.0, y0, layout.floor))
            if params.anti_capillary:
                rail_set = prim.anti_capillary_ribs(layout.pocket_x, layout.pocket_y, layout.rail_h)
                rails.append(translate(rail_set, x0, y0, layout.floor))
    if layout.stackable:
        cuts.append(_groove_underneath(layout.outer_x, layout.outer_y, layout.wall))

    body = difference(box(layout.outer_x, layout.outer_y, layout.height), *cuts)
    tray = union(body, *rails)

    lid = _lid_shell(layout.outer_x, layout.outer_y, layout.wall, TRAY_LID_SKIRT_MM)
    if layout.stackable:
        lid = union(lid, _lip_on_top(
            layout.outer_x, layout.outer_y, TRAY_LID_SKIRT_MM + layout.wall, layout.wall
        ))

    pocket_count = layout.rows * layout.columns
    logger.debug("Tray %d x %d pockets, %.1f x %.1f mm", layout.rows, layout.columns,
                 layout.outer_x, layout.outer_y)
    return [
        Part(
            part_id="tray",
            label="Slide tray",
            default_color=PART_COLORS["tray"],
            geometry=tray,
            metadata={
                "slot_numbers": slot_numbers(params.numbering_start, pocket_count),
                "slot_count": pocket_count,
            },
        ),
        Part(
            part_id="tray_lid",
            label="Tray lid",
            default_color=PART_COLORS["tray_lid"],
            geometry=lid,
        ),
    ]


# ─── Staining rack ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RackLayout:
    inner_x: float
    outer_x: float
    outer_y: float
    wall: float
    floor_h: float  # floor top at the near (y=0) edge
    drop: float
    wall_h: float
    handle_post_h: float


def rack_layout(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> RackLayout:
    wall = params.wall_thickness
    inner_x = prim.slot_array_length(params.num_slots, derived.pitch, derived.rib_root_width)
    outer_y = slide.length_mm + 2 * params.tolerance_xy
    if params.open_bottom:
        drop = 0.0
    else:
        drop = prim.drainage_drop(outer_y, params.drainage_angle)
    floor_h = wall + drop
    rib_h = rib_height(slide)
    return RackLayout(
        inner_x=inner_x,
        outer_x=inner_x + 2 * wall,
        outer_y=outer_y,
        wall=wall,
        floor_h=floor_h,
        drop=drop,
        wall_h=floor_h + rib_h,
        handle_post_h=slide.width_mm - rib_h + HANDLE_CLEARANCE_MM,
    )


def _crossbar_lattice(layout: RackLayout) -> Node:
    count = max(2, int(layout.outer_y // RACK_CROSSBAR_SPACING_MM) + 1)
    step = (layout.outer_y - RACK_CROSSBAR_WIDTH_MM) / (count - 1)
    bar = box(layout.outer_x, RACK_CROSSBAR_WIDTH_MM, layout.wall)
    bars = [named("crossbar", translate(bar, y=i * step)) for i in range(count)]
    return named("crossbar_lattice", union(*bars))


def _dovetail_through_x(node: Node) -> Node:
    """Dovetail profile hanging below z=0, extruded along +X, spanning -Y."""
    return rotate(node, -90.0, 0.0, -90.0)


def _handle_recesses(layout: RackLayout) -> List[Node]:
    tol = HANDLE_TAB_TOL_MM
    recess = _dovetail_through_x(prim.stack_tab_female(
        HANDLE_TAB_BASE_MM, HANDLE_TAB_TOP_MM, HANDLE_TAB_HEIGHT_MM, layout.wall, tol
    ))
    span = max(HANDLE_TAB_BASE_MM, HANDLE_TAB_TOP_MM) + tol
    y = layout.outer_y / 2.0 + span / 2.0
    z = layout.wall_h + OVERLAP_MM
    # Open on the outer face, stopping at the inner face of each end wall.
    return [
        named("handle_recess", translate(recess, -tol, y, z)),
        named("handle_recess", translate(recess, layout.outer_x - layout.wall, y, z)),
    ]


def _rack_handle(layout: RackLayout) -> Node:
    post = box(layout.wall, HANDLE_WIDTH_MM, layout.handle_post_h)
    bar = box(layout.outer_x, HANDLE_WIDTH_MM, HANDLE_WIDTH_MM)
    tab = _dovetail_through_x(prim.stack_tab_male(
        HANDLE_TAB_BASE_MM, HANDLE_TAB_TOP_MM, HANDLE_TAB_HEIGHT_MM, layout.wall
    ))
    span = max(HANDLE_TAB_BASE_MM, HANDLE_TAB_TOP_MM)
    tab_y = HANDLE_WIDTH_MM / 2.0 + span / 2.0
    right_x = layout.outer_x - layout.wall
    return union(
        post,
        translate(post, x=right_x),
        translate(bar, z=layout.handle_post_h - OVERLAP_MM),
        translate(tab, 0.0, tab_y, OVERLAP_MM),
        translate(tab, right_x, tab_y, OVERLAP_MM),
    )


def assemble_staining_rack(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> List[Part]:
    """Open rack for dipping; the floor slopes along the slide length to drain."""
    layout = rack_layout(slide, derived, params)
    logger.debug("Rack %.1f x %.1f mm, floor drop %.2f mm", layout.outer_x, layout.outer_y,
                 layout.drop)

    if params.open_bottom:
        floor = _crossbar_lattice(layout)
    else:
        slope = prim.drainage_slope(
            layout.outer_y, layout.outer_x, layout.floor_h, params.drainage_angle
        )
        # Slope runs along +Y so runoff follows the ribs.
        floor = translate(rotate(slope, rz=90.0), x=layout.outer_x)

    ribs = translate(
        _slot_array(params.num_slots, derived, layout.wall_h, layout.outer_y), x=layout.wall
    )
    end_wall = box(layout.wall, layout.outer_y, layout.wall_h)
    body = union(floor, ribs, end_wall, translate(end_wall, x=layout.outer_x - layout.wall))
    if params.handle:
        body = difference(body, *_handle_recesses(layout))

    parts = [
        Part(
            part_id="rack_body",
            label="Staining rack",
            default_color=PART_COLORS["rack_body"],
            geometry=body,
            metadata={
                "slot_numbers": slot_numbers(params.numbering_start, params.num_slots),
                "slot_count": params.num_slots,
                "drainage_drop_mm": layout.drop,
            },
        )
    ]
    if params.handle:
        parts.append(
            Part(
                part_id="rack_handle",
                label="Rack handle",
                default_color=PART_COLORS["rack_handle"],
                geometry=_rack_handle(layout),
            )
        )

    clearance = params.tolerance_xy
    tray_inner_x = layout.outer_x + 2 * clearance
    tray_inner_y = layout.outer_y + 2 * clearance
    drip_tray = prim.open_shell(
        tray_inner_x + 2 * layout.wall,
        tray_inner_y + 2 * layout.wall,
        layout.wall + DRIP_TRAY_HEIGHT_MM,
        layout.wall,
        layout.wall,
    )
    parts.append(
        Part(
            part_id="rack_drip_tray",
            label="Drip tray",
            default_color=PART_COLORS["rack_drip_tray"],
            geometry=drip_tray,
        )
    )
    return parts


# ─── Cabinet drawer + shell ──────────────────────────────────────────────────


@dataclass(frozen=True)
class CabinetLayout:
    drawers: int
    drawer_x: float
    drawer_y: float
    drawer_h: float
    wall: float
    side_wall: float
    runner_reach: float
    bay_x: float
    bay_y: float
    bay_h: float
    floor: float
    outer_x: float
    outer_y: float
    outer_h: float
    stackable: bool
    backstop: bool

    def bay_z(self, index: int) -> float:
        return self.floor + index * (self.bay_h + self.wall)


def runner_reach(rail_profile: int) -> float:
    if rail_profile == RAIL_T_SLOT:
        return RAIL_STEM_DEPTH_MM + RAIL_CAP_DEPTH_MM
    if rail_profile == RAIL_L_RAIL:
        return RAIL_FLANGE_DEPTH_MM
    raise ValueError(f"Unknown rail profile: {rail_profile}")


def backstop_fits(drawer_x: float, drawer_h: float, wall: float) -> bool:
    """True when the rear wall has room for the backstop beam and its relief slots."""
    span_ok = drawer_x - 2 * wall >= BACKSTOP_BEAM_LENGTH_MM + BACKSTOP_RELIEF_MM
    height_ok = drawer_h - BACKSTOP_BEAM_HEIGHT_MM - BACKSTOP_RELIEF_MM > wall
    if not (span_ok and height_ok):
        logger.debug("Drawer rear wall too small for a backstop; leaving it out")
    return span_ok and height_ok


def cabinet_layout(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> CabinetLayout:
    wall = params.wall_thickness
    tol = params.tolerance_xy
    drawers = min(MAX_DRAWERS_PER_SHELL, max(1, params.drawers_per_shell))
    rail_h = ANTI_CAPILLARY_HEIGHT_MM if params.anti_capillary else 0.0
    inner_x = prim.slot_array_length(params.num_slots, derived.pitch, derived.rib_root_width)
    inner_y = slide.length_mm + 2 * tol
    drawer_h = wall + slide.width_mm * DRAWER_WALL_FRACTION + rail_h
    reach = runner_reach(params.rail_profile)

    drawer_x = inner_x + 2 * wall
    drawer_y = inner_y + 2 * wall
    bay_x = drawer_x + 2 * tol
    bay_y = drawer_y + tol
    bay_h = drawer_h + BACKSTOP_HEIGHT_MM + 2 * tol
    side_wall = wall + reach + tol
    outer_x = bay_x + 2 * side_wall
    outer_y = bay_y + wall
    stackable = resolve_stackable(params, outer_x, outer_y)
    floor = wall + groove_allowance(stackable)
    backstop = params.backstop and backstop_fits(drawer_x, drawer_h, wall)
    return CabinetLayout(
        drawers=drawers,
        drawer_x=drawer_x,
        drawer_y=drawer_y,
        drawer_h=drawer_h,
        wall=wall,
        side_wall=side_wall,
        runner_reach=reach,
        bay_x=bay_x,
        bay_y=bay_y,
        bay_h=bay_h,
        floor=floor,
        outer_x=outer_x,
        outer_y=outer_y,
        outer_h=floor + drawers * bay_h + drawers * wall,
        stackable=stackable,
        backstop=backstop,
    )


def _runner_profile(layout: CabinetLayout, rail_profile: int) -> List[Tuple[float, float, float, float]]:
    """Left runner cross-sections as (x_lo, x_hi, z_lo, z_hi), drawer frame."""
    if rail_profile == RAIL_T_SLOT:
        zc = layout.drawer_h / 2.0
        stem_x = -RAIL_STEM_DEPTH_MM
        cap_x = stem_x - RAIL_CAP_DEPTH_MM
        return [
            (stem_x, OVERLAP_MM, zc - RAIL_STEM_HEIGHT_MM / 2.0, zc + RAIL_STEM_HEIGHT_MM / 2.0),
            (cap_x, stem_x, zc - RAIL_CAP_HEIGHT_MM / 2.0, zc + RAIL_CAP_HEIGHT_MM / 2.0),
        ]
    top = layout.drawer_h
    return [(-RAIL_FLANGE_DEPTH_MM, OVERLAP_MM, top - RAIL_FLANGE_HEIGHT_MM, top)]


def _x_mirrored_boxes(
    sections: List[Tuple[float, float, float, float]],
    y0: float,
    length: float,
    span_x: float,
    x_offset: float = 0.0,
    z_offset: float = 0.0,
) -> List[Node]:
    solids = []
    for x_lo, x_hi, z_lo, z_hi in sections:
        segment = box(x_hi - x_lo, length, z_hi - z_lo)
        solids.append(translate(segment, x_offset + x_lo, y0, z_offset + z_lo))
        solids.append(translate(segment, x_offset + span_x - x_hi, y0, z_offset + z_lo))
    return solids


def _backstop(layout: CabinetLayout) -> Tuple[Node, List[Node]]:
    """Ramped tab on the free end of a beam in the drawer's rear wall.

    The ramp faces +Y so the shell's lip pushes the beam down while the drawer
    goes in; the upright -Y face catches the lip when it is pulled out.
    Returns the tab and the two relief cuts that free the beam.
    """
    wall = layout.wall
    length = BACKSTOP_BEAM_LENGTH_MM
    relief = BACKSTOP_RELIEF_MM
    x0 = (layout.drawer_x - length - relief) / 2.0
    y0 = layout.drawer_y - wall - OVERLAP_MM
    slot_z = layout.drawer_h - BACKSTOP_BEAM_HEIGHT_MM - relief
    under = box(length + relief, wall + 2 * OVERLAP_MM, relief)
    end = box(relief, wall + 2 * OVERLAP_MM, BACKSTOP_BEAM_HEIGHT_MM + relief + OVERLAP_MM)
    cuts = [
        named("backstop_relief", translate(under, x0, y0, slot_z)),
        named("backstop_release", translate(end, x0 + length, y0, slot_z)),
    ]

    ramp = prim.prism_yz(
        ((0.0, 0.0), (wall, 0.0), (0.0, BACKSTOP_HEIGHT_MM + OVERLAP_MM)), BACKSTOP_WIDTH_MM
    )
    tab_x = x0 + length - BACKSTOP_TIP_MARGIN_MM - BACKSTOP_WIDTH_MM
    tab = named("backstop", translate(
        ramp, tab_x, layout.drawer_y - wall, layout.drawer_h - OVERLAP_MM
    ))
    return tab, cuts


def _drawer(
    slide: ResolvedSlide,
    derived: DerivedGeometry,
    params: GenerationParams,
    layout: CabinetLayout,
) -> Node:
    wall = layout.wall
    rail_h = ANTI_CAPILLARY_HEIGHT_MM if params.anti_capillary else 0.0
    core = _slotted_core(
        params.num_slots, derived,
        layout.drawer_x - 2 * wall, layout.drawer_y - 2 * wall, wall, wall,
        layout.drawer_h - wall, rib_height(slide), rail_h,
    )
    runners = named("rail_runners", union(*_x_mirrored_boxes(
        _runner_profile(layout, params.rail_profile), 0.0, layout.drawer_y, layout.drawer_x
    )))
    solids: List[Optional[Node]] = [core, runners]
    cuts: List[Optional[Node]] = []
    if layout.backstop:
        tab, relief = _backstop(layout)
        solids.append(tab)
        cuts.extend(relief)

    radius = min(PULL_NOTCH_RADIUS_MM, (layout.drawer_h - wall) / 2.0, layout.drawer_x / 3.0)
    pull = prim.finger_notch(radius, wall, notch_segments(params))
    # Axis along +Y through the front wall, centred on its top edge.
    pull = translate(
        rotate(pull, rx=-90.0),
        layout.drawer_x / 2.0,
        -prim.NOTCH_OVERSHOOT_MM / 2.0,
        layout.drawer_h,
    )
    return difference(union(*solids), pull, *cuts)


def _shell(params: GenerationParams, layout: CabinetLayout) -> Node:
    tol = params.tolerance_xy
    cuts: List[Optional[Node]] = []
    lips: List[Node] = []
    drawer_x0 = layout.side_wall + tol
    channel_sections = [
        (x_lo - tol, x_hi, z_lo - tol, z_hi + tol)
        for x_lo, x_hi, z_lo, z_hi in _runner_profile(layout, params.rail_profile)
    ]
    bay = box(layout.bay_x, layout.bay_y + OVERLAP_MM, layout.bay_h)
    for index in range(layout.drawers):
        z = layout.bay_z(index)
        cuts.append(named("drawer_bay", translate(bay, layout.side_wall, -OVERLAP_MM, z)))
        cuts.append(named("rail_channels", union(*_x_mirrored_boxes(
            channel_sections,
            -OVERLAP_MM,
            layout.bay_y + OVERLAP_MM,
            layout.drawer_x,
            x_offset=drawer_x0,
            z_offset=z,
        ))))
        if layout.backstop:
            lip_h = BACKSTOP_HEIGHT_MM + tol
            lips.append(named("backstop_lip", translate(
                box(layout.bay_x, layout.wall, lip_h),
                layout.side_wall, 0.0, z + layout.bay_h - lip_h,
            )))
    if layout.stackable:
        cuts.append(_groove_underneath(layout.outer_x, layout.outer_y, layout.wall))

    shell = difference(box(layout.outer_x, layout.outer_y, layout.outer_h), *cuts)
    extras: List[Optional[Node]] = list(lips)
    if layout.stackable:
        extras.append(_lip_on_top(layout.outer_x, layout.outer_y, layout.outer_h, layout.wall))
    return union(shell, *extras)


def assemble_cabinet_drawer(
    slide: ResolvedSlide, derived: DerivedGeometry, params: GenerationParams
) -> List[Part]:
    """Enclosure with identical slotted drawers on rail guides."""
    layout = cabinet_layout(slide, derived, params)
    logger.debug("Cabinet %.1f x %.1f x %.1f mm, %d drawers", layout.outer_x,
                 layout.outer_y, layout.outer_h, layout.drawers)
    drawer = _drawer(slide, derived, params, layout)
    parts = [
        Part(
            part_id="cabinet_shell",
            label="Cabinet shell",
            default_color=PART_COLORS["cabinet_shell"],
            geometry=_shell(params, layout),
            metadata={"drawers": layout.drawers, "backstop": layout.backstop},
        )
    ]
    for index in range(layout.drawers):
        start = params.numbering_start + index * params.num_slots
        parts.append(
            Part(
                part_id=f"drawer_{index + 1}",
                label=f"Drawer {index + 1}",
                default_color=PART_COLORS["drawer"],
                geometry=drawer,
                metadata={
                    "slot_numbers": slot_numbers(start, params.num_slots),
                    "slot_count": params.num_slots,
                },
            )
        )
    return parts


# ─── Dispatch ────────────────────────────────────────────────────────────────

Assembler = Callable[[ResolvedSlide, DerivedGeometry, GenerationParams], List[Part]]

ASSEMBLERS: Dict[Mode, Assembler] = {
    Mode.BOX: assemble_box,
    Mode.TRAY: assemble_tray,
    Mode.STAINING_RACK: assemble_staining_rack,
    Mode.CABINET_DRAWER: assemble_cabinet_drawer,
}


def assemble(
    mode: Mode,
    slide: ResolvedSlide,
    derived: DerivedGeometry,
    params: GenerationParams,
) -> List[Part]:
    """Run the strategy for ``mode``."""
    return ASSEMBLERS[Mode.parse(mode)](slide, derived, params)


def part_count(params: GenerationParams) -> int:
    """Number of parts ``assemble`` produces, without building geometry."""
    mode = params.mode
    if mode in (Mode.BOX, Mode.TRAY):
        return 2
    if mode == Mode.STAINING_RACK:
        return 3 if params.handle else 2
    if mode == Mode.CABINET_DRAWER:
        return 1 + min(MAX_DRAWERS_PER_SHELL, max(1, params.drawers_per_shell))
    raise ValueError(f"Unknown mode: {mode}")
