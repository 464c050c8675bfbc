"""
Parametric solid primitives for slide-storage parts.

Every function returns a self-contained CSG value with its local origin at
the primitive's own reference corner (cylinders: base centre). Callers place
primitives with translate/rotate and combine them with union/difference.
Each result is wrapped in a Named node carrying the primitive's name so
assembled parts stay inspectable.
"""

import math
from typing import Sequence, Tuple

from shapely.geometry import Polygon

from slidebox.contracts import GeometryError
from slidebox.csg import (
    Extrusion,
    Node,
    Polyhedron,
    Cylinder,
    Vec2,
    box,
    difference,
    named,
    polygon_outline,
    rotate,
    translate,
    union,
)

# Overlap added to cutters so boolean faces never coincide.
OVERLAP_MM = 0.01

NOTCH_OVERSHOOT_MM = 0.5
MIN_NOTCH_SEGMENTS = 32
ANTI_CAPILLARY_RAIL_WIDTH_MM = 2.0
ANTI_CAPILLARY_RAIL_FRACTIONS = (0.25, 0.75)
LIP_MIN_TOP_WIDTH_MM = 1.0
STACK_CLEARANCE_MM = 0.2

# OpenSCAD cube face order: clockwise seen from outside.
_HEXAHEDRON_FACES = (
    (0, 1, 2, 3),
    (4, 5, 1, 0),
    (7, 6, 5, 4),
    (5, 6, 2, 1),
    (6, 7, 3, 2),
    (7, 4, 0, 3),
)


def _require_positive(**values: float) -> None:
    for name, value in values.items():
        if not value > 0:
            raise GeometryError(f"{name} must be > 0 (got {value})")


def _frustum(
    bottom: Tuple[float, float, float, float],
    top: Tuple[float, float, float, float],
    z0: float,
    z1: float,
) -> Polyhedron:
    """8-vertex convex solid between two axis-aligned rectangles (x0, y0, x1, y1)."""
    bx0, by0, bx1, by1 = bottom
    tx0, ty0, tx1, ty1 = top
    points = (
        (bx0, by0, z0), (bx1, by0, z0), (bx1, by1, z0), (bx0, by1, z0),
        (tx0, ty0, z1), (tx1, ty0, z1), (tx1, ty1, z1), (tx0, ty1, z1),
    )
    return Polyhedron(points=points, faces=_HEXAHEDRON_FACES)


def prism_yz(outline: Sequence[Vec2], length: float) -> Node:
    """Profile drawn in the (Y, Z) plane, extruded along +X."""
    return rotate(Extrusion(tuple(outline), float(length)), 90.0, 0.0, 90.0)


def prism_xz(outline: Sequence[Vec2], length: float) -> Node:
    """Profile drawn in the (X, Z) plane, extruded along +Y."""
    return translate(rotate(Extrusion(tuple(outline), float(length)), 90.0), y=length)


def open_shell(outer_x: float, outer_y: float, height: float, wall: float, floor: float) -> Node:
    """Open-top box: floor plus four walls."""
    _require_positive(outer_x=outer_x, outer_y=outer_y, height=height, wall=wall)
    inner_x = outer_x - 2 * wall
    inner_y = outer_y - 2 * wall
    if inner_x <= 0 or inner_y <= 0 or floor >= height:
        raise GeometryError("Shell walls/floor leave no cavity")
    cavity = translate(
        box(inner_x, inner_y, height - floor + OVERLAP_MM), wall, wall, floor
    )
    return difference(box(outer_x, outer_y, height), cavity)


# ─── Ribs & slots ────────────────────────────────────────────────────────────


def retention_rib(
    height: float,
    depth: float,
    root_w: float,
    tip_w: float,
    chamfer_h: float,
    tapered: bool,
) -> Node:
    """Slot divider; tapered ribs narrow to ``tip_w`` over the top ``chamfer_h``.

    X is rib width, Y rib depth, Z rib height.
    """
    _require_positive(height=height, depth=depth, root_w=root_w)
    if not tapered or chamfer_h <= 0:
        return named("retention_rib", box(root_w, depth, height))

    chamfer = min(chamfer_h, height)
    tip = min(max(tip_w, 0.0), root_w)
    body_h = height - chamfer
    inset = (root_w - tip) / 2.0
    wedge = _frustum((0.0, 0.0, root_w, depth), (inset, 0.0, inset + tip, depth), body_h, height)
    body = box(root_w, depth, body_h) if body_h > 0 else None
    return named("retention_rib", union(body, wedge))


def slot_array_length(count: int, pitch: float, root_w: float) -> float:
    return count * pitch + root_w


def slot_array(
    count: int,
    pitch: float,
    height: float,
    depth: float,
    root_w: float,
    tip_w: float,
    chamfer_h: float,
    tapered: bool,
) -> Node:
    """``count`` slots bounded by ``count + 1`` ribs spaced ``pitch`` along X."""
    if count < 0:
        raise GeometryError(f"count must be >= 0 (got {count})")
    if pitch <= root_w:
        raise GeometryError(f"pitch {pitch} leaves no slot between {root_w} mm ribs")

    rib = retention_rib(height, depth, root_w, tip_w, chamfer_h, tapered)
    ribs = [translate(rib, x=i * pitch) for i in range(count + 1)]
    return named("slot_array", union(*ribs))


def anti_capillary_ribs(pocket_length: float, pocket_width: float, rib_height: float) -> Node:
    """Two floor rails at 25 % and 75 % of the pocket width."""
    _require_positive(
        pocket_length=pocket_length, pocket_width=pocket_width, rib_height=rib_height
    )
    rails = []
    for fraction in ANTI_CAPILLARY_RAIL_FRACTIONS:
        y = fraction * pocket_width - ANTI_CAPILLARY_RAIL_WIDTH_MM / 2.0
        rail = box(pocket_length, ANTI_CAPILLARY_RAIL_WIDTH_MM, rib_height)
        rails.append(named("anti_capillary_rail", translate(rail, y=y)))
    return named("anti_capillary_ribs", union(*rails))


def finger_notch(radius: float, depth: float, segments: int = MIN_NOTCH_SEGMENTS) -> Node:
    """Cylindrical cutter reaching ``depth`` below a surface, plus overshoot above it."""
    _require_positive(radius=radius, depth=depth)
    cutter = Cylinder(
        radius=float(radius),
        height=float(depth) + NOTCH_OVERSHOOT_MM,
        segments=max(MIN_NOTCH_SEGMENTS, int(segments)),
    )
    return named("finger_notch", cutter)


# ─── Stacking ────────────────────────────────────────────────────────────────


def lip_chamfer(lip_w: float) -> float:
    return max(0.0, lip_w - LIP_MIN_TOP_WIDTH_MM)


def _ring_opening(outer_x: float, outer_y: float, ring_w: float, height: float) -> Node:
    if outer_x <= 2 * ring_w or outer_y <= 2 * ring_w:
        raise GeometryError("Ring width leaves no opening")
    hole = translate(
        box(outer_x - 2 * ring_w, outer_y - 2 * ring_w, height + 2 * OVERLAP_MM),
        ring_w, ring_w, -OVERLAP_MM,
    )
    return hole


def stacking_lip(outer_x: float, outer_y: float, lip_h: float, lip_w: float) -> Node:
    """Perimeter wall whose outer top edge is chamfered at 45 degrees."""
    _require_positive(outer_x=outer_x, outer_y=outer_y, lip_h=lip_h, lip_w=lip_w)
    chamfer = min(lip_chamfer(lip_w), lip_h)
    body_h = lip_h - chamfer
    body = box(outer_x, outer_y, body_h) if body_h > 0 else None
    cap = None
    if chamfer > 0:
        cap = _frustum(
            (0.0, 0.0, outer_x, outer_y),
            (chamfer, chamfer, outer_x - chamfer, outer_y - chamfer),
            body_h,
            lip_h,
        )
    outer = union(body, cap)
    return named("stacking_lip", difference(outer, _ring_opening(outer_x, outer_y, lip_w, lip_h)))


def stacking_groove(
    outer_x: float,
    outer_y: float,
    lip_h: float,
    lip_w: float,
    clearance: float = STACK_CLEARANCE_MM,
) -> Node:
    """Cutter channel that receives a stacking lip of the same nominal size.

    The channel is ``clearance`` wider and taller than the lip; place it at
    ``-clearance / 2`` in X and Y relative to the lip footprint.
    """
    _require_positive(outer_x=outer_x, outer_y=outer_y, lip_h=lip_h, lip_w=lip_w)
    gx = outer_x + clearance
    gy = outer_y + clearance
    gw = lip_w + clearance
    gh = lip_h + clearance
    ring = difference(box(gx, gy, gh), _ring_opening(gx, gy, gw, gh))
    return named("stacking_groove", ring)


# ─── Labels & latches ────────────────────────────────────────────────────────


def label_recess(width: float, height: float, depth: float) -> Node:
    """Cutter for a shallow label pocket.

    The pocket floor lies at z=0 and opens at z=depth. Along the y=height
    edge a 45-degree relief widens the opening so the recess needs no
    support when the face is printed vertically.
    """
    _require_positive(width=width, height=height, depth=depth)
    d = depth + OVERLAP_MM
    pocket = box(width, height, d)
    relief = prism_yz(((height, 0.0), (height + d, d), (height, d)), width)
    return named("label_recess", union(pocket, relief))


def snap_latch_arm(
    length: float,
    width: float,
    thickness: float,
    hook_depth: float,
    hook_height: float,
) -> Node:
    """Vertical cantilever (rooted at z=0) with a hook block protruding along +Y at its tip."""
    _require_positive(
        length=length, width=width, thickness=thickness,
        hook_depth=hook_depth, hook_height=hook_height,
    )
    if hook_height >= length:
        raise GeometryError("Hook is taller than the latch arm")
    beam = box(width, thickness, length)
    hook = translate(box(width, hook_depth, hook_height), y=thickness, z=length - hook_height)
    return named("snap_latch_arm", union(beam, hook))


def snap_latch_catch(width: float, depth: float, height: float) -> Node:
    """Catch block protruding ``depth`` along +Y, carried on a 45-degree wedge."""
    _require_positive(width=width, depth=depth, height=height)
    wedge = prism_yz(((0.0, 0.0), (depth, depth), (0.0, depth)), width)
    block = translate(box(width, depth, height), z=depth)
    return named("snap_latch_catch", union(wedge, block))


def _dovetail(base_w: float, top_w: float, height: float, depth: float) -> Extrusion:
    _require_positive(base_w=base_w, top_w=top_w, height=height, depth=depth)
    span = max(base_w, top_w)
    profile = Polygon([
        ((span - base_w) / 2.0, 0.0),
        ((span + base_w) / 2.0, 0.0),
        ((span + top_w) / 2.0, height),
        ((span - top_w) / 2.0, height),
    ])
    return Extrusion(polygon_outline(profile), float(depth))


def stack_tab_male(base_w: float, top_w: float, height: float, depth: float) -> Node:
    """Trapezoidal tab: ``base_w`` at y=0 widening to ``top_w`` at y=height, extruded along Z."""
    return named("stack_tab_male", _dovetail(base_w, top_w, height, depth))


def stack_tab_female(
    base_w: float, top_w: float, height: float, depth: float, tol: float
) -> Node:
    """Recess cutter for the matching male tab, grown by ``tol`` in width, height and depth.

    Centre it on the male tab by offsetting ``-tol / 2`` in X.
    """
    if tol < 0:
        raise GeometryError(f"tol must be >= 0 (got {tol})")
    return named(
        "stack_tab_female",
        _dovetail(base_w + tol, top_w + tol, height + tol, depth + tol),
    )


# ─── Drainage ────────────────────────────────────────────────────────────────


def drainage_drop(length: float, angle: float) -> float:
    """Fall of a floor sloped at ``angle`` degrees over ``length``."""
    if not 0 <= angle < 90:
        raise GeometryError(f"Drainage angle must be in [0, 90) degrees (got {angle})")
    return length * math.tan(math.radians(angle))


def drainage_slope(length: float, width: float, height: float, angle: float) -> Node:
    """Slab ``height`` tall at x=0 whose top falls by ``length * tan(angle)`` at x=length."""
    _require_positive(length=length, width=width, height=height)
    drop = drainage_drop(length, angle)
    if drop >= height:
        raise GeometryError(
            f"Drop {drop:.2f} mm over {length:.1f} mm consumes the {height:.2f} mm slab"
        )
    profile = Polygon([(0.0, 0.0), (length, 0.0), (length, height - drop), (0.0, height)])
    return named("drainage_slope", prism_xz(polygon_outline(profile), width))
