"""
Constructive solid geometry values.

Solids are immutable expression trees: leaf solids (box, cylinder, convex
polyhedron, linear extrusion) combined by translation, rotation, union and
difference. Trees are cheap to build and compare, render to OpenSCAD source
(see scad_writer), and can be evaluated to a trimesh mesh on demand.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import trimesh
from shapely.geometry import Polygon

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
Bounds = Tuple[Vec3, Vec3]

BOOLEAN_ENGINE = "manifold"


class Node:
    """Base class for every CSG value."""

    __slots__ = ()


@dataclass(frozen=True)
class Box(Node):
    """Axis-aligned box with one corner at the origin."""

    size: Vec3


@dataclass(frozen=True)
class Cylinder(Node):
    """Z-axis cylinder, base centred on the origin."""

    radius: float
    height: float
    segments: int = 32


@dataclass(frozen=True)
class Polyhedron(Node):
    """Closed polyhedron; faces wind clockwise seen from outside."""

    points: Tuple[Vec3, ...]
    faces: Tuple[Tuple[int, ...], ...]


@dataclass(frozen=True)
class Extrusion(Node):
    """Simple polygon in XY extruded along +Z."""

    outline: Tuple[Vec2, ...]
    height: float


@dataclass(frozen=True)
class Translate(Node):
    offset: Vec3
    child: Node


@dataclass(frozen=True)
class Rotate(Node):
    """Rotation in degrees about X, then Y, then Z."""

    angles: Vec3
    child: Node


@dataclass(frozen=True)
class Union(Node):
    children: Tuple[Node, ...]


@dataclass(frozen=True)
class Difference(Node):
    base: Node
    cutters: Tuple[Node, ...]


@dataclass(frozen=True)
class Named(Node):
    """Transparent label so assembled trees stay inspectable."""

    name: str
    child: Node


# ─── Constructors ────────────────────────────────────────────────────────────


def box(x: float, y: float, z: float) -> Box:
    return Box((float(x), float(y), float(z)))


def translate(node: Node, x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Node:
    if x == 0.0 and y == 0.0 and z == 0.0:
        return node
    return Translate((float(x), float(y), float(z)), node)


def rotate(node: Node, rx: float = 0.0, ry: float = 0.0, rz: float = 0.0) -> Node:
    if rx == 0.0 and ry == 0.0 and rz == 0.0:
        return node
    return Rotate((float(rx), float(ry), float(rz)), node)


def union(*nodes: Optional[Node]) -> Node:
    """Union of the given solids; ``None`` entries are skipped."""
    children = tuple(n for n in nodes if n is not None)
    if not children:
        raise ValueError("union() needs at least one solid")
    if len(children) == 1:
        return children[0]
    return Union(children)


def difference(base: Node, *cutters: Optional[Node]) -> Node:
    kept = tuple(c for c in cutters if c is not None)
    if not kept:
        return base
    return Difference(base, kept)


def named(name: str, node: Node) -> Named:
    return Named(name, node)


def polygon_outline(polygon: Polygon) -> Tuple[Vec2, ...]:
    """Exterior ring of a shapely polygon as an open, counter-clockwise tuple."""
    ring = polygon.exterior
    if not ring.is_ccw:
        ring = ring.reverse()
    coords = list(ring.coords)[:-1]
    return tuple((float(x), float(y)) for x, y in coords)


# ─── Inspection ──────────────────────────────────────────────────────────────


def children_of(node: Node) -> Tuple[Node, ...]:
    if isinstance(node, (Translate, Rotate, Named)):
        return (node.child,)
    if isinstance(node, Union):
        return node.children
    if isinstance(node, Difference):
        return (node.base,) + node.cutters
    return ()


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children_of(current)))


def find(node: Node, name: str) -> List[Named]:
    """All labelled sub-solids with the given name, in tree order."""
    return [n for n in walk(node) if isinstance(n, Named) and n.name == name]


def fingerprint(node: Node) -> str:
    """Stable SHA-256 of the canonical tree text."""
    return hashlib.sha256(repr(node).encode("utf-8")).hexdigest()


# ─── Bounds ──────────────────────────────────────────────────────────────────


def bounds(node: Node) -> Bounds:
    """Axis-aligned bounds; a difference is bounded by its base."""
    lo, hi = _bounds(node)
    return (_vec(lo), _vec(hi))


def extents(node: Node) -> Vec3:
    lo, hi = bounds(node)
    return (hi[0] - lo[0], hi[1] - lo[1], hi[2] - lo[2])


def _vec(values: np.ndarray) -> Vec3:
    rounded = np.round(values, 9) + 0.0
    return (float(rounded[0]), float(rounded[1]), float(rounded[2]))


def _bounds(node: Node) -> Tuple[np.ndarray, np.ndarray]:
    if isinstance(node, Box):
        return np.zeros(3), np.array(node.size, dtype=float)
    if isinstance(node, Cylinder):
        r = node.radius
        return np.array([-r, -r, 0.0]), np.array([r, r, node.height])
    if isinstance(node, Polyhedron):
        pts = np.array(node.points, dtype=float)
        return pts.min(axis=0), pts.max(axis=0)
    if isinstance(node, Extrusion):
        pts = np.array(node.outline, dtype=float)
        lo = np.append(pts.min(axis=0), 0.0)
        hi = np.append(pts.max(axis=0), node.height)
        return lo, hi
    if isinstance(node, Translate):
        lo, hi = _bounds(node.child)
        offset = np.array(node.offset, dtype=float)
        return lo + offset, hi + offset
    if isinstance(node, Rotate):
        lo, hi = _bounds(node.child)
        corners = np.array(
            [[x, y, z] for x in (lo[0], hi[0]) for y in (lo[1], hi[1]) for z in (lo[2], hi[2])]
        )
        matrix = rotation_matrix(node.angles)[:3, :3]
        moved = np.round(corners @ matrix.T, 9)
        return moved.min(axis=0), moved.max(axis=0)
    if isinstance(node, Union):
        parts = [_bounds(c) for c in node.children]
        lo = np.min([p[0] for p in parts], axis=0)
        hi = np.max([p[1] for p in parts], axis=0)
        return lo, hi
    if isinstance(node, Difference):
        return _bounds(node.base)
    if isinstance(node, Named):
        return _bounds(node.child)
    raise TypeError(f"Unsupported CSG node: {type(node).__name__}")


def rotation_matrix(angles_deg: Sequence[float]) -> np.ndarray:
    rx, ry, rz = (np.radians(a) for a in angles_deg)
    return trimesh.transformations.euler_matrix(rx, ry, rz, "sxyz")


# ─── Mesh evaluation ─────────────────────────────────────────────────────────


def to_mesh(node: Node, engine: str = BOOLEAN_ENGINE) -> trimesh.Trimesh:
    """Evaluate a CSG tree to a single mesh."""
    if isinstance(node, Box):
        mesh = trimesh.creation.box(extents=node.size)
        mesh.apply_translation(np.array(node.size, dtype=float) / 2.0)
        return mesh
    if isinstance(node, Cylinder):
        mesh = trimesh.creation.cylinder(
            radius=node.radius, height=node.height, sections=node.segments
        )
        mesh.apply_translation((0.0, 0.0, node.height / 2.0))
        return mesh
    if isinstance(node, Polyhedron):
        return polyhedron_mesh(node)
    if isinstance(node, Extrusion):
        return trimesh.creation.extrude_polygon(Polygon(node.outline), node.height)
    if isinstance(node, Translate):
        mesh = to_mesh(node.child, engine)
        mesh.apply_translation(node.offset)
        return mesh
    if isinstance(node, Rotate):
        mesh = to_mesh(node.child, engine)
        mesh.apply_transform(rotation_matrix(node.angles))
        return mesh
    if isinstance(node, Named):
        return to_mesh(node.child, engine)
    if isinstance(node, Union):
        meshes = [to_mesh(c, engine) for c in node.children]
        return trimesh.boolean.union(meshes, engine=engine)
    if isinstance(node, Difference):
        meshes = [to_mesh(node.base, engine)] + [to_mesh(c, engine) for c in node.cutters]
        return trimesh.boolean.difference(meshes, engine=engine)
    raise TypeError(f"Unsupported CSG node: {type(node).__name__}")


def polyhedron_mesh(node: Polyhedron) -> trimesh.Trimesh:
    """Fan-triangulate polyhedron faces into an outward-facing mesh."""
    triangles = []
    for face in node.faces:
        ccw = list(reversed(face))
        for i in range(1, len(ccw) - 1):
            triangles.append((ccw[0], ccw[i], ccw[i + 1]))
    return trimesh.Trimesh(
        vertices=np.array(node.points, dtype=float),
        faces=np.array(triangles, dtype=np.int64),
        process=True,
    )
