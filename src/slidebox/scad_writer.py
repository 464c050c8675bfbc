"""
OpenSCAD source emission for CSG trees and assembled parts.

Output is deterministic: the same tree always renders to the same text, so
generated .scad files can be diffed between runs.
"""

from typing import Iterable, List, Sequence

from slidebox.contracts import Part
from slidebox.csg import (
    Box,
    Cylinder,
    Difference,
    Extrusion,
    Named,
    Node,
    Polyhedron,
    Rotate,
    Translate,
    Union,
    bounds,
)

INDENT = "  "
PART_SPACING_MM = 10.0


def fmt(value: float) -> str:
    """Shortest fixed-point text for a coordinate, at most 6 decimals."""
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def _vec(values: Sequence[float]) -> str:
    return "[" + ", ".join(fmt(v) for v in values) + "]"


def render_node(node: Node, depth: int = 0) -> List[str]:
    """OpenSCAD statements for ``node``, one per line."""
    pad = INDENT * depth
    if isinstance(node, Box):
        return [f"{pad}cube({_vec(node.size)});"]
    if isinstance(node, Cylinder):
        return [
            f"{pad}cylinder(r={fmt(node.radius)}, h={fmt(node.height)}, $fn={node.segments});"
        ]
    if isinstance(node, Polyhedron):
        points = ", ".join(_vec(p) for p in node.points)
        faces = ", ".join("[" + ", ".join(str(i) for i in f) + "]" for f in node.faces)
        return [f"{pad}polyhedron(points=[{points}], faces=[{faces}]);"]
    if isinstance(node, Extrusion):
        outline = ", ".join(_vec(p) for p in node.outline)
        return [f"{pad}linear_extrude(height={fmt(node.height)}) polygon(points=[{outline}]);"]
    if isinstance(node, Translate):
        return [f"{pad}translate({_vec(node.offset)})"] + render_node(node.child, depth + 1)
    if isinstance(node, Rotate):
        return [f"{pad}rotate({_vec(node.angles)})"] + render_node(node.child, depth + 1)
    if isinstance(node, Named):
        return [f"{pad}// {node.name}"] + render_node(node.child, depth)
    if isinstance(node, Union):
        return _block(pad, "union()", node.children, depth)
    if isinstance(node, Difference):
        return _block(pad, "difference()", (node.base,) + node.cutters, depth)
    raise TypeError(f"Unsupported CSG node: {type(node).__name__}")


def _block(pad: str, head: str, children: Iterable[Node], depth: int) -> List[str]:
    lines = [f"{pad}{head} {{"]
    for child in children:
        lines.extend(render_node(child, depth + 1))
    lines.append(f"{pad}}}")
    return lines


def _header(title: str, fn: int) -> List[str]:
    lines = [f"// {title}", "// Generated by slidebox; units are millimetres."]
    if fn > 0:
        lines.append(f"$fn = {int(fn)};")
    lines.append("")
    return lines


def render_part(part: Part, fn: int = 0) -> str:
    """Standalone .scad source for a single part."""
    lines = _header(f"{part.label} ({part.part_id})", fn)
    lines.append(f'color("{part.default_color}")')
    lines.extend(render_node(part.geometry, 1))
    return "\n".join(lines) + "\n"


def render_parts(parts: Sequence[Part], fn: int = 0, spacing: float = PART_SPACING_MM) -> str:
    """All parts in one file, laid out side by side along +X."""
    if not parts:
        raise ValueError("render_parts() needs at least one part")
    lines = _header(", ".join(p.part_id for p in parts), fn)
    x = 0.0
    for part in parts:
        lo, hi = bounds(part.geometry)
        lines.append(f"// {part.part_id}")
        lines.append(f"translate([{fmt(x - lo[0])}, 0, 0])")
        lines.append(f'{INDENT}color("{part.default_color}")')
        lines.extend(render_node(part.geometry, 2))
        x += hi[0] - lo[0] + spacing
    return "\n".join(lines) + "\n"
