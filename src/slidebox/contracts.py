"""Contracts for the slide-storage generation pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from slidebox.csg import Node

Vec3 = Tuple[float, float, float]


class Mode(Enum):
    """Product family produced by one generation request."""

    BOX = "box"
    TRAY = "tray"
    STAINING_RACK = "staining_rack"
    CABINET_DRAWER = "cabinet_drawer"

    @classmethod
    def parse(cls, value: "Mode | str") -> "Mode":
        if isinstance(value, Mode):
            return value
        raw = str(value).strip().lower().replace("-", "_")
        for mode in cls:
            if raw in (mode.value, mode.name.lower()):
                return mode
        raise ValueError(f"Unknown mode: {value!r}")


class SlideboxError(Exception):
    """Base exception for slidebox errors."""
    pass


class GeometryError(SlideboxError, ValueError):
    """A primitive was asked for geometry that is not well defined."""
    pass


class ConstraintError(SlideboxError):
    """Parameter set violates at least one error-severity rule."""

    def __init__(self, report: "ConstraintReport"):
        self.report = report
        summary = "; ".join(f"{v.rule_id}: {v.message}" for v in report.errors)
        super().__init__(f"Generation blocked by {len(report.errors)} error(s): {summary}")

    def __reduce__(self):
        return (self.__class__, (self.report,))


@dataclass(frozen=True)
class GenerationParams:
    """Flat parameter set for one generation request."""

    mode: Mode = Mode.BOX
    slide_standard: int = 0
    custom_slide_length: float = 76.0
    custom_slide_width: float = 26.0
    custom_slide_thickness: float = 1.0
    num_slots: int = 25
    tolerance_xy: float = 0.5
    tolerance_z: float = 0.9
    wall_thickness: float = 2.0
    label_area: bool = True
    rib_profile: int = 0  # 0 tapered, 1 rectangular
    rib_width: float = 0.0  # 0 = from density tier
    density: int = 1
    lid_latch: int = 0  # 0 snap-fit, 1 magnetic, 2 none
    stackable: bool = True
    numbering_start: int = 1
    tray_columns: int = 2
    tray_rows: int = 5
    finger_notch: bool = True
    anti_capillary: bool = False
    handle: bool = True
    drainage_angle: float = 5.0  # degrees
    open_bottom: bool = False
    rail_profile: int = 0  # 0 T-slot, 1 L-rail
    backstop: bool = True
    drawers_per_shell: int = 3
    fn: int = 0

    def __post_init__(self):
        object.__setattr__(self, "mode", Mode.parse(self.mode))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "GenerationParams":
        """Build params from a flat mapping, coercing values to field types."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(mapping) - set(known))
        if unknown:
            raise ValueError(f"Unknown parameter(s): {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for name, raw in mapping.items():
            default = getattr(cls, name)
            if name == "mode":
                values[name] = Mode.parse(raw)
            elif isinstance(default, bool):
                values[name] = _to_bool(raw)
            elif isinstance(default, int):
                values[name] = int(float(raw))
            else:
                values[name] = float(raw)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["mode"] = self.mode.value
        return payload


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"Not a boolean: {value!r}")
    return bool(value)


@dataclass(frozen=True)
class SlideStandard:
    """Physical slide size; also the shape of a resolved slide."""

    length_mm: float
    width_mm: float
    thickness_mm: float
    name: str = "custom"

    def as_tuple(self) -> Vec3:
        return (self.length_mm, self.width_mm, self.thickness_mm)


ResolvedSlide = SlideStandard


@dataclass(frozen=True)
class DerivedGeometry:
    """Slot and rib dimensions derived from the resolved slide."""

    slot_width: float
    pitch: float
    rib_width: float
    rib_root_width: float
    rib_tip_width: float
    chamfer_height: float
    tapered: bool = True


@dataclass(frozen=True)
class ConstraintViolation:
    """A single violated constraint rule."""

    rule_id: str
    severity: str  # "error" or "warning"
    message: str
    value: Optional[float] = None
    limit: Optional[float] = None


@dataclass(frozen=True)
class ConstraintReport:
    """Ordered violations from one validation pass."""

    violations: Tuple[ConstraintViolation, ...] = ()

    @property
    def errors(self) -> List[ConstraintViolation]:
        return [v for v in self.violations if v.severity == "error"]

    @property
    def warnings(self) -> List[ConstraintViolation]:
        return [v for v in self.violations if v.severity == "warning"]

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, object]:
        return {
            "ok": self.ok,
            "violations": [asdict(v) for v in self.violations],
        }


@dataclass(frozen=True)
class Part:
    """One printable solid of an assembly."""

    part_id: str
    label: str
    default_color: str
    geometry: Node
    metadata: Dict[str, object] = field(default_factory=dict, compare=False)


@dataclass
class GenerationResult:
    """In-memory result of a successful generation request."""

    params: GenerationParams
    slide: ResolvedSlide
    derived: DerivedGeometry
    report: ConstraintReport
    parts: List[Part]
    fingerprints: Dict[str, str] = field(default_factory=dict)

    @property
    def part_ids(self) -> List[str]:
        return [p.part_id for p in self.parts]

    def part(self, part_id: str) -> Part:
        for p in self.parts:
            if p.part_id == part_id:
                return p
        raise KeyError(part_id)
