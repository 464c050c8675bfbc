"""Parametric 3D-printable storage for microscope slides."""

from slidebox.contracts import (
    ConstraintError,
    ConstraintReport,
    ConstraintViolation,
    DerivedGeometry,
    GenerationParams,
    GenerationResult,
    GeometryError,
    Mode,
    Part,
    ResolvedSlide,
    SlideboxError,
    SlideStandard,
)
from slidebox.pipeline import generate, generate_batch

__all__ = [
    "ConstraintError",
    "ConstraintReport",
    "ConstraintViolation",
    "DerivedGeometry",
    "GenerationParams",
    "GenerationResult",
    "GeometryError",
    "Mode",
    "Part",
    "ResolvedSlide",
    "SlideboxError",
    "SlideStandard",
    "generate",
    "generate_batch",
]
