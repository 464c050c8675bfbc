"""
Shared test fixtures for slide-storage generation tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from slidebox.contracts import GenerationParams, Mode
from slidebox.dimensions import derive_geometry
from slidebox.standards import SLIDE_STANDARDS


@pytest.fixture
def default_params():
    """Default request: 25-place ISO box, working density, snap lid."""
    return GenerationParams()


@pytest.fixture
def iso_slide():
    return SLIDE_STANDARDS[0]


@pytest.fixture
def iso_derived(iso_slide, default_params):
    """Slot/rib dims for an ISO slide at default tolerances (pitch 3.5 mm)."""
    return derive_geometry(iso_slide, default_params)


@pytest.fixture
def box_result(default_params):
    """The standard 25-place box, fully generated."""
    from slidebox.pipeline import generate

    return generate(default_params)


@pytest.fixture
def params_for():
    """Factory: default params for a mode with field overrides."""
    def _make(mode=Mode.BOX, **overrides):
        return GenerationParams(mode=mode, **overrides)
    return _make


@pytest.fixture
def run_dir(tmp_path):
    """Temporary runs root for CLI tests."""
    runs = tmp_path / "runs"
    runs.mkdir()
    return runs
