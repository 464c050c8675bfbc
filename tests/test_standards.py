"""Tests for the slide standard and density tier tables."""
import pytest

from slidebox.standards import (
    CUSTOM_STANDARD_INDEX,
    DENSITY_TIERS,
    SLIDE_STANDARDS,
    density_tier,
    resolve_slide,
)


class TestResolveSlide:

    @pytest.mark.parametrize("index", [0, 1, 2, 3])
    def test_builtin_ignores_custom_values(self, index):
        slide = resolve_slide(index, 999.0, 1.0, 50.0)
        assert slide == SLIDE_STANDARDS[index]

    def test_custom_uses_given_values(self):
        slide = resolve_slide(CUSTOM_STANDARD_INDEX, 60.0, 20.0, 0.8)
        assert slide.as_tuple() == (60.0, 20.0, 0.8)
        assert slide.name == "custom"

    def test_iso_dimensions(self):
        assert resolve_slide(0, 0, 0, 0).as_tuple() == (76.0, 26.0, 1.0)

    def test_every_builtin_is_longer_than_wide(self):
        for slide in SLIDE_STANDARDS:
            assert slide.length_mm > slide.width_mm > slide.thickness_mm > 0


class TestDensityTier:

    def test_tiers_are_ordered_by_rib_width(self):
        widths = [tier.rib_width_mm for tier in DENSITY_TIERS]
        assert widths == sorted(widths)

    def test_working_tier_spacing(self):
        tier = density_tier(1)
        assert tier.rib_width_mm == pytest.approx(1.5)
        assert tier.nominal_pitch_mm == pytest.approx(3.5)

    @pytest.mark.parametrize("index", [-1, 4, 10])
    def test_unknown_index_raises(self, index):
        with pytest.raises(ValueError, match="density"):
            density_tier(index)
