"""Tests for the per-mode assemblers."""
import pytest

from slidebox.assembly import (
    LID_SKIRT_MM,
    MAX_DRAWERS_PER_SHELL,
    STACK_LIP_HEIGHT_MM,
    assemble,
    box_layout,
    cabinet_layout,
    part_count,
    rack_layout,
    stacking_fits,
    tray_layout,
)
from slidebox.contracts import GenerationParams, GeometryError, Mode
from slidebox.csg import bounds, find, to_mesh
from slidebox.dimensions import derive_geometry
from slidebox.pipeline import resolve


def _assemble(params):
    slide = resolve(params)
    return assemble(params.mode, slide, derive_geometry(slide, params), params)


def _by_id(parts):
    return {p.part_id: p for p in parts}


class TestStandardBox:
    """The 25-place ISO box: snap lid, stackable."""

    def test_parts(self, default_params):
        parts = _assemble(default_params)
        assert [p.part_id for p in parts] == ["box_base", "box_lid"]

    def test_base_holds_26_ribs_at_pitch(self, default_params):
        base = _by_id(_assemble(default_params))["box_base"]
        arrays = find(base.geometry, "slot_array")
        assert len(arrays) == 1
        ribs = arrays[0].child.children
        assert len(ribs) == 26
        expected_pitch = (1.0 + default_params.tolerance_z + 0.1) + 1.5
        starts = [bounds(r)[0][0] for r in ribs]
        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert gaps == pytest.approx([expected_pitch] * 25)

    def test_lid_has_lip_and_snap_catches(self, default_params):
        parts = _by_id(_assemble(default_params))
        lid = parts["box_lid"].geometry
        assert len(find(lid, "stacking_lip")) == 1
        assert len(find(lid, "snap_latch_catch")) == 2
        assert find(lid, "magnet_pocket") == []
        assert len(find(parts["box_base"].geometry, "snap_latch_arm")) == 2

    def test_base_has_groove_and_label(self, default_params):
        base = _by_id(_assemble(default_params))["box_base"].geometry
        assert len(find(base, "stacking_groove")) == 1
        assert len(find(base, "label_recess")) == 1

    def test_slot_numbers(self, default_params):
        base = _by_id(_assemble(default_params))["box_base"]
        assert base.metadata["slot_numbers"] == list(range(1, 26))

    def test_layout_dimensions(self, default_params, iso_slide, iso_derived):
        layout = box_layout(iso_slide, iso_derived, default_params)
        assert layout.inner_x == pytest.approx(25 * 3.5 + 1.5)
        assert layout.inner_y == pytest.approx(77.0)
        assert layout.outer_x == pytest.approx(93.0)
        assert layout.floor == pytest.approx(2.0 + STACK_LIP_HEIGHT_MM + 0.2)
        assert layout.base_h == pytest.approx(4.2 + 26.5)
        assert layout.rib_h == pytest.approx(13.0)
        assert layout.lid_h == pytest.approx(LID_SKIRT_MM + 2.0)

    def test_idempotent(self, default_params):
        first = _assemble(default_params)
        second = _assemble(default_params)
        assert first == second


class TestBoxVariants:

    def test_no_latch_base_bounds(self, params_for):
        params = params_for(lid_latch=2, label_area=False)
        base = _by_id(_assemble(params))["box_base"].geometry
        lo, hi = bounds(base)
        assert lo == pytest.approx((0.0, 0.0, 0.0))
        assert hi == pytest.approx((93.0, 81.0, 30.7))

    def test_snap_arms_stand_outside_end_walls(self, default_params):
        base = _by_id(_assemble(default_params))["box_base"].geometry
        lo, hi = bounds(base)
        assert lo[0] < 0.0
        assert hi[0] > 93.0
        assert hi[2] > 30.7

    def test_magnetic_latch(self, params_for):
        parts = _by_id(_assemble(params_for(lid_latch=1)))
        for part_id in ("box_base", "box_lid"):
            geometry = parts[part_id].geometry
            assert len(find(geometry, "magnet_pocket")) == 4
            assert len(find(geometry, "magnet_boss")) == 4
            assert find(geometry, "snap_latch_catch") == []

    def test_not_stackable(self, params_for):
        parts = _by_id(_assemble(params_for(stackable=False)))
        assert find(parts["box_lid"].geometry, "stacking_lip") == []
        assert find(parts["box_base"].geometry, "stacking_groove") == []

    def test_anti_capillary_rails(self, params_for):
        base = _by_id(_assemble(params_for(anti_capillary=True)))["box_base"].geometry
        assert len(find(base, "anti_capillary_rail")) == 2

    def test_unknown_latch(self, params_for):
        with pytest.raises(ValueError, match="lid latch"):
            _assemble(params_for(lid_latch=9))

    def test_narrow_box_drops_stacking(self, params_for):
        params = params_for(rib_width=0.3, tolerance_z=0.5, num_slots=1)
        slide = resolve(params)
        layout = box_layout(slide, derive_geometry(slide, params), params)
        assert layout.outer_x == pytest.approx(6.2)
        assert not layout.stackable
        assert layout.floor == pytest.approx(params.wall_thickness)
        parts = _by_id(_assemble(params))
        assert find(parts["box_base"].geometry, "stacking_groove") == []
        assert find(parts["box_lid"].geometry, "stacking_lip") == []

    def test_stacking_fit_threshold(self):
        # Groove ring 2.2 mm each side, 1.8 mm of inset, 2 mm opening.
        assert not stacking_fits(8.0, 81.0, 2.0)
        assert stacking_fits(8.5, 81.0, 2.0)
        assert not stacking_fits(81.0, 8.0, 2.0)


class TestTray:

    def test_parts_and_pockets(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.TRAY)))
        assert list(parts) == ["tray", "tray_lid"]
        tray = parts["tray"]
        assert len(find(tray.geometry, "pocket")) == 10
        assert len(find(tray.geometry, "finger_notch")) == 10
        assert tray.metadata["slot_numbers"] == list(range(1, 11))

    def test_layout(self, params_for, iso_slide):
        layout = tray_layout(iso_slide, params_for(Mode.TRAY))
        assert layout.pocket_x == pytest.approx(77.0)
        assert layout.pocket_y == pytest.approx(27.0)
        assert layout.pocket_depth == pytest.approx(1.0 + 0.9 + 1.0)
        assert layout.outer_x == pytest.approx(2 * 77.0 + 3 * 2.0)
        assert layout.outer_y == pytest.approx(5 * 27.0 + 6 * 2.0)

    def test_no_finger_notch(self, params_for):
        tray = _by_id(_assemble(params_for(Mode.TRAY, finger_notch=False)))["tray"]
        assert find(tray.geometry, "finger_notch") == []

    def test_numbering_start(self, params_for):
        params = params_for(Mode.TRAY, tray_rows=2, tray_columns=3, numbering_start=101)
        tray = _by_id(_assemble(params))["tray"]
        assert tray.metadata["slot_numbers"] == list(range(101, 107))


class TestStainingRack:

    def test_parts_with_handle(self, params_for):
        parts = _assemble(params_for(Mode.STAINING_RACK))
        assert [p.part_id for p in parts] == ["rack_body", "rack_handle", "rack_drip_tray"]

    def test_parts_without_handle(self, params_for):
        parts = _assemble(params_for(Mode.STAINING_RACK, handle=False))
        assert [p.part_id for p in parts] == ["rack_body", "rack_drip_tray"]
        assert find(parts[0].geometry, "stack_tab_female") == []

    def test_handle_dovetails(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.STAINING_RACK)))
        assert len(find(parts["rack_body"].geometry, "stack_tab_female")) == 2
        assert len(find(parts["rack_handle"].geometry, "stack_tab_male")) == 2

    def test_sloped_floor(self, params_for, iso_slide, iso_derived):
        params = params_for(Mode.STAINING_RACK)
        body = _by_id(_assemble(params))["rack_body"]
        assert len(find(body.geometry, "drainage_slope")) == 1
        layout = rack_layout(iso_slide, iso_derived, params)
        assert layout.drop == pytest.approx(body.metadata["drainage_drop_mm"])
        assert layout.drop > 0
        lo, hi = bounds(body.geometry)
        assert lo == pytest.approx((0.0, 0.0, 0.0))
        assert hi[0] == pytest.approx(layout.outer_x)
        assert hi[1] == pytest.approx(77.0)

    def test_open_bottom_lattice(self, params_for):
        body = _by_id(_assemble(params_for(Mode.STAINING_RACK, open_bottom=True)))["rack_body"]
        assert find(body.geometry, "drainage_slope") == []
        assert len(find(body.geometry, "crossbar")) == 6

    def test_drip_tray_surrounds_rack(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.STAINING_RACK)))
        body_hi = bounds(parts["rack_body"].geometry)[1]
        tray_hi = bounds(parts["rack_drip_tray"].geometry)[1]
        assert tray_hi[0] > body_hi[0]
        assert tray_hi[1] > body_hi[1]

    def test_vertical_drainage_angle_rejected(self, params_for):
        with pytest.raises(GeometryError):
            _assemble(params_for(Mode.STAINING_RACK, drainage_angle=90.0))

    def test_negative_drainage_angle_rejected(self, params_for):
        with pytest.raises(GeometryError, match="Drainage angle"):
            _assemble(params_for(Mode.STAINING_RACK, drainage_angle=-5.0))

    def test_handle_recesses_stay_in_end_walls(self, params_for, iso_slide, iso_derived):
        params = params_for(Mode.STAINING_RACK)
        layout = rack_layout(iso_slide, iso_derived, params)
        body = _by_id(_assemble(params))["rack_body"]
        left, right = find(body.geometry, "handle_recess")
        assert bounds(left)[1][0] <= layout.wall + 1e-9
        assert bounds(right)[0][0] >= layout.outer_x - layout.wall - 1e-9
        # Both stay open on the outer face for the tab to slide in.
        assert bounds(left)[0][0] < 0.0
        assert bounds(right)[1][0] > layout.outer_x


class TestCabinet:

    def test_parts(self, params_for):
        parts = _assemble(params_for(Mode.CABINET_DRAWER))
        assert [p.part_id for p in parts] == ["cabinet_shell", "drawer_1", "drawer_2", "drawer_3"]

    def test_drawers_continue_numbering(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER, num_slots=10)))
        assert parts["drawer_1"].metadata["slot_numbers"] == list(range(1, 11))
        assert parts["drawer_2"].metadata["slot_numbers"] == list(range(11, 21))

    def test_drawer_count_clamped(self, params_for):
        parts = _assemble(params_for(Mode.CABINET_DRAWER, drawers_per_shell=9))
        assert len(parts) == 1 + MAX_DRAWERS_PER_SHELL
        parts = _assemble(params_for(Mode.CABINET_DRAWER, drawers_per_shell=0))
        assert len(parts) == 2

    def test_backstop_features(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER)))
        assert len(find(parts["drawer_1"].geometry, "backstop")) == 1
        assert len(find(parts["cabinet_shell"].geometry, "backstop_lip")) == 3
        assert len(find(parts["cabinet_shell"].geometry, "drawer_bay")) == 3

    def test_no_backstop(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER, backstop=False)))
        assert find(parts["drawer_1"].geometry, "backstop") == []
        assert find(parts["cabinet_shell"].geometry, "backstop_lip") == []

    def test_backstop_beam_flexes_past_lip(self, params_for, iso_slide, iso_derived):
        params = params_for(Mode.CABINET_DRAWER)
        layout = cabinet_layout(iso_slide, iso_derived, params)
        parts = _by_id(_assemble(params))
        drawer = parts["drawer_1"].geometry
        tab_lo, tab_hi = bounds(find(drawer, "backstop")[0])
        lip_lo, _ = bounds(find(parts["cabinet_shell"].geometry, "backstop_lip")[0])

        # The tab catches the lip when the drawer is pulled out...
        interference = tab_hi[2] - (lip_lo[2] - layout.bay_z(0))
        assert interference > 0
        # ...and the relief slot under its beam gives room to push it clear going in.
        relief_lo, relief_hi = bounds(find(drawer, "backstop_relief")[0])
        assert relief_hi[2] - relief_lo[2] >= interference
        assert relief_hi[2] <= tab_lo[2]
        assert relief_lo[0] <= tab_lo[0] and relief_hi[0] >= tab_hi[0]
        release_lo, _ = bounds(find(drawer, "backstop_release")[0])
        assert release_lo[0] >= tab_hi[0]

    def test_backstop_ramp_leads_into_the_shell(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER)))
        tab = find(parts["drawer_1"].geometry, "backstop")[0]
        (_, y_front, _), (_, y_rear, z_top) = bounds(tab)
        mesh = to_mesh(tab)
        top_ys = {round(float(v[1]), 6) for v in mesh.vertices if abs(v[2] - z_top) < 1e-6}
        assert top_ys == {round(y_front, 6)}
        assert y_rear > y_front

    def test_small_drawer_has_no_backstop(self, params_for):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER, num_slots=2)))
        assert find(parts["drawer_1"].geometry, "backstop") == []
        assert find(parts["cabinet_shell"].geometry, "backstop_lip") == []
        assert parts["cabinet_shell"].metadata["backstop"] is False

    @pytest.mark.parametrize("rail_profile", [0, 1])
    def test_runners_fit_inside_shell(self, params_for, rail_profile):
        parts = _by_id(_assemble(params_for(Mode.CABINET_DRAWER, rail_profile=rail_profile)))
        drawer_lo, drawer_hi = bounds(parts["drawer_1"].geometry)
        shell_lo, shell_hi = bounds(parts["cabinet_shell"].geometry)
        assert len(find(parts["drawer_1"].geometry, "rail_runners")) == 1
        assert drawer_hi[0] - drawer_lo[0] < shell_hi[0] - shell_lo[0]

    def test_unknown_rail_profile(self, params_for):
        with pytest.raises(ValueError, match="rail profile"):
            _assemble(params_for(Mode.CABINET_DRAWER, rail_profile=3))


class TestDispatch:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"mode": Mode.BOX},
            {"mode": Mode.TRAY},
            {"mode": Mode.STAINING_RACK},
            {"mode": Mode.STAINING_RACK, "handle": False},
            {"mode": Mode.CABINET_DRAWER},
            {"mode": Mode.CABINET_DRAWER, "drawers_per_shell": 5},
        ],
    )
    def test_part_count_matches_assembly(self, overrides):
        params = GenerationParams(**overrides)
        parts = _assemble(params)
        assert part_count(params) == len(parts)
        assert 2 <= len(parts) <= 6
        assert len({p.part_id for p in parts}) == len(parts)

    def test_mode_accepts_string(self, default_params, iso_slide, iso_derived):
        parts = assemble("box", iso_slide, iso_derived, default_params)
        assert [p.part_id for p in parts] == ["box_base", "box_lid"]
