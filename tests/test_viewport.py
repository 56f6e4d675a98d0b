import math

import pytest

from relmap.geometry import screen_to_world
from relmap.models import Node
from relmap.viewport import ViewportController, ZOOM_INTENSITY


def world_under(vc, cursor):
    v = vc.view
    return screen_to_world(cursor[0], cursor[1], v.scale, v.tx, v.ty)


class TestWheelZoom:

    @pytest.mark.parametrize("scale, tx, ty", [
        (1.2, 30, -20),
        (1.0, 0, 0),
        (0.4, -350, 210),
        (2.5, 900, -640),
        (0.73, 12.5, 0.25),
    ])
    @pytest.mark.parametrize("cursor", [(200, 150), (0, 0), (-40, 1200), (799.5, 0.5)])
    @pytest.mark.parametrize("delta", [-120, 120, -100000, 100000])
    def test_zoom_keeps_world_point_under_cursor(self, scale, tx, ty, cursor, delta):
        vc = ViewportController(0.4, 2.5)
        vc.set_view(scale=scale, tx=tx, ty=ty)
        before = world_under(vc, cursor)

        vc.on_wheel(cursor, delta)

        assert 0.4 <= vc.view.scale <= 2.5
        assert world_under(vc, cursor) == pytest.approx(before)

    def test_scale_follows_exponential_step(self):
        vc = ViewportController(0.4, 2.5)
        vc.on_wheel((0, 0), -100)
        assert vc.view.scale == pytest.approx(math.exp(100 * ZOOM_INTENSITY))

    def test_positive_delta_zooms_out(self):
        vc = ViewportController(0.4, 2.5)
        vc.on_wheel((10, 10), 120)
        assert vc.view.scale < 1.0

    def test_scale_is_clamped(self):
        vc = ViewportController(0.4, 2.5)
        vc.on_wheel((0, 0), -100000)
        assert vc.view.scale == 2.5
        vc.on_wheel((0, 0), 100000)
        assert vc.view.scale == 0.4

    def test_zoom_buttons_anchor_on_viewport_centre(self):
        vc = ViewportController(0.4, 2.5)
        vc.set_view(tx=40, ty=25)
        before = world_under(vc, (400, 300))

        vc.zoom_in((800, 600))
        assert vc.view.scale > 1.0
        assert world_under(vc, (400, 300)) == pytest.approx(before)

        vc.zoom_out((800, 600))
        assert vc.view.scale == pytest.approx(1.0)


class TestPan:

    def test_pan_applies_screen_delta(self):
        vc = ViewportController()
        assert vc.on_pan_start((10, 10)) is True
        vc.on_pan_move((30, 5))
        assert (vc.view.tx, vc.view.ty) == (20, -5)

    def test_pan_delta_ignores_scale(self):
        vc = ViewportController()
        vc.set_view(scale=2.0)
        vc.on_pan_start((0, 0))
        vc.on_pan_move((10, 0))
        assert vc.view.tx == 10

    def test_non_primary_button_does_not_pan(self):
        vc = ViewportController()
        assert vc.on_pan_start((0, 0), button=2) is False
        vc.on_pan_move((50, 50))
        assert (vc.view.tx, vc.view.ty) == (0, 0)

    def test_moves_after_release_or_leave_are_ignored(self):
        vc = ViewportController()
        vc.on_pan_start((0, 0))
        vc.on_pan_end()
        vc.on_pan_move((50, 50))
        assert vc.view.tx == 0

        vc.on_pan_start((0, 0))
        vc.on_pointer_leave()
        assert not vc.is_panning


class TestExplicitViews:

    def test_invalid_bounds_are_rejected(self):
        with pytest.raises(ValueError):
            ViewportController(0, 2)
        with pytest.raises(ValueError):
            ViewportController(3, 2)

    def test_set_view_merges_and_clamps(self):
        vc = ViewportController(0.4, 2.5)
        vc.set_view(tx=12)
        vc.set_view(scale=10)
        assert vc.view.scale == 2.5
        assert vc.view.tx == 12

    def test_fit_to_content(self):
        vc = ViewportController(0.4, 2.5)
        vc.fit_to_content([Node(id="a", label="A", group="g", x=100, y=100)], (500, 400))
        assert vc.view.scale == 2.5
        assert world_under(vc, (250, 200)) == pytest.approx((100, 100))

    def test_view_center_world(self):
        vc = ViewportController(0.4, 2.5)
        vc.set_view(scale=2, tx=100, ty=50)
        assert vc.view_center_world((800, 600)) == (150, 125)

    def test_view_center_world_defaults_unknown_size(self):
        vc = ViewportController()
        assert vc.view_center_world((0, 0)) == (450, 350)
