"""
Unit tests for editor module.

Tests the default quad, handle hit-testing, the drag reducer, the editing
session and overlay rendering.
"""

import numpy as np
import pytest

from scanner.editor import (
    OVERLAY_COLOR,
    Dragging,
    EditorState,
    Idle,
    PointerDown,
    PointerLeave,
    PointerMove,
    PointerUp,
    QuadEditor,
    default_quad,
    grab_point,
    handle_rects,
    hit_test,
    reduce,
    render_overlay,
)
from scanner.errors import EditorClosedError
from scanner.transformer import PerspectiveWarper
from scanner.types import Point, make_quad

DEFAULT_500 = make_quad([(30, 30), (470, 30), (470, 470), (30, 470)])


class TestDefaultQuad:
    def test_square_image(self):
        assert default_quad(500, 500) == DEFAULT_500

    def test_landscape_image(self):
        assert default_quad(640, 480) == make_quad(
            [(30, 30), (610, 30), (610, 450), (30, 450)]
        )

    def test_small_image_margin_is_capped(self):
        """Images under twice the margin still get a non-inverted quad."""
        quad = default_quad(40, 40)

        assert quad == make_quad([(10, 10), (30, 10), (30, 30), (10, 30)])
        assert quad[0].x < quad[1].x
        assert quad[0].y < quad[3].y

    def test_custom_margin(self):
        assert default_quad(100, 100, margin=5)[0] == Point(5, 5)


class TestHitTest:
    def test_hit_inside_square(self):
        assert hit_test(DEFAULT_500, 32, 32) == 0
        assert hit_test(DEFAULT_500, 470, 30) == 1
        assert hit_test(DEFAULT_500, 465, 475) == 2
        assert hit_test(DEFAULT_500, 24, 476) == 3

    def test_edges_are_exclusive(self):
        assert hit_test(DEFAULT_500, 36.9, 23.1) == 0
        assert hit_test(DEFAULT_500, 37, 30) is None
        assert hit_test(DEFAULT_500, 30, 23) is None

    def test_square_not_radial(self):
        """Corner of the square is a hit even though it is > 7 px away."""
        assert hit_test(DEFAULT_500, 36.5, 36.5) == 0

    def test_miss(self):
        assert hit_test(DEFAULT_500, 250, 250) is None

    def test_first_handle_wins_ties(self):
        quad = [(10, 10), (12, 12), (100, 100), (10, 100)]

        assert hit_test(quad, 11, 11) == 0

    def test_custom_handle_size(self):
        assert hit_test(DEFAULT_500, 45, 30, handle_size=40) == 0


class TestGrabPoint:
    def test_centre_when_unobstructed(self):
        assert grab_point(DEFAULT_500, 2) == Point(470, 470)

    def test_avoids_earlier_overlapping_handle(self):
        quad = [(10, 10), (12, 12), (100, 100), (10, 100)]

        p = grab_point(quad, 1)

        assert p is not None
        assert hit_test(quad, p.x, p.y) == 1

    def test_fully_covered_handle(self):
        quad = [(10, 10), (10, 10), (100, 100), (10, 100)]

        assert grab_point(quad, 1) is None


class TestReduce:
    """Test suite for the pure drag state machine."""

    def test_pointer_down_on_handle_starts_drag(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(32, 33))

        assert state.drag == Dragging(0, Point(2, 3))
        assert state.quad == DEFAULT_500

    def test_pointer_down_off_handle_stays_idle(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(250, 250))

        assert state.drag == Idle()

    def test_drag_scenario(self):
        state = EditorState(DEFAULT_500)
        state = reduce(state, PointerDown(32, 32))
        state = reduce(state, PointerMove(100, 100))

        assert state.quad[0] == Point(100, 100)
        assert state.quad[1:] == DEFAULT_500[1:]

        state = reduce(state, PointerUp(100, 100))
        assert state.drag == Idle()
        assert state.quad[0] == Point(100, 100)

    def test_move_without_drag_is_noop(self):
        state = EditorState(DEFAULT_500)

        assert reduce(state, PointerMove(100, 100)) is state

    def test_move_is_not_clamped(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(470, 470))
        state = reduce(state, PointerMove(-50, 900))

        assert state.quad[2] == Point(-50, 900)

    def test_pointer_leave_ends_drag(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(30, 470))
        state = reduce(state, PointerLeave())

        assert state.drag == Idle()

    def test_pointer_up_anywhere_ends_drag(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(30, 30))
        state = reduce(state, PointerUp(999, -999))

        assert state.drag == Idle()
        assert state.quad == DEFAULT_500

    def test_input_state_unchanged(self):
        state = reduce(EditorState(DEFAULT_500), PointerDown(30, 30))
        reduce(state, PointerMove(1, 1))

        assert state.quad == DEFAULT_500
        assert state.drag == Dragging(0, Point(0, 0))

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            reduce(EditorState(DEFAULT_500), "click")


class TestQuadEditor:
    """Test suite for the editing session."""

    def test_start_uses_default_quad(self, page_image):
        editor = QuadEditor.start(page_image)

        assert editor.quad == DEFAULT_500
        assert editor.drag == Idle()
        assert not editor.is_dragging

    def test_drag_and_confirm(self, page_image):
        editor = QuadEditor.start(page_image)
        editor.on_pointer_down(32, 32)
        assert editor.is_dragging
        assert editor.drag.index == 0

        editor.on_pointer_move(100, 100)
        editor.on_pointer_up(100, 100)

        quad = editor.confirm()
        assert quad == make_quad([(100, 100), (470, 30), (470, 470), (30, 470)])
        assert editor.closed

    def test_confirm_mid_drag_returns_current_quad(self, page_image):
        editor = QuadEditor.start(page_image)
        editor.on_pointer_down(470, 30)
        editor.on_pointer_move(480, 20)

        assert editor.confirm()[1] == Point(480, 20)
        assert editor.drag == Idle()

    def test_move_handle(self, page_image):
        editor = QuadEditor.start(page_image)

        assert editor.move_handle(2, 400, 480)
        assert editor.quad[2] == Point(400, 480)
        assert editor.drag == Idle()

    def test_move_handle_next_to_earlier_handle(self, page_image):
        editor = QuadEditor(page_image, [(10, 10), (12, 12), (100, 100), (10, 100)])

        assert editor.move_handle(1, 200, 20)
        assert editor.quad == make_quad([(10, 10), (200, 20), (100, 100), (10, 100)])

    def test_move_covered_handle_is_refused(self, page_image):
        quad = make_quad([(10, 10), (10, 10), (100, 100), (10, 100)])
        editor = QuadEditor(page_image, quad)

        assert not editor.move_handle(1, 200, 20)
        assert editor.quad == quad
        assert editor.drag == Idle()

    def test_events_after_confirm_raise(self, page_image):
        editor = QuadEditor.start(page_image)
        editor.confirm()

        with pytest.raises(EditorClosedError):
            editor.on_pointer_down(30, 30)
        with pytest.raises(EditorClosedError):
            editor.confirm()

    def test_cancel_closes_session(self, page_image):
        editor = QuadEditor.start(page_image)
        editor.cancel()

        with pytest.raises(EditorClosedError):
            editor.confirm()
        with pytest.raises(EditorClosedError):
            editor.on_pointer_leave()

    def test_confirmed_quad_feeds_warper(self, page_image):
        editor = QuadEditor.start(page_image)
        editor.on_pointer_down(470, 470)
        editor.on_pointer_move(400, 480)
        editor.on_pointer_up(400, 480)

        result = PerspectiveWarper().warp(page_image, editor.confirm(), 120, 160)

        assert result.size == (120, 160)
        assert np.all(result.pixels[..., 3] == 255)


class TestRendering:
    def test_handle_rects_match_hit_region(self):
        rects = handle_rects(DEFAULT_500)

        assert rects[0] == (23.0, 23.0, 37.0, 37.0)
        assert len(rects) == 4

    def test_render_overlay(self, page_image):
        canvas = render_overlay(page_image, DEFAULT_500)
        color = tuple(OVERLAY_COLOR) + (255,)

        assert canvas.shape == (500, 500, 4)
        # Handle square filled around each corner
        assert tuple(canvas[30, 30]) == color
        assert tuple(canvas[25, 35]) == color
        assert tuple(canvas[470, 470]) == color
        # Polygon edge
        assert tuple(canvas[30, 250]) == color
        # Interior untouched
        assert tuple(canvas[250, 250]) == (128, 128, 128, 255)

    def test_render_does_not_modify_image(self, page_image):
        before = page_image.pixels.copy()
        QuadEditor.start(page_image).render()

        assert np.array_equal(page_image.pixels, before)
