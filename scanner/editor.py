"""
Interactive corner editor for the document scanner.

The editor is a two-state machine (Idle, Dragging) driven by pointer events.
Transitions are computed by the pure reduce() function so they can be tested
without a display surface; QuadEditor wraps it in a confirm/cancel session.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from scanner.errors import EditorClosedError
from scanner.types import Point, PointLike, Quadrilateral, RasterImage, make_quad

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_PX = 30
DEFAULT_MAX_MARGIN_FRACTION = 0.25
HANDLE_SIZE_PX = 14
OVERLAY_COLOR = (34, 197, 94)  # RGB


@dataclass(frozen=True)
class Idle:
    """No handle is being dragged."""


@dataclass(frozen=True)
class Dragging:
    """A handle is grabbed.

    Attributes:
        index: Handle index, 0-3.
        grab_offset: Pointer position minus handle position at grab time.
    """

    index: int
    grab_offset: Point


DragState = Union[Idle, Dragging]


@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: float
    y: float


@dataclass(frozen=True)
class PointerLeave:
    pass


PointerEvent = Union[PointerDown, PointerMove, PointerUp, PointerLeave]


@dataclass(frozen=True)
class EditorState:
    quad: Quadrilateral
    drag: DragState = Idle()


def default_quad(
    width: int,
    height: int,
    margin: float = DEFAULT_MARGIN_PX,
    max_margin_fraction: float = DEFAULT_MAX_MARGIN_FRACTION,
) -> Quadrilateral:
    """Initial corners inset from the image border.

    The margin is capped at max_margin_fraction of the shorter side, so
    images smaller than twice the margin still get a proper rectangle.

    Args:
        width: Image width.
        height: Image height.
        margin: Preferred inset in pixels.
        max_margin_fraction: Largest inset as a fraction of min(width, height).

    Returns:
        [(m, m), (W-m, m), (W-m, H-m), (m, H-m)]
    """
    m = min(float(margin), max_margin_fraction * min(width, height))
    return make_quad(
        [
            (m, m),  # Top-left
            (width - m, m),  # Top-right
            (width - m, height - m),  # Bottom-right
            (m, height - m),  # Bottom-left
        ]
    )


def hit_test(
    quad: Sequence[PointLike], x: float, y: float, handle_size: float = HANDLE_SIZE_PX
) -> Optional[int]:
    """Index of the first handle whose square contains (x, y), or None."""
    half = handle_size / 2
    for i, p in enumerate(make_quad(quad)):
        if abs(x - p.x) < half and abs(y - p.y) < half:
            return i
    return None


def grab_point(
    quad: Sequence[PointLike], index: int, handle_size: float = HANDLE_SIZE_PX
) -> Optional[Point]:
    """A point inside handle `index` that hit_test resolves to that handle.

    Overlapping handles resolve to the lowest index, so the handle's own
    centre may grab an earlier one. Returns None when every sampled point of
    the square belongs to an earlier handle.
    """
    corners = make_quad(quad)
    centre = corners[index]
    half = handle_size / 2
    steps = (0.0, -0.5, 0.5, -0.9, 0.9)
    for dy in steps:
        for dx in steps:
            x, y = centre.x + dx * half, centre.y + dy * half
            if hit_test(corners, x, y, handle_size) == index:
                return Point(x, y)
    return None


def reduce(
    state: EditorState, event: PointerEvent, handle_size: float = HANDLE_SIZE_PX
) -> EditorState:
    """Apply one pointer event and return the next editor state."""
    if isinstance(event, PointerDown):
        index = hit_test(state.quad, event.x, event.y, handle_size)
        if index is None:
            return replace(state, drag=Idle())
        handle = state.quad[index]
        offset = Point(event.x - handle.x, event.y - handle.y)
        return replace(state, drag=Dragging(index, offset))

    if isinstance(event, PointerMove):
        if not isinstance(state.drag, Dragging):
            return state
        corners = list(state.quad)
        corners[state.drag.index] = Point(float(event.x), float(event.y))
        return replace(state, quad=make_quad(corners))

    if isinstance(event, (PointerUp, PointerLeave)):
        return replace(state, drag=Idle())

    raise TypeError(f"Unsupported pointer event: {event!r}")


def handle_rects(
    quad: Sequence[PointLike], handle_size: float = HANDLE_SIZE_PX
) -> List[Tuple[float, float, float, float]]:
    """Handle squares as (x0, y0, x1, y1), matching the hit-test region."""
    half = handle_size / 2
    return [(p.x - half, p.y - half, p.x + half, p.y + half) for p in make_quad(quad)]


def render_overlay(
    image: RasterImage,
    quad: Sequence[PointLike],
    handle_size: float = HANDLE_SIZE_PX,
    color: Tuple[int, int, int] = OVERLAY_COLOR,
    thickness: int = 2,
) -> np.ndarray:
    """Draw the corner polygon and handle squares onto a copy of the image.

    Args:
        image: Photo being edited.
        quad: Current corners.
        handle_size: Side of each handle square, same as the hit region.
        color: RGB stroke and fill colour.
        thickness: Polygon line width.

    Returns:
        RGBA array of shape (height, width, 4).
    """
    canvas = image.pixels.copy()
    rgba = tuple(int(c) for c in color) + (255,)

    pts = np.round([p.as_tuple() for p in make_quad(quad)]).astype(np.int32)
    cv2.polylines(canvas, [pts.reshape(-1, 1, 2)], True, rgba, thickness)

    for x0, y0, x1, y1 in handle_rects(quad, handle_size):
        cv2.rectangle(
            canvas,
            (int(round(x0)), int(round(y0))),
            (int(round(x1)), int(round(y1))),
            rgba,
            cv2.FILLED,
        )
    return canvas


class QuadEditor:
    """Corner editing session over one photo.

    Pointer coordinates must already be in the photo's native pixel space.
    The session ends with confirm() or cancel(); afterwards every call
    raises EditorClosedError.
    """

    def __init__(
        self,
        image: RasterImage,
        quad: Sequence[PointLike],
        handle_size: float = HANDLE_SIZE_PX,
    ):
        self.image = image
        self.handle_size = handle_size
        self._state = EditorState(quad=make_quad(quad))
        self._closed = False

    @classmethod
    def start(
        cls,
        image: RasterImage,
        margin: float = DEFAULT_MARGIN_PX,
        max_margin_fraction: float = DEFAULT_MAX_MARGIN_FRACTION,
        handle_size: float = HANDLE_SIZE_PX,
    ) -> "QuadEditor":
        """Open a session with the default inset quadrilateral."""
        quad = default_quad(image.width, image.height, margin, max_margin_fraction)
        logger.debug(
            f"Started editor on {image.width}x{image.height} image with quad "
            f"{[p.as_tuple() for p in quad]}"
        )
        return cls(image, quad, handle_size=handle_size)

    @property
    def state(self) -> EditorState:
        return self._state

    @property
    def quad(self) -> Quadrilateral:
        return self._state.quad

    @property
    def drag(self) -> DragState:
        return self._state.drag

    @property
    def is_dragging(self) -> bool:
        return isinstance(self._state.drag, Dragging)

    @property
    def closed(self) -> bool:
        return self._closed

    def dispatch(self, event: PointerEvent) -> EditorState:
        self._ensure_open()
        self._state = reduce(self._state, event, self.handle_size)
        return self._state

    def on_pointer_down(self, x: float, y: float) -> EditorState:
        return self.dispatch(PointerDown(x, y))

    def on_pointer_move(self, x: float, y: float) -> EditorState:
        return self.dispatch(PointerMove(x, y))

    def on_pointer_up(self, x: float, y: float) -> EditorState:
        return self.dispatch(PointerUp(x, y))

    def on_pointer_leave(self) -> EditorState:
        return self.dispatch(PointerLeave())

    def move_handle(self, index: int, x: float, y: float) -> bool:
        """Drag handle `index` to (x, y) through the pointer events.

        Returns False, leaving the quad unchanged, when the handle is fully
        covered by an earlier one and cannot be grabbed.
        """
        self._ensure_open()
        grab = grab_point(self.quad, index, self.handle_size)
        if grab is None:
            logger.warning(f"Handle {index} is covered by an earlier handle")
            return False
        self.on_pointer_down(grab.x, grab.y)
        self.on_pointer_move(x, y)
        self.on_pointer_up(x, y)
        return True

    def render(self) -> np.ndarray:
        return render_overlay(self.image, self.quad, self.handle_size)

    def confirm(self) -> Quadrilateral:
        """Close the session and return the final corners."""
        self._ensure_open()
        self._closed = True
        self._state = replace(self._state, drag=Idle())
        logger.info(f"Confirmed corners {[p.as_tuple() for p in self.quad]}")
        return self.quad

    def cancel(self) -> None:
        """Close the session without producing corners."""
        self._ensure_open()
        self._closed = True
        self._state = replace(self._state, drag=Idle())
        logger.info("Corner editing cancelled")

    def _ensure_open(self) -> None:
        if self._closed:
            raise EditorClosedError("Editing session already confirmed or cancelled")
