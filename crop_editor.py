"""
Interactive corner editor component for the document scanner page.

Features:
- Displays the photo with the corner quadrilateral drawn over it
- Square corner handles, same size as the editor's hit region
- Dragging follows the pointer without clamping; leaving the canvas ends the drag
- Each finished drag is reported back as pointer events for QuadEditor
"""

import functools
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import streamlit.components.v1 as components

from scanner.editor import (
    HANDLE_SIZE_PX,
    OVERLAY_COLOR,
    PointerDown,
    PointerEvent,
    PointerLeave,
    PointerMove,
    PointerUp,
    QuadEditor,
)
from scanner.types import PointLike, make_quad

FRONTEND_DIR = Path(__file__).parent / "crop_editor_frontend"

_POSITIONED_EVENTS = {"down": PointerDown, "move": PointerMove, "up": PointerUp}


@functools.lru_cache(maxsize=None)
def _crop_component():
    return components.declare_component("crop_editor", path=str(FRONTEND_DIR))


def quad_to_corners(quad: Sequence[PointLike]) -> List[List[float]]:
    """Quadrilateral as a JSON-friendly [[x, y], ...] list."""
    return [[p.x, p.y] for p in make_quad(quad)]


def gesture_to_events(gesture: Dict[str, Any]) -> List[PointerEvent]:
    """
    Convert one gesture reported by the frontend into editor events.

    Args:
        gesture: {"seq": n, "events": [{"type": "down", "x": .., "y": ..}, ...]}

    Returns:
        PointerDown/PointerMove/PointerUp/PointerLeave events in order

    Raises:
        ValueError: If an event has an unknown type
    """
    events = []
    for item in gesture.get("events", []):
        kind = item.get("type")
        if kind == "leave":
            events.append(PointerLeave())
        elif kind in _POSITIONED_EVENTS:
            events.append(_POSITIONED_EVENTS[kind](float(item["x"]), float(item["y"])))
        else:
            raise ValueError(f"Unknown pointer event type: {kind!r}")
    return events


def apply_gesture(editor: QuadEditor, gesture: Optional[Dict[str, Any]], last_seq: int) -> int:
    """
    Replay a reported gesture into the editor if it has not been applied yet.

    The component keeps returning its last value on every rerun, so gestures
    are numbered and only a new sequence number is dispatched.

    Returns:
        Sequence number of the latest applied gesture
    """
    if not gesture or gesture.get("seq", 0) == last_seq:
        return last_seq
    for event in gesture_to_events(gesture):
        editor.dispatch(event)
    return gesture["seq"]


def render_crop_editor(
    image_base64: str,
    corners: Sequence[PointLike],
    image_width: int,
    image_height: int,
    handle_size: float = HANDLE_SIZE_PX,
    key: str = "crop_editor",
) -> Optional[Dict[str, Any]]:
    """
    Render the interactive corner editor component.

    Args:
        image_base64: Base64 encoded JPEG photo
        corners: Current corners, ordered top-left, top-right,
                 bottom-right, bottom-left
        image_width: Natural photo width
        image_height: Natural photo height
        handle_size: Side of the square handles in image pixels
        key: Unique key for this component instance

    Returns:
        Last gesture reported by the frontend, or None before the first drag
    """
    return _crop_component()(
        image=image_base64,
        corners=quad_to_corners(corners),
        width=image_width,
        height=image_height,
        handle_size=handle_size,
        color="#{:02x}{:02x}{:02x}".format(*OVERLAY_COLOR),
        key=key,
        default=None,
    )
