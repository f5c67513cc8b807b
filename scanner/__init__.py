"""Scanner module for document corner editing and perspective correction."""

from .config_loader import ScannerConfig, load_config
from .editor import Dragging, Idle, QuadEditor, default_quad, hit_test, reduce
from .errors import (
    DegenerateCorrespondenceError,
    EditorClosedError,
    ImageDecodeError,
    ScannerError,
)
from .homography import HomographyEstimator, apply_homography, estimate
from .transformer import PerspectiveWarper
from .types import Homography, Point, Quadrilateral, RasterImage, make_quad

__all__ = [
    "DegenerateCorrespondenceError",
    "Dragging",
    "EditorClosedError",
    "Homography",
    "HomographyEstimator",
    "Idle",
    "ImageDecodeError",
    "PerspectiveWarper",
    "Point",
    "QuadEditor",
    "Quadrilateral",
    "RasterImage",
    "ScannerConfig",
    "ScannerError",
    "apply_homography",
    "default_quad",
    "estimate",
    "hit_test",
    "load_config",
    "make_quad",
    "reduce",
]
