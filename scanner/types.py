"""
Data types for the scanner package.

Provides value types for points, corner quadrilaterals, homographies and
RGBA raster images.
"""

from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple, Union

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class Point:
    """A pixel coordinate pair."""

    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


# Ordered TL, TR, BR, BL. The order defines correspondence with the
# output rectangle and is never rearranged.
Quadrilateral = Tuple[Point, Point, Point, Point]

PointLike = Union[Point, Sequence[float]]


def to_point(value: PointLike) -> Point:
    """Coerce an (x, y) pair or Point into a Point."""
    if isinstance(value, Point):
        return value
    x, y = value
    return Point(float(x), float(y))


def make_quad(points: Iterable[PointLike]) -> Quadrilateral:
    """Build a quadrilateral from exactly 4 points, keeping their order.

    Args:
        points: 4 Points or (x, y) pairs in TL, TR, BR, BL order.

    Returns:
        Tuple of 4 Points.

    Raises:
        ValueError: If the input does not contain exactly 4 points.
    """
    pts = [to_point(p) for p in points]
    if len(pts) != 4:
        raise ValueError(f"Expected exactly 4 points, got {len(pts)}")
    return (pts[0], pts[1], pts[2], pts[3])


def rectangle_quad(width: float, height: float) -> Quadrilateral:
    """Canonical axis-aligned rectangle [(0,0), (W,0), (W,H), (0,H)]."""
    return (
        Point(0.0, 0.0),
        Point(float(width), 0.0),
        Point(float(width), float(height)),
        Point(0.0, float(height)),
    )


def quad_to_array(quad: Sequence[PointLike]) -> np.ndarray:
    """Convert a quadrilateral into a (4, 2) float64 array."""
    return np.array([to_point(p).as_tuple() for p in quad], dtype=np.float64)


@dataclass(eq=False)
class Homography:
    """Projective map between two planes.

    Stored as a 3x3 matrix normalised so the bottom-right entry equals 1.
    """

    matrix: np.ndarray

    def __post_init__(self):
        self.matrix = np.asarray(self.matrix, dtype=np.float64)
        if self.matrix.shape != (3, 3):
            raise ValueError(
                f"Homography must be 3x3, got shape {self.matrix.shape}"
            )

    @classmethod
    def identity(cls) -> "Homography":
        return cls(np.eye(3, dtype=np.float64))

    @classmethod
    def from_coefficients(cls, coefficients: Sequence[float]) -> "Homography":
        coeffs = np.asarray(coefficients, dtype=np.float64)
        if coeffs.size != 9:
            raise ValueError(f"Expected 9 coefficients, got {coeffs.size}")
        return cls(coeffs.reshape(3, 3))

    @property
    def coefficients(self) -> Tuple[float, ...]:
        """The 9 scalars h0..h8 in row-major order."""
        return tuple(float(v) for v in self.matrix.ravel())


@dataclass(eq=False)
class RasterImage:
    """RGBA image with 8 bits per channel.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        pixels: uint8 array of shape (height, width, 4).
    """

    width: int
    height: int
    pixels: np.ndarray = field(repr=False)

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"Image dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {self.pixels.dtype}")
        expected = (self.height, self.width, 4)
        if self.pixels.shape != expected:
            raise ValueError(
                f"Expected pixel buffer of shape {expected}, got {self.pixels.shape}"
            )

    @classmethod
    def blank(cls, width: int, height: int) -> "RasterImage":
        """Allocate a fully transparent image."""
        return cls(width, height, np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """Wrap an (H, W, 4) RGBA array, or promote an (H, W, 3) RGB one."""
        array = np.asarray(array, dtype=np.uint8)
        if array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        if array.ndim != 3:
            raise ValueError(f"Expected a 3-D pixel array, got shape {array.shape}")
        height, width = array.shape[:2]
        return cls(width, height, np.ascontiguousarray(array))

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls.from_array(np.asarray(image))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)
