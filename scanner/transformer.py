"""Perspective correction for scanned documents."""

import asyncio
import logging
import operator
from concurrent.futures import Executor
from typing import Optional, Sequence, Tuple

import numpy as np

from scanner.homography import DEFAULT_POWER_ITERATIONS, HomographyEstimator, project_grid
from scanner.types import (
    Homography,
    PointLike,
    RasterImage,
    make_quad,
    rectangle_quad,
)

logger = logging.getLogger(__name__)

# Output rows projected per pass; bounds temporary memory on large photos.
ROW_BLOCK = 256


def output_size_for(image: RasterImage) -> Tuple[int, int]:
    """Output size used by the scanner page: the photo's natural size."""
    return image.width, image.height


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    try:
        value = operator.index(value)
    except TypeError:
        raise ValueError(f"{name} must be a positive integer, got {value!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


class PerspectiveWarper:
    """Flattens the quadrilateral region of a photo into a rectangle.

    The map is built from the output rectangle back into the source so every
    output pixel is visited exactly once. Sampling is nearest-neighbour.
    Output pixels that land outside the source stay fully transparent.
    """

    def __init__(
        self,
        solver: str = "direct",
        iterations: int = DEFAULT_POWER_ITERATIONS,
        rng: Optional[np.random.Generator] = None,
    ):
        self.estimator = HomographyEstimator(solver=solver, iterations=iterations, rng=rng)

    def inverse_homography(
        self, quad: Sequence[PointLike], out_w: int, out_h: int
    ) -> Homography:
        """Homography mapping output pixel coordinates into the source photo.

        Args:
            quad: Corner points in the source, ordered TL, TR, BR, BL.
            out_w: Output width.
            out_h: Output height.

        Returns:
            Homography from [(0,0), (W,0), (W,H), (0,H)] onto quad.
        """
        return self.estimator.estimate(rectangle_quad(out_w, out_h), make_quad(quad))

    def warp(
        self,
        source: RasterImage,
        quad: Sequence[PointLike],
        out_w: int,
        out_h: int,
    ) -> RasterImage:
        """Resample the quad region of source into an out_w x out_h image.

        Args:
            source: Photo to read from. Never modified.
            quad: 4 corner points in source pixel space, TL, TR, BR, BL.
            out_w: Output width in pixels.
            out_h: Output height in pixels.

        Returns:
            New RGBA image of exactly out_w x out_h. Sampled pixels are
            opaque; pixels mapping outside the source are transparent.

        Raises:
            ValueError: If the quad does not hold 4 points or the output
                size is not a positive integer pair.
            DegenerateCorrespondenceError: If the quad cannot define a
                homography.
        """
        out_w = _positive_int(out_w, "out_w")
        out_h = _positive_int(out_h, "out_h")
        quad = make_quad(quad)

        H = self.inverse_homography(quad, out_w, out_h)
        logger.debug(
            f"Warping {source.width}x{source.height} -> {out_w}x{out_h} "
            f"with quad {[p.as_tuple() for p in quad]}"
        )

        output = RasterImage.blank(out_w, out_h)
        src = source.pixels
        xs = np.arange(out_w, dtype=np.float64)

        for row in range(0, out_h, ROW_BLOCK):
            rows = np.arange(row, min(row + ROW_BLOCK, out_h), dtype=np.float64)
            gx, gy = np.meshgrid(xs, rows)
            px, py = project_grid(H, gx, gy)

            with np.errstate(invalid="ignore"):
                # Round half up
                xi = np.floor(px + 0.5)
                yi = np.floor(py + 0.5)
                inside = (
                    np.isfinite(xi)
                    & np.isfinite(yi)
                    & (xi >= 0)
                    & (xi < source.width)
                    & (yi >= 0)
                    & (yi < source.height)
                )

            block = output.pixels[row : row + len(rows)]
            sx = xi[inside].astype(np.intp)
            sy = yi[inside].astype(np.intp)
            block[inside, :3] = src[sy, sx, :3]
            block[inside, 3] = 255

        logger.info(f"Rectified document to {out_w}x{out_h}")
        return output

    async def warp_async(
        self,
        source: RasterImage,
        quad: Sequence[PointLike],
        out_w: int,
        out_h: int,
        executor: Optional[Executor] = None,
    ) -> RasterImage:
        """Run warp in an executor so the event loop stays responsive.

        Results are identical to warp(). Uses the loop's default thread pool
        when no executor is given.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, self.warp, source, quad, out_w, out_h)
