"""
Homography estimation from four point correspondences.

Uses the Direct Linear Transform. The default solver fixes h8 = 1 and solves
the remaining 8x8 system by LU decomposition on Hartley-normalised points.
The shifted power-iteration solver is kept for comparison; it needs an
explicit random generator so that runs are reproducible.
"""

import itertools
import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from scanner.errors import DegenerateCorrespondenceError
from scanner.types import Homography, Point, PointLike, quad_to_array

logger = logging.getLogger(__name__)

SOLVERS = ("direct", "power_iteration")
DEFAULT_POWER_ITERATIONS = 80

# Relative tolerances
COLLINEARITY_TOLERANCE = 1e-9
MAX_CONDITION_NUMBER = 1e10
REPROJECTION_TOLERANCE = 1e-6


def _as_points(points: Sequence[PointLike], name: str) -> np.ndarray:
    pts = quad_to_array(points)
    if pts.shape != (4, 2):
        raise ValueError(
            f"Expected exactly 4 {name} points with shape (4, 2), got shape {pts.shape}"
        )
    if not np.all(np.isfinite(pts)):
        raise DegenerateCorrespondenceError(f"{name} points contain non-finite values")
    return pts


def _check_general_position(pts: np.ndarray, name: str) -> None:
    """Reject point sets where any three points are collinear or coincide."""
    extent = max(float(np.ptp(pts[:, 0])), float(np.ptp(pts[:, 1])), 1.0)
    limit = COLLINEARITY_TOLERANCE * extent * extent

    for i, j, k in itertools.combinations(range(4), 3):
        v1 = pts[j] - pts[i]
        v2 = pts[k] - pts[i]
        cross = v1[0] * v2[1] - v1[1] * v2[0]
        if abs(cross) <= limit:
            raise DegenerateCorrespondenceError(
                f"{name} points {i}, {j} and {k} are collinear or coincident"
            )


def _normalization(pts: np.ndarray) -> np.ndarray:
    """Similarity transform moving the centroid to the origin at mean distance sqrt(2)."""
    centroid = pts.mean(axis=0)
    mean_dist = np.sqrt(((pts - centroid) ** 2).sum(axis=1)).mean()
    scale = math.sqrt(2) / mean_dist if mean_dist > 0 else 1.0
    return np.array(
        [
            [scale, 0.0, -scale * centroid[0]],
            [0.0, scale, -scale * centroid[1]],
            [0.0, 0.0, 1.0],
        ]
    )


def _transform(T: np.ndarray, pts: np.ndarray) -> np.ndarray:
    homo = np.hstack([pts, np.ones((pts.shape[0], 1))])
    out = (T @ homo.T).T
    return out[:, :2] / out[:, 2:3]


def dlt_matrix(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Build the 8x9 DLT coefficient matrix for dst ~ H * src."""
    rows = []
    for (x, y), (u, v) in zip(src, dst):
        rows.append([-x, -y, -1.0, 0.0, 0.0, 0.0, x * u, y * u, u])
        rows.append([0.0, 0.0, 0.0, -x, -y, -1.0, x * v, y * v, v])
    return np.array(rows, dtype=np.float64)


def _solve_direct(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    T_src = _normalization(src)
    T_dst = _normalization(dst)
    A = dlt_matrix(_transform(T_src, src), _transform(T_dst, dst))

    # h8 = 1: move the last column to the right-hand side
    M = -A[:, :8]
    b = A[:, 8]

    cond = np.linalg.cond(M)
    if not np.isfinite(cond) or cond > MAX_CONDITION_NUMBER:
        raise DegenerateCorrespondenceError(
            f"Correspondence system is ill-conditioned (cond={cond:.3g})"
        )
    try:
        h = np.linalg.solve(M, b)
    except np.linalg.LinAlgError as e:
        raise DegenerateCorrespondenceError(f"Correspondence system is singular: {e}") from e

    normalized = np.append(h, 1.0).reshape(3, 3)
    return np.linalg.inv(T_dst) @ normalized @ T_src


def smallest_eigenvector(
    M: np.ndarray, rng: np.random.Generator, iterations: int = DEFAULT_POWER_ITERATIONS
) -> np.ndarray:
    """Approximate the eigenvector of symmetric M with the smallest eigenvalue.

    Runs power iteration on alpha*I - M with alpha = trace(M) + 1, for a fixed
    number of iterations and without a convergence check.
    """
    n = M.shape[0]
    alpha = np.trace(M) + 1.0
    B = alpha * np.eye(n) - M

    v = rng.random(n)
    v /= np.linalg.norm(v) or 1.0
    for _ in range(iterations):
        v = B @ v
        v /= np.linalg.norm(v) or 1.0
    return v


def _solve_power_iteration(
    src: np.ndarray,
    dst: np.ndarray,
    rng: np.random.Generator,
    iterations: int,
) -> np.ndarray:
    T_src = _normalization(src)
    T_dst = _normalization(dst)
    A = dlt_matrix(_transform(T_src, src), _transform(T_dst, dst))
    normalized = smallest_eigenvector(A.T @ A, rng, iterations).reshape(3, 3)
    return np.linalg.inv(T_dst) @ normalized @ T_src


def _normalize_scale(H: np.ndarray) -> np.ndarray:
    h8 = H[2, 2]
    if not np.isfinite(h8) or abs(h8) < 1e-12:
        raise DegenerateCorrespondenceError(
            "Homography has zero scale (h8 = 0); cannot normalise"
        )
    H = H / h8
    if not np.all(np.isfinite(H)):
        raise DegenerateCorrespondenceError("Homography contains non-finite values")
    return H


def _check_reprojection(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> None:
    """Reject solutions that do not carry every source point onto its destination."""
    homo = np.hstack([src, np.ones((4, 1))])
    out = (H @ homo.T).T
    w = out[:, 2]
    if np.any(np.abs(w) < 1e-12):
        raise DegenerateCorrespondenceError("Homography maps a source point to infinity")
    error = float(np.max(np.abs(out[:, :2] / w[:, None] - dst)))
    extent = max(float(np.ptp(dst[:, 0])), float(np.ptp(dst[:, 1])), 1.0)
    if not error <= REPROJECTION_TOLERANCE * extent:
        raise DegenerateCorrespondenceError(
            f"Homography misses the destination points by {error:.3g} px"
        )


class HomographyEstimator:
    """Estimates the projective transform between two 4-point sets.

    Args:
        solver: "direct" (deterministic LU solve) or "power_iteration".
        iterations: Fixed iteration count for the power-iteration solver.
        rng: Random generator seeding the power-iteration solver. A fresh
            default generator is used when omitted.
    """

    def __init__(
        self,
        solver: str = "direct",
        iterations: int = DEFAULT_POWER_ITERATIONS,
        rng: Optional[np.random.Generator] = None,
    ):
        if solver not in SOLVERS:
            raise ValueError(f"Unknown solver '{solver}'. Must be one of {SOLVERS}")
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        self.solver = solver
        self.iterations = iterations
        self.rng = rng

    def estimate(
        self, src: Sequence[PointLike], dst: Sequence[PointLike]
    ) -> Homography:
        """Compute H such that dst ~ H * src.

        Args:
            src: 4 source points.
            dst: 4 destination points, in corresponding order.

        Returns:
            Homography normalised so that h8 == 1.

        Raises:
            ValueError: If either set does not hold exactly 4 points.
            DegenerateCorrespondenceError: If the points are collinear,
                coincident, or give a singular or non-finite solution, or if
                the solution does not reproduce the correspondences (an
                unconverged power iteration).
        """
        src_pts = _as_points(src, "source")
        dst_pts = _as_points(dst, "destination")

        try:
            _check_general_position(src_pts, "source")
            _check_general_position(dst_pts, "destination")

            if self.solver == "direct":
                raw = _solve_direct(src_pts, dst_pts)
            else:
                rng = self.rng if self.rng is not None else np.random.default_rng()
                raw = _solve_power_iteration(src_pts, dst_pts, rng, self.iterations)

            H = _normalize_scale(raw)
            _check_reprojection(H, src_pts, dst_pts)
        except DegenerateCorrespondenceError as e:
            logger.warning(
                f"Rejected correspondence {src_pts.tolist()} -> {dst_pts.tolist()}: {e}"
            )
            raise

        logger.debug(f"Estimated homography ({self.solver}): {H.ravel().tolist()}")
        return Homography(H)


def estimate(
    src: Sequence[PointLike],
    dst: Sequence[PointLike],
    solver: str = "direct",
    rng: Optional[np.random.Generator] = None,
    iterations: int = DEFAULT_POWER_ITERATIONS,
) -> Homography:
    """Module-level shortcut for HomographyEstimator(...).estimate(src, dst)."""
    return HomographyEstimator(solver=solver, iterations=iterations, rng=rng).estimate(
        src, dst
    )


def apply_homography(homography: Homography, x: float, y: float) -> Point:
    """Project (x, y) through the homography.

    Returns (nan, nan) when the point maps to infinity (W == 0); callers
    must treat non-finite points as lying outside any image.
    """
    h = [float(v) for v in homography.matrix.ravel()]
    X = h[0] * x + h[1] * y + h[2]
    Y = h[3] * x + h[4] * y + h[5]
    W = h[6] * x + h[7] * y + h[8]
    if W == 0.0:
        return Point(math.nan, math.nan)
    return Point(X / W, Y / W)


def project_grid(
    homography: Homography, xs: np.ndarray, ys: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised apply_homography over coordinate arrays.

    Points at infinity come back as nan.
    """
    h = homography.matrix.ravel()
    X = h[0] * xs + h[1] * ys + h[2]
    Y = h[3] * xs + h[4] * ys + h[5]
    W = h[6] * xs + h[7] * ys + h[8]
    with np.errstate(divide="ignore", invalid="ignore"):
        px = np.where(W != 0.0, X / W, np.nan)
        py = np.where(W != 0.0, Y / W, np.nan)
    return px, py
