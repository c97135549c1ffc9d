# implicit.py - scalar fields and zero level-set extraction
"""
Implicit geometry.

Scalar fields are sampled on uniform grids with ``resolution`` cells per axis
(``resolution + 1`` nodes). Field values are indexed in axis order, i.e.
``values[ix, iy]`` in 2D and ``values[ix, iy, iz]`` in 3D.

Level sets are extracted with scikit-image: ``find_contours`` (marching
squares) for curves and ``marching_cubes`` for surfaces. ``edge_crossings``
is a lighter alternative for curves that only returns a point cloud.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

import numpy as np
from skimage import measure

from .compiler import CompiledFunction
from .config import get_settings
from .errors import RequestCancelled, message_for

logger = logging.getLogger(__name__)

Bounds = Tuple[Tuple[float, float], ...]


# -------------------- Scalar field --------------------
@dataclass
class ScalarField:
    """
    Dense samples over a uniform grid.

    Attributes:
        values: array of shape (resolution + 1,) * dims
        bounds: (min, max) per axis, in x, y(, z) order
        resolution: number of cells per axis
        timed_out: True when sampling stopped at the time budget; unsampled nodes are NaN
    """
    values: np.ndarray
    bounds: Bounds
    resolution: int
    timed_out: bool = False

    @property
    def dims(self) -> int:
        return len(self.bounds)

    @property
    def spacing(self) -> Tuple[float, ...]:
        return tuple((hi - lo) / self.resolution for lo, hi in self.bounds)

    def axis(self, i: int) -> np.ndarray:
        lo, hi = self.bounds[i]
        return np.linspace(lo, hi, self.resolution + 1)

    @property
    def sampled_fraction(self) -> float:
        return float(np.mean(np.isfinite(self.values))) if self.values.size else 0.0


@dataclass
class Contour:
    """Polyline on the zero level set; ``points`` has shape (K, 2)."""
    points: np.ndarray
    closed: bool

    def to_list(self) -> List[List[float]]:
        return self.points.tolist()


def sample_field_2d(fn: CompiledFunction, bounds: Tuple[Tuple[float, float], Tuple[float, float]],
                    resolution: Optional[int] = None, scope: Optional[Mapping[str, float]] = None,
                    fill_nonfinite: Optional[float] = 1.0) -> ScalarField:
    """
    Evaluate ``fn(x, y)`` on a (resolution + 1)^2 grid.

    Non-finite samples are replaced by ``fill_nonfinite`` (positive, so they
    read as "outside" and produce no contour); pass None to keep them as NaN.
    """
    resolution = resolution or get_settings().contour_grid_size
    (x_min, x_max), (y_min, y_max) = bounds
    X, Y = np.meshgrid(np.linspace(x_min, x_max, resolution + 1),
                       np.linspace(y_min, y_max, resolution + 1), indexing="ij")
    values = fn.evaluate_grid(dict(scope or {}), x=X, y=Y)
    if fill_nonfinite is None:
        values = np.where(np.isfinite(values), values, np.nan)
    else:
        values = np.where(np.isfinite(values), values, fill_nonfinite)
    return ScalarField(values, ((x_min, x_max), (y_min, y_max)), resolution)


def sample_field_3d(fn: CompiledFunction, bounds: Optional[Bounds] = None,
                    resolution: Optional[int] = None, scope: Optional[Mapping[str, float]] = None,
                    time_budget: Optional[float] = None,
                    cancel: Optional[threading.Event] = None) -> ScalarField:
    """
    Evaluate ``fn(x, y, z)`` on a (resolution + 1)^3 grid, one x-slab at a time.

    After each slab the wall clock is compared to ``time_budget`` (seconds);
    once exceeded, sampling stops and the partially filled field is returned
    with ``timed_out=True``. A set ``cancel`` event raises RequestCancelled at
    the next slab boundary.
    """
    settings = get_settings()
    resolution = resolution or settings.implicit_resolution
    time_budget = settings.implicit_time_budget if time_budget is None else time_budget
    if bounds is None:
        view = (settings.implicit_view_min, settings.implicit_view_max)
        bounds = (view, view, view)

    n = resolution + 1
    xs, ys, zs = (np.linspace(lo, hi, n) for lo, hi in bounds)
    Y, Z = np.meshgrid(ys, zs, indexing="ij")
    values = np.full((n, n, n), np.nan)
    base = dict(scope or {})

    started = time.perf_counter()
    timed_out = False
    for ix, x in enumerate(xs):
        if cancel is not None and cancel.is_set():
            raise RequestCancelled(message_for("7000", "sample_implicit_field"), code="7000")
        slab = fn.evaluate_grid(base, x=x, y=Y, z=Z)
        values[ix] = np.where(np.isfinite(slab), slab, np.nan)
        if time.perf_counter() - started > time_budget and ix < n - 1:
            timed_out = True
            logger.warning("%s Stopped at %.2fs after %d/%d slabs", message_for("5000"),
                           time_budget, ix + 1, n)
            break
    return ScalarField(values, tuple(bounds), resolution, timed_out)


# -------------------- Extraction --------------------
def marching_squares(field: ScalarField) -> List[Contour]:
    """
    Zero level set of a 2D field as polylines in world coordinates.

    A polyline whose first and last points coincide is flagged closed.
    """
    if field.dims != 2:
        raise ValueError(f"marching_squares needs a 2D field, got {field.dims}D")
    values = np.where(np.isfinite(field.values), field.values, 1.0)
    if values.min() > 0 or values.max() < 0:
        return []
    (x_min, _), (y_min, _) = field.bounds
    dx, dy = field.spacing
    contours: List[Contour] = []
    for path in measure.find_contours(values, 0.0):
        if len(path) < 2:
            continue
        points = np.column_stack([x_min + path[:, 0] * dx, y_min + path[:, 1] * dy])
        closed = bool(np.allclose(path[0], path[-1]))
        contours.append(Contour(points, closed))
    return contours


def marching_cubes(field: ScalarField, max_triangles: Optional[int] = None) -> np.ndarray:
    """
    Zero isosurface of a 3D field as a (T, 3, 3) array: T triangles of three
    (x, y, z) vertices. Empty when the surface does not cross the field.
    """
    if field.dims != 3:
        raise ValueError(f"marching_cubes needs a 3D field, got {field.dims}D")
    max_triangles = max_triangles or get_settings().implicit_max_polygons
    empty = np.zeros((0, 3, 3))
    values = np.where(np.isfinite(field.values), field.values, 1.0)
    if values.min() > 0 or values.max() < 0 or min(values.shape) < 2:
        return empty
    try:
        verts, faces, _, _ = measure.marching_cubes(values, level=0.0, spacing=field.spacing)
    except (ValueError, RuntimeError) as exc:
        logger.debug("marching_cubes found no surface: %s", exc)
        return empty
    verts = verts + np.array([lo for lo, _ in field.bounds])
    triangles = verts[faces]
    if len(triangles) > max_triangles:
        logger.warning("Isosurface truncated from %d to %d triangles", len(triangles), max_triangles)
        triangles = triangles[:max_triangles]
    return triangles


def _crossing(a: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    with np.errstate(invalid='ignore', divide='ignore'):
        mask = (a * b <= 0) & (a != b)
        t = np.where(mask, np.abs(a) / (np.abs(a) + np.abs(b)), 0.0)
    return mask, t


def edge_crossings(field: ScalarField, max_points: Optional[int] = None) -> np.ndarray:
    """
    Unordered points on the zero level set of a 2D field.

    Every cell whose four corners are finite contributes one interpolated
    point per edge with a sign change (bottom, top, left, right). The result
    is stride-subsampled down to ``max_points`` rows of (x, y).
    """
    if field.dims != 2:
        raise ValueError(f"edge_crossings needs a 2D field, got {field.dims}D")
    max_points = max_points or get_settings().edge_crossing_max_points
    v = field.values
    v00, v10, v01, v11 = v[:-1, :-1], v[1:, :-1], v[:-1, 1:], v[1:, 1:]
    valid = np.isfinite(v00) & np.isfinite(v10) & np.isfinite(v01) & np.isfinite(v11)

    xs, ys = field.axis(0), field.axis(1)
    X0, Y0 = np.meshgrid(xs[:-1], ys[:-1], indexing="ij")
    X1, Y1 = np.meshgrid(xs[1:], ys[1:], indexing="ij")

    edges = [
        (v00, v10, lambda t: (X0 + t * (X1 - X0), Y0)),  # bottom
        (v01, v11, lambda t: (X0 + t * (X1 - X0), Y1)),  # top
        (v00, v01, lambda t: (X0, Y0 + t * (Y1 - Y0))),  # left
        (v10, v11, lambda t: (X1, Y0 + t * (Y1 - Y0))),  # right
    ]
    masks, points = [], []
    for a, b, place in edges:
        mask, t = _crossing(a, b)
        px, py = place(t)
        masks.append(mask & valid)
        points.append(np.stack([px, py], axis=-1))
    mask = np.stack(masks, axis=-1)      # (nx, ny, 4)
    pts = np.stack(points, axis=-2)      # (nx, ny, 4, 2)
    cloud = pts[mask]
    if len(cloud) > max_points:
        cloud = cloud[::math.ceil(len(cloud) / max_points)]
    return cloud

# End of implicit.py
