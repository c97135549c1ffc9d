import threading

import numpy as np
import pytest

from graph_engine.compiler import compile_implicit
from graph_engine.errors import RequestCancelled
from graph_engine.implicit import (
    edge_crossings,
    marching_cubes,
    marching_squares,
    sample_field_2d,
    sample_field_3d,
)

SQUARE = ((-2.0, 2.0), (-2.0, 2.0))


@pytest.fixture
def circle_field():
    return sample_field_2d(compile_implicit("x^2 + y^2 = 1"), SQUARE, 64)


def test_field_layout_is_x_major(circle_field):
    assert circle_field.values.shape == (65, 65)
    assert circle_field.spacing == (pytest.approx(0.0625), pytest.approx(0.0625))
    # x = -2, y = 0
    assert circle_field.values[0, 32] == pytest.approx(3)
    assert circle_field.values[32, 0] == pytest.approx(3)
    assert circle_field.values[32, 32] == pytest.approx(-1)


def test_unit_circle_contour(circle_field):
    contours = marching_squares(circle_field)
    assert len(contours) == 1
    assert contours[0].closed
    radii = np.hypot(contours[0].points[:, 0], contours[0].points[:, 1])
    assert np.all(np.abs(radii - 1) < 0.02)


def test_offset_ellipse_contour_is_in_world_coordinates():
    field = sample_field_2d(compile_implicit("(x - 1)^2 + (y + 0.5)^2/4 = 0.25"), SQUARE, 100)
    (contour,) = marching_squares(field)
    assert contour.points[:, 0].mean() == pytest.approx(1, abs=0.02)
    assert contour.points[:, 1].mean() == pytest.approx(-0.5, abs=0.02)


def test_no_contour_when_level_set_is_empty():
    field = sample_field_2d(compile_implicit("x^2 + y^2 = -1"), SQUARE, 32)
    assert marching_squares(field) == []


def test_non_finite_samples_read_as_outside():
    field = sample_field_2d(compile_implicit("sqrt(x) = y"), SQUARE, 40)
    assert np.isfinite(field.values).all()
    for contour in marching_squares(field):
        assert np.all(contour.points[:, 0] >= -0.1)


def test_open_contour_at_view_edge():
    field = sample_field_2d(compile_implicit("y = x + 0.33"), SQUARE, 40)
    (contour,) = marching_squares(field)
    assert not contour.closed


def test_edge_crossings_on_circle(circle_field):
    points = edge_crossings(circle_field)
    assert points.shape[1] == 2
    assert len(points) > 100
    radii = np.hypot(points[:, 0], points[:, 1])
    assert np.all(np.abs(radii - 1) < 0.02)


def test_edge_crossings_subsample(circle_field):
    assert len(edge_crossings(circle_field, max_points=50)) <= 50


def test_edge_crossings_skip_cells_with_undefined_corners():
    field = sample_field_2d(compile_implicit("sqrt(x) + y^2 = 1"), SQUARE, 40, fill_nonfinite=None)
    points = edge_crossings(field)
    assert len(points) > 0
    assert np.all(points[:, 0] >= -1e-12)


def test_sphere_isosurface():
    field = sample_field_3d(compile_implicit("x^2 + y^2 + z^2 = 4"), resolution=30)
    assert not field.timed_out
    assert field.values.shape == (31, 31, 31)
    triangles = marching_cubes(field)
    assert triangles.ndim == 3 and triangles.shape[1:] == (3, 3)
    assert len(triangles) > 0
    radii = np.linalg.norm(triangles.reshape(-1, 3), axis=1)
    assert np.all(np.abs(radii - 2) < 0.06)


def test_isosurface_triangle_cap():
    field = sample_field_3d(compile_implicit("x^2 + y^2 + z^2 = 4"), resolution=20)
    assert len(marching_cubes(field, max_triangles=10)) == 10


def test_isosurface_is_empty_without_crossing():
    field = sample_field_3d(compile_implicit("x^2 + y^2 + z^2 = -1"), resolution=10)
    assert marching_cubes(field).shape == (0, 3, 3)


def test_sampling_stops_at_time_budget(caplog):
    with caplog.at_level("WARNING", logger="graph_engine.implicit"):
        field = sample_field_3d(compile_implicit("x^2 + y^2 + z^2 = 4"), resolution=20, time_budget=0)
    assert field.timed_out
    assert "Scalar field sampling exceeded its time budget." in caplog.text
    assert np.isfinite(field.values[0]).all()
    assert np.isnan(field.values[-1]).all()
    assert field.sampled_fraction < 1


def test_sampling_honours_cancellation():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RequestCancelled):
        sample_field_3d(compile_implicit("x + y + z = 0"), resolution=10, cancel=cancel)


def test_scope_reaches_the_field():
    fn = compile_implicit("x^2 + y^2 = a")
    small = marching_squares(sample_field_2d(fn, SQUARE, 64, scope={"a": 0.25}))
    radii = np.hypot(small[0].points[:, 0], small[0].points[:, 1])
    assert np.all(np.abs(radii - 0.5) < 0.02)


def test_dimension_checks(circle_field):
    with pytest.raises(ValueError):
        marching_cubes(circle_field)
