import math

import numpy as np
import pytest

from graph_engine.regression import EXPONENTIAL, LINEAR, QUADRATIC, fit, r_squared


def test_linear_fit_of_exact_line():
    result = fit([[1, 2], [2, 4], [3, 6]])
    assert result.kind == LINEAR
    assert result.coefficients == [pytest.approx(2), pytest.approx(0, abs=1e-12)]
    assert result.r2 == pytest.approx(1)
    assert result.equation == "y = 2.0000x + 0.0000"


def test_linear_fit_with_noise_has_r2_below_one():
    result = fit([[0, 1], [1, 3], [2, 2], [3, 5]])
    assert 0 < result.r2 < 1
    assert result.evaluate(np.array([0.0, 1.0])).shape == (2,)


def test_all_equal_x_degrades_to_horizontal_line():
    result = fit([[1, 1], [1, 2], [1, 3]])
    assert result.coefficients == [0.0, pytest.approx(2)]
    assert result.r2 == pytest.approx(0)


def test_constant_y_has_perfect_r2():
    assert fit([[0, 5], [1, 5], [2, 5]]).r2 == 1.0


def test_quadratic_fit():
    xs = np.linspace(-2, 2, 9)
    points = [[x, 2 * x ** 2 - 3 * x + 1] for x in xs]
    result = fit(points, QUADRATIC)
    assert result.kind == QUADRATIC
    assert result.coefficients == pytest.approx([2, -3, 1])
    assert result.r2 == pytest.approx(1)
    assert result.evaluate(1.0) == pytest.approx(0, abs=1e-9)


def test_singular_quadratic_falls_back_to_linear():
    result = fit([[0, 1], [1, 3]], QUADRATIC)
    assert result.kind == LINEAR
    assert result.coefficients == [pytest.approx(2), pytest.approx(1)]


def test_exponential_fit():
    points = [[x, 3 * math.exp(0.5 * x)] for x in range(6)]
    result = fit(points, EXPONENTIAL)
    assert result.coefficients == pytest.approx([3, 0.5])
    assert result.r2 == pytest.approx(1)
    assert result.equation == "y = 3.0000e^(0.5000x)"


def test_exponential_fit_ignores_non_positive_y():
    points = [[0, 1], [1, math.e], [2, -4], [3, 0]]
    result = fit(points, EXPONENTIAL)
    assert result.coefficients == pytest.approx([1, 1])
    assert result.r2 < 1


def test_exponential_fit_without_positive_points():
    result = fit([[0, -1], [1, -2], [2, 3]], EXPONENTIAL)
    assert result.coefficients == [0.0, 0.0]
    assert result.equation == "N/A"
    assert result.r2 == 0.0
    assert math.isnan(result.evaluate(1.0))


def test_too_few_points():
    assert fit([[1, 2]]) is None
    assert fit([]) is None


def test_unknown_kind():
    with pytest.raises(ValueError):
        fit([[0, 0], [1, 1]], "cubic")


def test_r_squared():
    y = np.array([1.0, 2.0, 3.0])
    assert r_squared(y, y) == 1.0
    assert r_squared(y, np.full(3, 2.0)) == 0.0


def test_to_dict():
    assert fit([[0, 0], [1, 1]]).to_dict() == {
        "kind": "linear", "coefficients": [1.0, 0.0], "equation": "y = 1.0000x + 0.0000", "r2": 1.0,
    }
