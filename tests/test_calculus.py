import math

import numpy as np
import pytest

from graph_engine.calculus import numerical_limit, taylor_expansion, taylor_latex
from graph_engine.errors import DomainError, ParseError


# -------------------- Taylor expansion --------------------
def test_maclaurin_series_of_sine():
    result = taylor_expansion("sin(x)", order=5)
    assert result.coefficients == pytest.approx([0, 1, 0, -1 / 6, 0, 1 / 120])
    assert result.latex == "x - 0.1667x^{3} + 0.0083x^{5}"
    assert result.steps[-1] == "T(x) = x - 0.1667x^{3} + 0.0083x^{5}"


def test_expansion_around_a_shifted_center():
    result = taylor_expansion("e^x", center=1, order=2)
    assert result.coefficients == pytest.approx([math.e, math.e, math.e / 2])
    assert result.latex == "2.7183 + 2.7183(x-1) + 1.3591(x-1)^{2}"
    assert taylor_expansion("x^2", center=-2, order=2).latex == "4.0000 - 4.0000(x+2) + (x+2)^{2}"


def test_polynomial_evaluates_near_the_center():
    result = taylor_expansion("cos(x)", order=8)
    xs = np.array([-0.3, 0.0, 0.2])
    assert np.allclose(result.evaluate(xs), np.cos(xs), atol=1e-9)
    assert result.evaluate(0.1) == pytest.approx(math.cos(0.1))


def test_removable_singularity_at_center_has_a_series():
    result = taylor_expansion("sin(x)/x", order=4)
    assert result.coefficients == pytest.approx([1, 0, -1 / 6, 0, 1 / 120])


def test_order_is_capped():
    assert len(taylor_expansion("e^x", order=25).coefficients) == 11
    assert taylor_expansion("e^x", order=0).latex == "1.0000"


@pytest.mark.parametrize("expression", ["ln(x)", "1/x"])
def test_no_series_at_a_pole_or_branch_point(expression):
    with pytest.raises(DomainError) as info:
        taylor_expansion(expression, center=0)
    assert info.value.code == "4000"
    assert info.value.message.startswith("Evaluation outside of domain: ")


def test_unparseable_expression():
    with pytest.raises(ParseError):
        taylor_expansion("sin(")


def test_taylor_latex_of_zero_polynomial():
    assert taylor_latex([0.0, 1e-13, 0.0]) == "0"
    assert taylor_latex([0.0, -1.0, 2.5]) == "-x + 2.5000x^{2}"


# -------------------- Limits --------------------
def test_limit_of_removable_singularity():
    result = numerical_limit("sin(x)/x", approach=0)
    assert result.exists
    assert result.value == pytest.approx(1, abs=1e-6)
    assert result.left == pytest.approx(1, abs=1e-6)
    assert result.right == pytest.approx(1, abs=1e-6)


def test_jump_has_no_limit():
    result = numerical_limit("abs(x)/x", approach=0)
    assert not result.exists
    assert math.isnan(result.value)
    assert result.left == pytest.approx(-1)
    assert result.right == pytest.approx(1)


def test_limit_uses_scope_and_other_variables():
    result = numerical_limit("(t^2 - a^2)/(t - a)", variable="t", approach=3, scope={"a": 3})
    assert result.value == pytest.approx(6, abs=1e-4)


def test_one_sided_domain_gives_no_limit():
    result = numerical_limit("sqrt(x)", approach=0)
    assert math.isnan(result.left)
    assert result.right == pytest.approx(0, abs=1e-4)
    assert not result.exists


def test_limit_point_must_be_finite():
    with pytest.raises(DomainError):
        numerical_limit("x", approach=float("inf"))
