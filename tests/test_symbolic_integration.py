import pytest
import sympy as sp

from graph_engine.compiler import parse_plain
from graph_engine.symbolic_integration import (
    affine_factor,
    differentiate,
    integrate,
    integrate_term,
    interior_singularity,
    join_terms,
    square_of_affine,
    tidy,
)

x = sp.Symbol("x")


def test_polynomial_uses_power_rule_per_term():
    result = integrate("3*x^2 + 2*x + 1")
    assert result.ok
    assert result.result == "x^3 + x^2 + x"
    assert result.method == "rules"
    assert len(result.steps) == 3
    assert all("power rule" in step for step in result.steps)


@pytest.mark.parametrize("integrand, expected, step", [
    ("cos(2x)", "sin(2*x)/2", "∫ cos(u) du = sin(u)"),
    ("1/(1 + x^2)", "atan(x)", "∫ 1/(1+u^2) du = arctan(u)"),
    ("1/sqrt(1 - x^2)", "asin(x)", "∫ 1/sqrt(1-u^2) du = arcsin(u)"),
    ("sec(x)^2", "tan(x)", "∫ sec^2(u) du = tan(u)"),
    ("e^(3x)", "exp(3*x)/3", "Applied exponential rule"),
])
def test_rule_table(integrand, expected, step):
    result = integrate(integrand)
    assert result.ok
    assert result.result == expected
    assert result.steps == [step]


def test_reciprocal_gives_log_of_absolute_value():
    result = integrate("1/x")
    assert result.ok
    assert "ln(|x|)" in result.result


def test_log_rule():
    result = integrate("ln(x)")
    assert result.steps == ["Integrated ln(ax+b) via substitution"]
    F = parse_plain(result.result)
    assert sp.simplify(sp.diff(F, x) - sp.log(x)) == 0


def test_non_affine_argument_falls_back_to_sympy():
    assert integrate_term(sp.sin(x ** 2) * 2, x) is None
    result = integrate("x*e^x")
    assert result.ok
    assert result.method == "sympy"
    assert result.steps == ["Evaluated using sympy symbolic integration"]


def test_failure_message():
    result = integrate("x^x")
    assert not result.ok
    assert result.error == "Could not determine a symbolic integral for x^x dx"


def test_unparseable_integrand():
    result = integrate("sin(")
    assert not result.ok
    assert result.error.startswith("Could not determine a symbolic integral for")


def test_definite_integral_value():
    result = integrate("x^2", bounds=(0, 3))
    assert result.ok
    assert result.value == pytest.approx(9)


@pytest.mark.parametrize("integrand", ["x^3 + 2*x", "sin(x)", "e^(2x)", "5", "x*cos(x)"])
def test_derivative_of_antiderivative_recovers_integrand(integrand):
    result = integrate(integrand)
    assert result.ok
    F = parse_plain(result.result)
    assert sp.simplify(sp.diff(F, x) - parse_plain(integrand)) == 0


def test_differentiate():
    result = differentiate("x^3")
    assert result.ok
    assert result.result == "3*x^2"
    assert result.latex == "3 x^{2}"


def test_affine_helpers():
    assert affine_factor(3 * x + 1, x) == 3
    assert affine_factor(x ** 2, x) is None
    assert affine_factor(sp.Integer(4), x) is None
    u, a = square_of_affine(4 * x ** 2 + 4 * x + 1, x)
    assert a == 2
    assert sp.expand(u - (2 * x + 1)) == 0
    assert square_of_affine(x ** 2 + 1, x) is None


def test_join_and_tidy():
    assert join_terms(["x^2", "-3*x", "1"]) == "x^2 - 3*x + 1"
    assert tidy("x + -1") == "x - 1"
    assert tidy("x--1") == "x+1"


# -------------------- Definite integrals --------------------
def test_definite_integral_without_antiderivative_uses_simpson():
    result = integrate("x^x", bounds=(0, 1))
    assert result.ok
    assert result.method == "simpson"
    assert result.value == pytest.approx(0.78343, abs=1e-4)
    assert any(step.startswith("Numerical result (Simpson's rule)") for step in result.steps)


def test_removable_singularity_is_integrated_numerically():
    result = integrate("sin(x)/x", bounds=(-1, 1))
    assert result.ok
    assert result.value == pytest.approx(1.892166, abs=1e-5)


@pytest.mark.parametrize("integrand, bounds, point", [
    ("1/x", (-1, 1), "x = 0"),
    ("1/(x - 2)^2", (0, 3), "x = 2"),
])
def test_interior_singularity_is_reported_as_divergent(integrand, bounds, point):
    result = integrate(integrand, bounds=bounds)
    assert not result.ok
    assert result.value is None
    assert result.error == f"Integral diverges, the integrand is unbounded at {point}"


def test_endpoint_singularity_has_no_value():
    result = integrate("1/x", bounds=(0, 1))
    assert not result.ok
    assert result.value is None


def test_interior_singularity_helper():
    assert interior_singularity(1 / x, x, (-1, 1)) == pytest.approx(0)
    assert interior_singularity(sp.sin(x) / x, x, (-1, 1)) is None
    assert interior_singularity(x ** 2, x, (0, 3)) is None
    assert interior_singularity(1 / x, x, (2, 2)) is None


@pytest.mark.parametrize("polynomial", [
    "x^2", "3x^3 - 2x + 7", "x^5 - x^4 + 2", "x^4 + 4", "0.5x^2 + x", "(x + 1)^3",
])
def test_integrating_the_derivative_recovers_the_polynomial(polynomial):
    derivative = differentiate(polynomial)
    assert derivative.ok
    recovered = integrate(derivative.result)
    assert recovered.ok
    difference = sp.simplify(parse_plain(recovered.result) - parse_plain(polynomial))
    assert sp.diff(difference, x) == 0


def test_symbolic_engine_failure_is_reported(monkeypatch):
    def broken(*args, **kwargs):
        raise NotImplementedError("no algorithm")

    monkeypatch.setattr(sp, "integrate", broken)
    result = integrate("x*e^x")
    assert not result.ok
    assert result.error == "Symbolic engine failed: no algorithm"
    definite = integrate("x*e^x", bounds=(0, 1))
    assert definite.ok
    assert definite.method == "simpson"
    assert definite.value == pytest.approx(1.0, abs=1e-6)
