import numpy as np
import pytest

from graph_engine.expressions import (
    ELIGIBLE_ANALYSES,
    Analysis,
    DomainRestriction,
    Expression,
    ExpressionKind,
    detect_kind,
    eligible_analyses,
    ode_order,
    parse_domain_restriction,
    parse_points,
    parse_slider,
)


@pytest.mark.parametrize("source, kind", [
    ("a = 3", ExpressionKind.SLIDER),
    ("k = -0.5", ExpressionKind.SLIDER),
    ("(1, 2), (3, 4)", ExpressionKind.POINTS),
    ("y < x^2", ExpressionKind.INEQUALITY),
    ("x^2 + y^2 >= 4", ExpressionKind.INEQUALITY),
    ("y' = y", ExpressionKind.DIFFERENTIAL),
    ("dy/dx = x*y", ExpressionKind.DIFFERENTIAL),
    ("y'' = -y", ExpressionKind.DIFFERENTIAL),
    ("sum(n, n, 1, 5)", ExpressionKind.SERIES),
    ("(cos(t), sin(t))", ExpressionKind.PARAMETRIC),
    ("r = 2cos(theta)", ExpressionKind.POLAR),
    ("x^2 + y^2 = 1", ExpressionKind.IMPLICIT),
    ("x = 3", ExpressionKind.IMPLICIT),
    ("y = x^2", ExpressionKind.ALGEBRAIC),
    ("sin(x)", ExpressionKind.ALGEBRAIC),
    ("x^2 {x > 0}", ExpressionKind.ALGEBRAIC),
])
def test_detect_kind(source, kind):
    assert detect_kind(source) is kind


def test_every_kind_has_an_analysis_entry():
    assert set(ELIGIBLE_ANALYSES) == set(ExpressionKind)
    for kind in ExpressionKind:
        assert isinstance(eligible_analyses(kind), frozenset)


def test_eligibility():
    assert Expression("y = x^2").is_eligible(Analysis.ROOTS)
    assert not Expression("y = x^2").is_eligible(Analysis.ISOSURFACE)
    assert Expression("(1, 2), (2, 3)").is_eligible(Analysis.REGRESSION)
    assert not Expression("a = 2").is_eligible(Analysis.PLOT)


def test_latex_expression_kind():
    assert Expression("\\frac{dy}{dx} = y", is_latex=True).kind is ExpressionKind.DIFFERENTIAL
    assert Expression("\\sum_{n=1}^{5} n", is_latex=True).kind is ExpressionKind.SERIES


def test_ode_order():
    assert ode_order("y'' = -y") == 2
    assert ode_order("y' = y") == 1


def test_parse_slider_and_points():
    assert parse_slider("b = 2.5") == ("b", 2.5)
    assert parse_slider("y = 2") is None
    assert parse_points("(1, 2), (3.5, -4)") == [(1.0, 2.0), (3.5, -4.0)]
    assert parse_points("(1, 2), x") == []


def test_parse_domain_restriction():
    body, r = parse_domain_restriction("x^2 {-1 < x <= 1}")
    assert body == "x^2"
    assert r == DomainRestriction(lower=-1.0, upper=1.0, lower_strict=True, upper_strict=False)
    mask = r.mask(np.array([-1.0, 0.0, 1.0, 2.0]))
    assert mask.tolist() == [False, True, True, False]

    _, excluded = parse_domain_restriction("1/x {x != 0}")
    assert not excluded.contains(0.0)
    assert excluded.contains(0.1)

    assert parse_domain_restriction("x + 1") == ("x + 1", None)


def test_unsupported_restriction_is_logged_and_ignored(caplog):
    with caplog.at_level("DEBUG", logger="graph_engine.expressions"):
        body, restriction = parse_domain_restriction("x^2 {x > a}")
    assert (body, restriction) == ("x^2", None)
    assert "Unsupported domain restriction: x > a" in caplog.text
