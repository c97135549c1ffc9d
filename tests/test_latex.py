import math

import pytest
import sympy as sp

from graph_engine.compiler import compile_expression
from graph_engine.errors import ParseError
from graph_engine.latex import LaTeXConverter


def value_of(latex, **scope):
    f = compile_expression(latex, is_latex=True)
    assert f is not None, latex
    return f(scope)


@pytest.mark.parametrize("variants", [
    ("\\frac{1}{2}x", "\\dfrac{1}{2}x", "\\tfrac{1}{2}x", "\\frac12 x"),
    ("\\left|x\\right|", "\\abs{x}", "|x|"),
    ("2\\cdot x", "2\\times x", "2x"),
])
def test_synonyms_compile_identically(variants):
    values = [value_of(v, x=-3.0) for v in variants]
    assert all(v == pytest.approx(values[0]) for v in values)


@pytest.mark.parametrize("latex, scope, expected", [
    ("\\sqrt[3]{27}", {}, 3),
    ("\\sin^{-1}(1)", {}, math.pi / 2),
    ("\\sin^2(x) + \\cos^2(x)", {"x": 0.7}, 1),
    ("\\log_{2}(8)", {}, 3),
    ("\\log(1000)", {}, 3),
    ("\\ln(e)", {}, 1),
    ("\\pi", {}, math.pi),
    ("\\frac{x}{\\sqrt{x}}", {"x": 9}, 3),
    ("\\sum_{n=1}^{10} n", {}, 55),
    ("\\prod_{k=1}^{4} k", {}, 24),
    ("\\int_0^1 x^2 dx", {}, 1 / 3),
    ("\\operatorname{sinh}(0)", {}, 0),
    ("\\sin\\theta", {"theta": math.pi / 6}, 0.5),
    ("e^{2x}", {"x": 0.5}, math.e),
])
def test_macros_evaluate(latex, scope, expected):
    assert value_of(latex, **scope) == pytest.approx(expected)


def test_unknown_macro_is_rejected():
    assert LaTeXConverter.to_plain("\\foo{x}") is None
    with pytest.raises(ParseError) as info:
        LaTeXConverter.convert("\\foo{x}")
    assert info.value.code == "2002"
    assert compile_expression("\\foo{x}", is_latex=True) is None


def test_unbalanced_braces_are_rejected():
    with pytest.raises(ParseError) as info:
        LaTeXConverter.convert("\\frac{1}{2")
    assert info.value.code == "2001"


def test_series_without_bounds_is_rejected():
    with pytest.raises(ParseError) as info:
        LaTeXConverter.convert("\\sum n")
    assert info.value.code == "2003"


def test_normalize_derivative_notation():
    assert LaTeXConverter.normalize("\\frac{dy}{dx} = y") == "y' = y"
    assert LaTeXConverter.normalize("\\frac{d^2y}{dx^2} = -y") == "y'' = -y"


def test_from_plain_and_from_expr():
    x = sp.Symbol("x")
    assert LaTeXConverter.from_expr(x ** 2) == "x^{2}"
    assert LaTeXConverter.from_plain("x^2") == "x^{2}"
    assert LaTeXConverter.from_plain("(x +") == "(x +"


def test_export_writes_display_math(tmp_path):
    target = tmp_path / "result.tex"
    LaTeXConverter.export(sp.sin(sp.Symbol("x")), str(target))
    assert target.read_text() == "\\[\\sin{\\left(x \\right)}\\]"
