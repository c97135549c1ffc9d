# calculus.py - Taylor expansions and numerical limits
"""
Local behaviour of a single-variable expression.

taylor_expansion expands around a center with sympy ``series`` and reports the
coefficients c_n of sum c_n (x - center)^n together with a LaTeX polynomial.
numerical_limit approaches a point from both sides through the compiled
evaluator and only reports a value when both sides agree.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Union

import numpy as np
import sympy as sp

from .compiler import CompiledFunction, parse_plain
from .errors import DomainError, message_for

logger = logging.getLogger(__name__)

MAX_ORDER = 10
LIMIT_STEPS = (1e-3, 1e-5, 1e-7, 1e-9)
LIMIT_TOLERANCE = 1e-4


# -------------------- Taylor expansion --------------------
@dataclass
class TaylorResult:
    """
    Attributes:
        coefficients: c_0 .. c_order, c_n = f^(n)(center) / n!
        latex: the polynomial, terms below 1e-12 omitted ("0" when all are)
        steps: display lines for the solver panel
    """
    expression: str
    variable: str
    center: float
    order: int
    coefficients: List[float] = field(default_factory=list)
    latex: str = "0"
    steps: List[str] = field(default_factory=list)

    def evaluate(self, x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        return np.polynomial.polynomial.polyval(np.asarray(x, dtype=float) - self.center, self.coefficients)


def _format_coefficient(c: float, n: int) -> str:
    if n > 0 and abs(c) == 1:
        return "-" if c < 0 else ""
    return f"{c:.4f}"


def _base(variable: str, center: float) -> str:
    if center == 0:
        return variable
    if center < 0:
        return f"({variable}+{-center:g})"
    return f"({variable}-{center:g})"


def taylor_latex(coefficients: List[float], variable: str = "x", center: float = 0.0) -> str:
    terms = []
    for n, c in enumerate(coefficients):
        if abs(c) < 1e-12:
            continue
        coefficient = _format_coefficient(c, n)
        if n == 0:
            terms.append(coefficient)
        else:
            power = f"^{{{n}}}" if n > 1 else ""
            terms.append(f"{coefficient}{_base(variable, center)}{power}")
    return " + ".join(terms).replace("+ -", "- ") or "0"


def taylor_expansion(expression: str, variable: str = "x", center: float = 0.0,
                     order: int = 5) -> TaylorResult:
    """
    Taylor polynomial of ``expression`` around ``center`` up to ``order`` (capped at 10).

    Raises:
        ParseError: the expression does not parse
        DomainError: the expression is undefined at the center or has no
                     power series there (ln(x) at 0, sqrt(x) at 0)
    """
    order = max(0, min(int(order), MAX_ORDER))
    expr = parse_plain(expression)
    var = sp.Symbol(variable)
    c = sp.nsimplify(center, rational=True)

    at_center = expr.subs(var, c)
    if at_center.has(sp.oo, -sp.oo, sp.zoo):
        raise DomainError(message_for("4000", f"{expression} at {variable} = {center:g}"),
                          code="4000", equation=expression)

    d = sp.Dummy("d")
    try:
        polynomial = sp.series(expr, var, c, order + 1).removeO()
        poly = sp.Poly(sp.expand(polynomial.subs(var, c + d)), d)
    except (sp.PolynomialError, NotImplementedError, ValueError, TypeError) as exc:
        logger.debug("No power series for %s at %s: %s", expression, center, exc)
        raise DomainError(message_for("4000", f"{expression} at {variable} = {center:g}"),
                          code="4000", equation=expression) from exc

    coefficients = []
    for n in range(order + 1):
        try:
            value = float(poly.coeff_monomial(d ** n))
        except TypeError:
            value = float("nan")
        coefficients.append(value if math.isfinite(value) else 0.0)

    latex = taylor_latex(coefficients, variable, center)
    steps = [
        f"Given: f({variable}) = {expression}",
        f"Taylor expansion around {variable} = {center:g}, order {order}",
        f"T({variable}) = {latex}",
    ]
    return TaylorResult(expression, variable, float(center), order, coefficients, latex, steps)


# -------------------- Limits --------------------
@dataclass
class LimitResult:
    value: float
    left: float
    right: float

    @property
    def exists(self) -> bool:
        return math.isfinite(self.value)


def _last_finite(values: np.ndarray) -> float:
    finite = values[np.isfinite(values)]
    return float(finite[-1]) if finite.size else float("nan")


def numerical_limit(expression: str, variable: str = "x", approach: float = 0.0,
                    scope: Optional[Mapping[str, float]] = None) -> LimitResult:
    """
    Two-sided limit from samples at approach -/+ 1e-3, 1e-5, 1e-7, 1e-9.

    Each side takes its closest finite sample. The limit is their mean when
    both exist and differ by less than 1e-4, NaN otherwise.
    """
    if not math.isfinite(approach):
        raise DomainError(message_for("4000", f"{expression} at {variable} = {approach}"),
                          code="4000", equation=expression)
    expr = parse_plain(expression)
    fn = CompiledFunction(expr, expression)
    steps = np.array(LIMIT_STEPS)
    base = dict(scope or {})
    right = _last_finite(fn.evaluate_grid(base, **{variable: approach + steps}))
    left = _last_finite(fn.evaluate_grid(base, **{variable: approach - steps}))
    if math.isfinite(left) and math.isfinite(right) and abs(right - left) < LIMIT_TOLERANCE:
        value = (left + right) / 2
    else:
        value = float("nan")
    logger.debug("lim %s -> %s of %s: left=%s right=%s", variable, approach, expression, left, right)
    return LimitResult(value, left, right)


def limit_steps(expression: str, variable: str, approach: float, result: LimitResult) -> List[str]:
    def show(v: float) -> str:
        return f"{v:.6f}" if math.isfinite(v) else "DNE"

    return [
        f"Given: f({variable}) = {expression}",
        f"Compute limit as {variable} → {approach:g}",
        f"Left limit: {show(result.left)}",
        f"Right limit: {show(result.right)}",
        f"Limit = {show(result.value)}",
    ]

# End of calculus.py
