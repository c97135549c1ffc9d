# symbolic_integration.py - rule based integration with a sympy fallback
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np
import sympy as sp
from sympy import Expr, Symbol, latex as sympy_latex

from . import numerics
from .compiler import CompiledFunction, parse_plain
from .config import get_settings
from .errors import ParseError, message_for

logger = logging.getLogger(__name__)

RuleResult = Optional[Tuple[Expr, str]]


# ------------------------ Result types ------------------------
@dataclass
class SymbolicTerm:
    """
    One additive term of the integrand.

    Attributes:
        coefficient: factor independent of the integration variable
        body: remaining variable-dependent part
        antiderivative: coefficient * F(body) once a rule matched
        steps: rewrite steps applied to this term
    """
    coefficient: Expr
    body: Expr
    antiderivative: Optional[Expr] = None
    steps: List[str] = field(default_factory=list)


@dataclass
class IntegrationResult:
    ok: bool
    result: Optional[str] = None
    steps: List[str] = field(default_factory=list)
    error: Optional[str] = None
    method: Optional[str] = None
    latex: Optional[str] = None
    value: Optional[float] = None


# ------------------------ Affine matcher ------------------------
def affine_factor(u: Expr, var: Symbol) -> Optional[Expr]:
    """Return ``a`` when ``u = a*var + b`` with a != 0, else None."""
    if not u.has(var):
        return None
    a = sp.diff(u, var)
    if a == 0 or a.has(var):
        return None
    return a


def square_of_affine(w: Expr, var: Symbol) -> Optional[Tuple[Expr, Expr]]:
    """
    Write ``w`` as ``u^2`` with ``u`` affine in ``var``.

    Returns (u, a) with ``a = du/dvar``, or None.
    """
    try:
        poly = sp.Poly(sp.expand(w), var)
    except sp.PolynomialError:
        return None
    if poly.degree() != 2:
        return None
    A, B, C = poly.all_coeffs()
    if any(c.has(var) for c in (A, B, C)) or sp.simplify(B ** 2 - 4 * A * C) != 0:
        return None
    if A.is_positive is not True:
        return None
    a = sp.sqrt(A)
    return a * var + B / (2 * a), a


# ------------------------ Rule table ------------------------
def _constant_rule(body: Expr, var: Symbol) -> RuleResult:
    if body.has(var):
        return None
    return body * var, "Applied power rule (n = 0)"


def _power_rule(body: Expr, var: Symbol) -> RuleResult:
    if body == var:
        return var ** 2 / 2, "Applied power rule (n = 1)"
    a = affine_factor(body, var)
    if a is not None:
        return body ** 2 / (2 * a), "Applied power rule (n = 1)"
    if not body.is_Pow:
        return None
    base, n = body.as_base_exp()
    a = affine_factor(base, var)
    if a is None or n.has(var):
        return None
    if n == -1:
        return sp.log(sp.Abs(base)) / a, "Applied logarithmic rule (∫ x^-1 dx = ln|x|)"
    return base ** (n + 1) / ((n + 1) * a), "Applied power rule"


def _exponential_rule(body: Expr, var: Symbol) -> RuleResult:
    if isinstance(body, sp.exp):
        a = affine_factor(body.args[0], var)
        if a is not None:
            return body / a, "Applied exponential rule"
        return None
    if body.is_Pow:
        base, u = body.as_base_exp()
        if base.has(var) or not (base.is_positive and base != 1):
            return None
        a = affine_factor(u, var)
        if a is not None:
            return body / (a * sp.log(base)), "Applied a^u rule"
    return None


_TRIG_TABLE: List[Tuple[type, Callable[[Expr], Expr], str]] = [
    (sp.sin, lambda u: -sp.cos(u), "∫ sin(u) du = -cos(u)"),
    (sp.cos, lambda u: sp.sin(u), "∫ cos(u) du = sin(u)"),
    (sp.tan, lambda u: -sp.log(sp.Abs(sp.cos(u))), "∫ tan(u) du = -ln|cos(u)|"),
    (sp.cot, lambda u: sp.log(sp.Abs(sp.sin(u))), "∫ cot(u) du = ln|sin(u)|"),
]


def _trig_rule(body: Expr, var: Symbol) -> RuleResult:
    for fn, antiderivative, step in _TRIG_TABLE:
        if isinstance(body, fn):
            a = affine_factor(body.args[0], var)
            if a is None:
                return None
            return antiderivative(body.args[0]) / a, step

    if body.is_Pow and body.exp == 2 and isinstance(body.base, (sp.sec, sp.csc)):
        u = body.base.args[0]
        a = affine_factor(u, var)
        if a is None:
            return None
        if isinstance(body.base, sp.sec):
            return sp.tan(u) / a, "∫ sec^2(u) du = tan(u)"
        return -sp.cot(u) / a, "∫ csc^2(u) du = -cot(u)"

    if body.is_Mul and len(body.args) == 2:
        first, second = sorted(body.args, key=lambda f: type(f).__name__)
        # sorted by class name: (sec, tan) and (cot, csc)
        if isinstance(first, sp.sec) and isinstance(second, sp.tan) and first.args == second.args:
            a = affine_factor(first.args[0], var)
            if a is not None:
                return sp.sec(first.args[0]) / a, "∫ sec(u)tan(u) du = sec(u)"
        if isinstance(first, sp.cot) and isinstance(second, sp.csc) and first.args == second.args:
            a = affine_factor(first.args[0], var)
            if a is not None:
                return -sp.csc(first.args[0]) / a, "∫ csc(u)cot(u) du = -csc(u)"
    return None


def _log_rule(body: Expr, var: Symbol) -> RuleResult:
    if not isinstance(body, sp.log) or len(body.args) != 1:
        return None
    u = body.args[0]
    a = affine_factor(u, var)
    if a is None:
        return None
    return u * (sp.log(u) - 1) / a, "Integrated ln(ax+b) via substitution"


def _inverse_trig_rule(body: Expr, var: Symbol) -> RuleResult:
    if not body.is_Pow:
        return None
    base, n = body.as_base_exp()
    if n == sp.Rational(-1, 2):
        matched = square_of_affine(1 - base, var)
        if matched:
            u, a = matched
            return sp.asin(u) / a, "∫ 1/sqrt(1-u^2) du = arcsin(u)"
    if n == -1:
        matched = square_of_affine(base - 1, var)
        if matched:
            u, a = matched
            return sp.atan(u) / a, "∫ 1/(1+u^2) du = arctan(u)"
    return None


RULES: List[Callable[[Expr, Symbol], RuleResult]] = [
    _constant_rule,
    _power_rule,
    _exponential_rule,
    _trig_rule,
    _log_rule,
    _inverse_trig_rule,
]


def integrate_term(term: Expr, var: Symbol) -> Optional[SymbolicTerm]:
    coefficient, body = term.as_independent(var, as_Add=False)
    st = SymbolicTerm(coefficient=coefficient, body=body)
    for rule in RULES:
        matched = rule(body, var)
        if matched is not None:
            antiderivative, step = matched
            st.antiderivative = coefficient * antiderivative
            st.steps.append(step)
            return st
    return None


# ------------------------ Formatting ------------------------
def format_expr(expr: Expr) -> str:
    """sympy str with ``^`` powers, ``ln`` and ``|u|`` bars."""
    s = sp.sstr(expr).replace("**", "^")
    s = re.sub(r"\bAbs\(([^()]*(?:\([^()]*\))?[^()]*)\)", r"|\1|", s)
    s = re.sub(r"\blog\(", "ln(", s)
    s = re.sub(r"\bE\b", "e", s)
    return s


def tidy(s: str) -> str:
    return s.replace("**", "^").replace("+ -", "- ").replace("+-", "-").replace("--", "+")


def join_terms(parts: List[str]) -> str:
    """Leading term keeps its sign, later terms are prefixed with '+ ' or '- '."""
    out = ""
    for i, part in enumerate(parts):
        if i == 0:
            out = part
        elif part.startswith("-"):
            out += f" - {part[1:].lstrip()}"
        else:
            out += f" + {part}"
    return out


def describe_failure(expression: str, variable: str, bounds: Optional[Tuple[float, float]] = None) -> str:
    suffix = f" on [{bounds[0]}, {bounds[1]}]" if bounds is not None else ""
    return f"{message_for('3000')}{expression} d{variable}{suffix}"


# ------------------------ Entry points ------------------------
def _normalize(expression: str) -> str:
    return re.sub(r"\s+", "", expression).replace("**", "^")


def _definite_value(antiderivative: Expr, var: Symbol, bounds: Tuple[float, float]) -> Optional[float]:
    a, b = (sp.sympify(v) for v in bounds)
    try:
        value = complex(sp.N(antiderivative.subs(var, b) - antiderivative.subs(var, a)))
    except (TypeError, ValueError):
        return None
    if abs(value.imag) > 1e-12 or not math.isfinite(value.real):
        return None
    return value.real


def _blows_up(expr: Expr, var: Symbol, point: Expr) -> bool:
    for direction in ("+", "-"):
        try:
            side = sp.limit(expr, var, point, direction)
        except Exception as exc:
            logger.debug("Limit of %s at %s%s failed: %s", expr, point, direction, exc)
            continue
        if side.has(sp.oo, -sp.oo, sp.zoo):
            return True
    return False


def interior_singularity(expr: Expr, var: Symbol, bounds: Tuple[float, float],
                         samples: Optional[int] = None) -> Optional[float]:
    """
    A point strictly inside ``bounds`` where ``expr`` is unbounded, or None.

    Candidates come from ``sympy.singularities`` and are kept only when a
    one-sided limit is infinite (so ``sin(x)/x`` at 0 is not one). When sympy
    cannot enumerate them, the integrand is sampled on the Simpson nodes and
    any infinite sample counts.
    """
    lo, hi = sorted(float(v) for v in bounds)
    if lo == hi:
        return None
    try:
        candidates = sp.singularities(expr, var, sp.Interval.open(lo, hi))
    except Exception as exc:
        logger.debug("singularities() failed on %s: %s", expr, exc)
        candidates = None
    if isinstance(candidates, sp.FiniteSet):
        points = sorted((p for p in candidates if p.is_number and p.is_real), key=float)
        for point in points[:10]:
            if _blows_up(expr, var, point):
                return float(point)
        return None
    if candidates is not None and candidates.is_empty:
        return None

    xs = np.linspace(lo, hi, (samples or get_settings().simpson_intervals) + 1)[1:-1]
    ys = CompiledFunction(expr, str(expr)).evaluate_grid(**{str(var): xs})
    hits = np.flatnonzero(np.isinf(ys))
    return float(xs[hits[0]]) if len(hits) else None


def _simpson_value(expr: Expr, variable: str, bounds: Tuple[float, float]) -> Optional[float]:
    """Composite Simpson value of the integrand, None when a node is infinite or none is finite."""
    fn = CompiledFunction(expr, str(expr))
    n = get_settings().simpson_intervals
    xs = np.linspace(float(bounds[0]), float(bounds[1]), n + n % 2 + 1)
    ys = fn.evaluate_grid(**{variable: xs})
    if np.isinf(ys).any() or not np.isfinite(ys).any():
        return None
    return numerics.simpson_integrate(fn, float(bounds[0]), float(bounds[1]), n, variable=variable)


def _integrate_definite(expr: Expr, expression: str, variable: str, bounds: Tuple[float, float],
                        symbolic: Optional[IntegrationResult], antiderivative: Optional[Expr]) -> IntegrationResult:
    var = Symbol(variable)
    singular = interior_singularity(expr, var, bounds)
    if singular is not None:
        logger.debug("Integrand %s is unbounded at %s = %g", expression, variable, singular)
        return IntegrationResult(
            ok=False, error=message_for("3002", f"{variable} = {singular:g}"),
            steps=[f"Integrand is unbounded at {variable} = {singular:g}, inside [{bounds[0]}, {bounds[1]}]"],
            method=symbolic.method if symbolic else None,
        )

    if symbolic is not None and antiderivative is not None:
        value = _definite_value(antiderivative, var, bounds)
        if value is not None:
            symbolic.value = value
            symbolic.steps.append(f"F({bounds[1]}) - F({bounds[0]}) = {value:.6f}")
            return symbolic

    value = _simpson_value(expr, variable, bounds)
    if value is None:
        return IntegrationResult(ok=False, error=describe_failure(expression, variable, bounds),
                                 steps=symbolic.steps if symbolic else [], method="simpson")
    a, b = bounds
    return IntegrationResult(
        ok=True,
        result=f"{value:.6f}",
        steps=(symbolic.steps if symbolic else []) + [
            f"Definite integral from {a} to {b}",
            f"Numerical result (Simpson's rule): {value:.6f}",
        ],
        method="simpson",
        latex=f"\\int_{{{a}}}^{{{b}}} {sympy_latex(expr)} \\, d{variable} \\approx {value:.6f}",
        value=value,
    )


def integrate(expression: str, variable: str = "x",
              bounds: Optional[Tuple[float, float]] = None) -> IntegrationResult:
    """
    Integrate ``expression`` with respect to ``variable``.

    Every additive term is matched against RULES first; when any term is not
    covered the whole integrand goes to sympy.integrate instead.

    With ``bounds`` the integral is definite. An integrand unbounded inside
    the interval is reported as divergent. Otherwise ``value = F(b) - F(a)``
    from the antiderivative, or composite Simpson (method ``"simpson"``) when
    no finite antiderivative value exists.

    Args:
        expression: plain-text integrand, e.g. ``"3*x^2 + 2*x + 1"``
        variable: integration variable name
        bounds: optional (a, b)
    """
    normalized = _normalize(expression)
    var = Symbol(variable)
    try:
        expr = sp.expand(parse_plain(normalized))
    except ParseError as exc:
        logger.debug("Integrand does not parse: %s", exc)
        return IntegrationResult(ok=False, error=describe_failure(expression, variable, bounds))

    result: Optional[IntegrationResult] = None
    antiderivative: Optional[Expr] = None
    failure = describe_failure(expression, variable, bounds)
    terms = [integrate_term(t, var) for t in expr.as_ordered_terms()]
    if all(t is not None for t in terms):
        antiderivative = sp.Add(*[t.antiderivative for t in terms])
        result = IntegrationResult(
            ok=True,
            result=tidy(join_terms([format_expr(t.antiderivative) for t in terms])),
            steps=[step for t in terms for step in t.steps],
            method="rules",
            latex=sympy_latex(antiderivative),
        )
    else:
        try:
            found = sp.integrate(expr, var)
        except Exception as exc:
            logger.debug("sympy.integrate failed on %s: %s", expression, exc)
            found = None
            failure = message_for("3001", str(exc))
        if found is not None and not found.has(sp.Integral):
            antiderivative = sp.simplify(found)
            result = IntegrationResult(
                ok=True,
                result=tidy(format_expr(antiderivative)),
                steps=["Evaluated using sympy symbolic integration"],
                method="sympy",
                latex=sympy_latex(antiderivative),
            )

    if bounds is not None:
        return _integrate_definite(expr, expression, variable, bounds, result, antiderivative)
    if result is None:
        return IntegrationResult(ok=False, error=failure)
    return result


def differentiate(expression: str, variable: str = "x") -> IntegrationResult:
    """Symbolic derivative; reported through the same result record."""
    var = Symbol(variable)
    try:
        expr = parse_plain(_normalize(expression))
    except ParseError as exc:
        return IntegrationResult(ok=False, error=str(exc))
    derivative = sp.simplify(sp.diff(expr, var))
    return IntegrationResult(
        ok=True,
        result=tidy(format_expr(derivative)),
        steps=[f"Differentiated with respect to {variable}"],
        method="sympy",
        latex=sympy_latex(derivative),
    )

# End of symbolic_integration.py
