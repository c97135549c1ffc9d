# compiler.py - expression compiler: text/LaTeX -> numeric evaluators
"""
Expression compiler.

Sources are parsed with sympy (implicit multiplication, ``^`` as power,
``|x|`` absolute value, ``sum``/``prod`` with literal bounds) and lambdified
to numpy. A CompiledFunction never raises: domain faults and evaluation
errors come back as NaN, parse failures make ``compile_expression`` return
None.
"""
import logging
import re
import string
from functools import lru_cache
from graphlib import CycleError, TopologicalSorter
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import sympy as sp
from sympy import Expr, Symbol
from sympy.core.function import AppliedUndef
from sympy.parsing.sympy_parser import (
    convert_xor,
    function_exponentiation,
    implicit_application,
    implicit_multiplication,
    parse_expr,
    split_symbols,
    standard_transformations,
)

from .config import get_settings
from .errors import ParseError, message_for
from .expressions import DomainRestriction, parse_domain_restriction, parse_slider
from .latex import LaTeXConverter

logger = logging.getLogger(__name__)

Scope = Mapping[str, float]

TRANSFORMATIONS = standard_transformations + (
    convert_xor, split_symbols, implicit_multiplication, implicit_application, function_exponentiation,
)

_GREEK = ("theta", "phi", "alpha", "beta", "gamma", "delta", "mu", "sigma", "omega", "tau")
_RESERVED = {"x", "y", "z", "t", "r", "e"}


# ------------------------ Series and calculus helpers ------------------------
def _literal_bounds(lo, hi, source: str) -> Tuple[int, int]:
    if not (isinstance(lo, sp.Integer) and isinstance(hi, sp.Integer)):
        raise ParseError(message_for("2003", source), code="2003", equation=source)
    return int(lo), int(hi)


def _series_sum(body, index, lo, hi) -> Expr:
    lo, hi = _literal_bounds(lo, hi, f"sum({body}, {index}, {lo}, {hi})")
    if hi - lo + 1 > get_settings().max_series_terms:
        return sp.nan
    return sp.Add(*[sp.sympify(body).subs(index, k) for k in range(lo, hi + 1)])


def _series_prod(body, index, lo, hi) -> Expr:
    lo, hi = _literal_bounds(lo, hi, f"prod({body}, {index}, {lo}, {hi})")
    if hi - lo + 1 > get_settings().max_series_terms:
        return sp.nan
    return sp.Mul(*[sp.sympify(body).subs(index, k) for k in range(lo, hi + 1)])


def _integral(body, var, lo=None, hi=None) -> Expr:
    if lo is None:
        result = sp.integrate(body, var)
    else:
        result = sp.integrate(body, (var, lo, hi))
    if result.has(sp.Integral):
        raise ParseError(message_for("3000", f"{body} d{var}"), code="3000")
    return result


def _nth_root(value, n) -> Expr:
    return sp.real_root(value, n)


def _log10(value) -> Expr:
    return sp.log(value, 10)


def _base_namespace() -> Dict[str, object]:
    ns: Dict[str, object] = {c: Symbol(c) for c in string.ascii_letters}
    ns.update({g: Symbol(g) for g in _GREEK + ("yp",)})
    ns.update({
        "e": sp.E, "pi": sp.pi,
        "ln": sp.log, "log": sp.log, "log10": _log10, "exp": sp.exp,
        "sqrt": sp.sqrt, "nthRoot": _nth_root, "abs": sp.Abs,
        "floor": sp.floor, "ceil": sp.ceiling, "sign": sp.sign,
        "sin": sp.sin, "cos": sp.cos, "tan": sp.tan, "sec": sp.sec, "csc": sp.csc, "cot": sp.cot,
        "asin": sp.asin, "acos": sp.acos, "atan": sp.atan,
        "arcsin": sp.asin, "arccos": sp.acos, "arctan": sp.atan,
        "asec": sp.asec, "acsc": sp.acsc, "acot": sp.acot,
        "sinh": sp.sinh, "cosh": sp.cosh, "tanh": sp.tanh,
        "asinh": sp.asinh, "acosh": sp.acosh, "atanh": sp.atanh,
        "sum": _series_sum, "prod": _series_prod, "int": _integral,
        "diff": sp.diff, "derivative": sp.diff,
    })
    return ns


_NAMESPACE = _base_namespace()


# ------------------------ Source preprocessing ------------------------
def check_balanced(source: str) -> None:
    depth = 0
    for ch in source:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        raise ParseError(message_for("2001", source), code="2001", equation=source)


def replace_abs_bars(source: str) -> str:
    """Rewrite ``|u|`` as ``abs(u)``. A bar opens after an operator or at the start, otherwise it closes."""
    out: List[str] = []
    open_bars = 0
    prev = ""
    for ch in source:
        if ch == "|":
            if open_bars and prev not in "+-*/^(,|" and prev != "":
                out.append(")")
                open_bars -= 1
            else:
                out.append("abs(")
                open_bars += 1
            prev = "(" if out[-1] == "abs(" else ")"
            continue
        out.append(ch)
        if not ch.isspace():
            prev = ch
    if open_bars:
        raise ParseError(message_for("2001", source), code="2001", equation=source)
    return "".join(out)


_DEFINITIONS = {
    "2d": re.compile(r"^\s*(?:y|[a-zA-Z]\s*\(\s*x\s*\))\s*=(?!=)"),
    "3d": re.compile(r"^\s*(?:z|[a-zA-Z]\s*\(\s*x\s*,\s*y\s*\))\s*=(?!=)"),
    "polar": re.compile(r"^\s*r\s*(?:\(\s*theta\s*\))?\s*=(?!=)"),
}


def strip_definition(source: str, mode: str = "auto") -> str:
    """Drop a leading ``y =``, ``f(x) =``, ``z =`` or ``r =`` according to ``mode``."""
    if mode == "none":
        return source
    patterns = _DEFINITIONS.values() if mode == "auto" else [_DEFINITIONS[mode]]
    for pattern in patterns:
        m = pattern.match(source)
        if m:
            return source[m.end():]
    return source


def parse_plain(source: str, namespace: Optional[Dict[str, object]] = None) -> Expr:
    """Parse plain infix text to a sympy expression. Raises ParseError."""
    if not source or not source.strip():
        raise ParseError(message_for("2000"), code="2000")
    check_balanced(source)
    text = replace_abs_bars(source)
    local_dict = dict(_NAMESPACE)
    if namespace:
        local_dict.update(namespace)
    try:
        expr = parse_expr(text, local_dict=local_dict, transformations=TRANSFORMATIONS)
    except ParseError:
        raise
    except Exception as exc:
        raise ParseError(message_for("2004", source), code="2004", equation=source) from exc
    return expr


# ------------------------ Compiled function ------------------------
class CompiledFunction:
    """
    Pure numeric evaluator over a variable scope.

    Attributes:
        expr: sympy expression being evaluated
        source: plain-text source it was compiled from
        variables: free symbol names, sorted; these are the scope keys read
        restriction: optional domain restriction on ``x``
    """
    def __init__(self, expr: Expr, source: str, restriction: Optional[DomainRestriction] = None):
        self.expr = expr
        self.source = source
        self.restriction = restriction
        self.variables: Tuple[str, ...] = tuple(sorted(str(s) for s in expr.free_symbols))
        self._fn = sp.lambdify([Symbol(v) for v in self.variables], expr, 'numpy')

    def __repr__(self) -> str:
        return f"<CompiledFunction {self.expr} of {self.variables}>"

    def __call__(self, scope: Optional[Scope] = None, **values: float) -> float:
        merged = {**(scope or {}), **values}
        args = [np.float64(merged.get(v, np.nan)) for v in self.variables]
        try:
            with np.errstate(all='ignore'):
                value = self._fn(*args)
            value = _to_real(value)
        except Exception as exc:
            logger.debug("Evaluation of %s failed: %s", self.source, exc)
            return float("nan")
        if self.restriction is not None and "x" in merged:
            if not self.restriction.contains(float(merged["x"])):
                return float("nan")
        return value

    def evaluate_grid(self, scope: Optional[Mapping[str, Union[float, np.ndarray]]] = None,
                      **arrays: Union[float, np.ndarray]) -> np.ndarray:
        """
        Vectorized evaluation. Scope values may be arrays; the result has their
        broadcast shape. Failing elements become NaN.
        """
        merged = {k: np.asarray(v, dtype=float) for k, v in {**(scope or {}), **arrays}.items()}
        shape = np.broadcast_shapes(*(a.shape for a in merged.values())) if merged else ()
        args = [merged.get(v, np.float64(np.nan)) for v in self.variables]
        try:
            with np.errstate(all='ignore'):
                raw = self._fn(*args)
            if np.iscomplexobj(raw):
                raw = np.where(np.abs(np.imag(raw)) > 1e-12, np.nan, np.real(raw))
            out = np.array(np.broadcast_to(np.asarray(raw, dtype=float), shape))
        except Exception as exc:
            logger.debug("Vectorized evaluation of %s failed (%s), falling back to elementwise", self.source, exc)
            flat = {k: np.broadcast_to(a, shape).ravel() for k, a in merged.items()}
            size = int(np.prod(shape)) if shape else 1
            out = np.array(
                [self({k: float(a[i]) for k, a in flat.items()}) for i in range(size)], dtype=float,
            ).reshape(shape)
        if self.restriction is not None and "x" in merged:
            out = np.where(self.restriction.mask(np.broadcast_to(merged["x"], shape)), out, np.nan)
        return out


def _to_real(value) -> float:
    if isinstance(value, (complex, np.complexfloating)):
        if abs(value.imag) > 1e-12:
            return float("nan")
        value = value.real
    return float(value)


# ------------------------ User-defined functions ------------------------
_DEFINITION_RE = re.compile(r"^\s*([a-zA-Z])\s*\(\s*([a-z](?:\s*,\s*[a-z])*)\s*\)\s*=(?!=)(.+)$")


class FunctionRegistry:
    """
    User-defined functions ``f(x) = body`` shared by an expression set.

    Definitions may reference each other. They are resolved in dependency
    order; definitions taking part in a cycle (including self reference) are
    rejected and stay undefined, so expressions calling them fail to compile.
    """
    def __init__(self):
        self._definitions: Dict[str, Tuple[Tuple[str, ...], str]] = {}

    def define(self, source: str) -> Optional[str]:
        """Register ``source`` if it is a function definition; returns the function name."""
        m = _DEFINITION_RE.match(source)
        if not m or m.group(1) in _RESERVED:
            return None
        params = tuple(p.strip() for p in m.group(2).split(","))
        self._definitions[m.group(1)] = (params, m.group(3).strip())
        return m.group(1)

    def remove(self, name: str) -> None:
        self._definitions.pop(name, None)

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def snapshot(self) -> Tuple[Tuple[str, Tuple[str, ...], str], ...]:
        return tuple(sorted((n, p, b) for n, (p, b) in self._definitions.items()))

    def resolve(self) -> Tuple[Dict[str, sp.Lambda], Tuple[str, ...]]:
        """Return (resolved lambdas, rejected names)."""
        return resolve_definitions(self.snapshot())

    @property
    def rejected(self) -> Tuple[str, ...]:
        return self.resolve()[1]


@lru_cache(maxsize=32)
def resolve_definitions(snapshot) -> Tuple[Dict[str, sp.Lambda], Tuple[str, ...]]:
    names = {name for name, _, _ in snapshot}
    placeholders = {name: sp.Function(name) for name in names}
    bodies: Dict[str, Tuple[Tuple[Symbol, ...], Expr]] = {}
    graph: Dict[str, set] = {}
    failed = set()
    for name, params, body in snapshot:
        try:
            expr = parse_plain(body, placeholders)
        except ParseError as exc:
            logger.debug("Definition of %s does not parse: %s", name, exc)
            failed.add(name)
            continue
        bodies[name] = (tuple(Symbol(p) for p in params), expr)
        graph[name] = {f.func.__name__ for f in expr.atoms(AppliedUndef)} & names

    rejected: List[str] = []
    while True:
        try:
            order = list(TopologicalSorter(graph).static_order())
            break
        except CycleError as exc:
            cycle = set(exc.args[1])
            logger.warning("Rejecting recursive function definitions: %s", sorted(cycle))
            rejected.extend(sorted(cycle - set(rejected)))
            for node in cycle:
                graph.pop(node, None)
            for deps in graph.values():
                deps -= cycle

    lambdas: Dict[str, sp.Lambda] = {}
    for name in order:
        if name not in bodies:
            continue
        params, expr = bodies[name]
        deps = {f.func.__name__ for f in expr.atoms(AppliedUndef)} & names
        if any(dep not in lambdas for dep in deps):
            failed.add(name)
            continue
        for dep in deps:
            expr = expr.replace(placeholders[dep], lambdas[dep])
        lambdas[name] = sp.Lambda(params, expr)
    if failed:
        logger.debug("Unresolved function definitions: %s", sorted(failed))
    return lambdas, tuple(sorted(set(rejected)))


def _undefined(name: str) -> Callable:
    def call(*args):
        raise ParseError(message_for("2005", name), code="2005")
    return call


def _registry_namespace(snapshot) -> Dict[str, object]:
    if not snapshot:
        return {}
    lambdas, _ = resolve_definitions(snapshot)
    ns: Dict[str, object] = {name: _undefined(name) for name, _, _ in snapshot}
    ns.update(lambdas)
    return ns


# ------------------------ Compilation entry points ------------------------
def _settings_cache_size() -> int:
    return get_settings().compile_cache_size


@lru_cache(maxsize=_settings_cache_size())
def _compile_cached(source: str, is_latex: bool, mode: str, snapshot) -> Optional[CompiledFunction]:
    try:
        plain = LaTeXConverter.convert(source) if is_latex else source
        plain = strip_definition(plain.strip(), mode)
        body, restriction = parse_domain_restriction(plain)
        expr = parse_plain(body, _registry_namespace(snapshot))
        if not isinstance(expr, Expr):
            raise ParseError(message_for("2004", source), code="2004", equation=source)
        return CompiledFunction(expr, body, restriction)
    except ParseError as exc:
        logger.debug("Compilation failed: %s", exc)
        return None
    except Exception as exc:
        logger.debug("Compilation failed for %r: %s", source, exc)
        return None


def compile_expression(source: str, is_latex: bool = False, mode: str = "auto",
                       registry: Optional[FunctionRegistry] = None) -> Optional[CompiledFunction]:
    """
    Compile plain text or LaTeX into a CompiledFunction.

    Args:
        source: expression text, e.g. ``"2x^2 + sin(x) {x > 0}"``
        is_latex: treat ``source`` as LaTeX
        mode: which leading definition to strip: 'auto', '2d', '3d', 'polar' or 'none'
        registry: user-defined functions visible to the expression

    Returns:
        CompiledFunction, or None when the source cannot be compiled
    """
    snapshot = registry.snapshot() if registry is not None else ()
    return _compile_cached(source, is_latex, mode, snapshot)


_COMPARISON_RE = re.compile(r"<=|>=|!=|=|<|>")


def compile_implicit(source: str, is_latex: bool = False,
                     registry: Optional[FunctionRegistry] = None) -> Optional[CompiledFunction]:
    """
    Compile ``A = B`` (or an inequality ``A < B``) as the scalar field ``A - B``.
    A source without comparison is compiled as is.
    """
    plain = LaTeXConverter.to_plain(source) if is_latex else source
    if plain is None:
        return None
    parts = _COMPARISON_RE.split(plain)
    if len(parts) == 1:
        return compile_expression(plain, mode="none", registry=registry)
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        logger.debug("Not an implicit equation: %r", source)
        return None
    return compile_expression(f"({parts[0]}) - ({parts[1]})", mode="none", registry=registry)


def compile_parametric(source: str, is_latex: bool = False,
                       registry: Optional[FunctionRegistry] = None) -> Optional[Tuple[CompiledFunction, CompiledFunction]]:
    """Compile ``(f(t), g(t))`` into the pair of coordinate functions."""
    plain = LaTeXConverter.to_plain(source) if is_latex else source
    if plain is None:
        return None
    text = plain.strip()
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    depth, split_at = 0, -1
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            split_at = i
            break
    if split_at < 0:
        return None
    fx = compile_expression(re.sub(r"^\s*x(\(t\))?\s*=", "", text[:split_at]), mode="none", registry=registry)
    fy = compile_expression(re.sub(r"^\s*y(\(t\))?\s*=", "", text[split_at + 1:]), mode="none", registry=registry)
    if fx is None or fy is None:
        return None
    return fx, fy


def slider_symbol(source: str) -> Optional[str]:
    slider = parse_slider(source)
    return slider[0] if slider else None


def clear_cache() -> None:
    _compile_cached.cache_clear()
    resolve_definitions.cache_clear()

# End of compiler.py
