# systems.py - square linear systems from equation text
"""
Solve ``2x + y = 5, x - y = 1`` style input.

Equations are separated by top-level commas or semicolons. Each one is moved to
``lhs - rhs = 0``, checked to be of degree at most one in the unknowns and
turned into a row of A x = b, which numpy solves.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import sympy as sp

from .compiler import parse_plain
from .errors import DegenerateInputError, ParseError, message_for

logger = logging.getLogger(__name__)


@dataclass
class LinearSystemResult:
    solution: Dict[str, float] = field(default_factory=dict)
    steps: List[str] = field(default_factory=list)

    @property
    def output(self) -> str:
        return ", ".join(f"{k} = {_fmt(v)}" for k, v in self.solution.items())


def _fmt(value: float) -> str:
    return f"{value:.10g}"


def split_equations(source: str) -> List[str]:
    """Split on ',' and ';' outside of parentheses and brackets."""
    parts, depth, current = [], 0, []
    for ch in source:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        if ch in ",;" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def _residual(equation: str) -> sp.Expr:
    sides = equation.split("=")
    if len(sides) == 1:
        return parse_plain(equation)
    if len(sides) != 2:
        raise ParseError(message_for("2007", equation), code="2007", equation=equation)
    return parse_plain(sides[0]) - parse_plain(sides[1])


def coefficient_matrix(residuals: List[sp.Expr], unknowns: List[sp.Symbol]):
    """
    Rows of A and b for residuals g_i = sum a_ij x_j - b_i.
    Raises ParseError (2007) for an equation that is not linear in the unknowns.
    """
    n_rows, n_cols = len(residuals), len(unknowns)
    A = np.zeros((n_rows, n_cols), dtype=np.float64)
    b = np.zeros(n_rows, dtype=np.float64)
    for i, g in enumerate(residuals):
        try:
            poly = sp.Poly(sp.expand(g), *unknowns)
            if poly.total_degree() > 1:
                raise ParseError(message_for("2007", str(g)), code="2007", equation=str(g))
            for j, var in enumerate(unknowns):
                A[i, j] = float(poly.coeff_monomial(var))
            b[i] = -float(poly.coeff_monomial(1))
        except (sp.PolynomialError, TypeError) as exc:
            raise ParseError(message_for("2007", str(g)), code="2007", equation=str(g)) from exc
    return A, b


def solve_linear_system(source: str) -> LinearSystemResult:
    """
    Solve a square linear system.

    Raises:
        ParseError: an equation does not parse or is not linear
        DegenerateInputError: fewer than two equations, a different number of
                              equations and unknowns, or a singular matrix
    """
    equations = split_equations(source)
    if len(equations) < 2:
        raise DegenerateInputError(message_for("6003"), code="6003", equation=source)
    residuals = [_residual(eq) for eq in equations]
    unknowns = sorted(set().union(*(g.free_symbols for g in residuals)), key=str)
    names = [str(s) for s in unknowns]
    if len(unknowns) != len(residuals):
        detail = f"{len(residuals)} equations in {', '.join(names) or 'no unknowns'}"
        raise DegenerateInputError(message_for("6002", detail), code="6002", equation=source)

    A, b = coefficient_matrix(residuals, unknowns)
    n = len(unknowns)
    if np.linalg.matrix_rank(A) < n:
        raise DegenerateInputError(message_for("6001"), code="6001", equation=source)
    try:
        x = np.linalg.solve(A, b)
    except np.linalg.LinAlgError as exc:
        raise DegenerateInputError(message_for("6001"), code="6001", equation=source) from exc

    # round to 1e-8; adding 0.0 turns -0.0 into 0.0
    x = np.round(x, 8) + 0.0
    solution = {name: float(v) for name, v in zip(names, x)}
    steps = [f"System of {n} equations in {n} unknowns: {', '.join(names)}"]
    steps += [f"{k} = {_fmt(v)}" for k, v in solution.items()]
    logger.debug("Solved %d x %d system %r", n, n, source)
    return LinearSystemResult(solution, steps)
