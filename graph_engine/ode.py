# ode.py - ODE integration, trajectories and vector-field flow lines
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import sympy as sp
from scipy.integrate import solve_ivp

from .compiler import CompiledFunction, compile_expression, parse_plain
from .config import get_settings
from .errors import ConvergenceError, ParseError, RequestCancelled, message_for

logger = logging.getLogger(__name__)

RHS = Callable[[float, np.ndarray], np.ndarray]
Point = Tuple[float, float]

FIRST_ORDER = "first-order"
SECOND_ORDER = "second-order"
IMPLICIT = "implicit"


@dataclass
class ODESolution:
    """
    Sampled solution.

    Attributes:
        t: sample times, shape (steps + 1,)
        y: states, shape (steps + 1, *state_shape)
    """
    t: np.ndarray
    y: np.ndarray


# -------------------- Steppers --------------------
def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCancelled(message_for("7000", "ODE integration"), code="7000")


def rk4(f: RHS, t_span: Tuple[float, float], y0: Sequence[float], steps: int = 500,
        cancel: Optional[threading.Event] = None) -> ODESolution:
    """
    Classic fixed-step 4th-order Runge-Kutta.

    ``y0`` may have any shape as long as ``f`` returns the same shape, which
    lets many independent trajectories advance together. Non-finite state
    components are reset to 0 after every step.
    """
    t0, t_end = t_span
    h = (t_end - t0) / steps
    y = np.array(y0, dtype=float)
    ts = np.empty(steps + 1)
    ys = np.empty((steps + 1,) + y.shape)
    ts[0], ys[0] = t0, y
    t = t0
    with np.errstate(all='ignore'):
        for i in range(steps):
            _check_cancel(cancel)
            k1 = f(t, y)
            k2 = f(t + h / 2, y + h / 2 * k1)
            k3 = f(t + h / 2, y + h / 2 * k2)
            k4 = f(t + h, y + h * k3)
            y = y + h / 6 * (k1 + 2 * k2 + 2 * k3 + k4)
            y[~np.isfinite(y)] = 0.0
            t = t0 + (i + 1) * h
            ts[i + 1], ys[i + 1] = t, y
    return ODESolution(ts, ys)


def adaptive(f: RHS, t_span: Tuple[float, float], y0: Sequence[float], steps: int = 500) -> ODESolution:
    """
    Variable-step integration (scipy LSODA, switches to a stiff method when
    needed), reported at ``steps + 1`` uniform times.
    """
    tol = get_settings().adaptive_tolerance
    t0, t_end = t_span
    t_eval = np.linspace(t0, t_end, steps + 1)
    y0 = np.atleast_1d(np.array(y0, dtype=float))
    try:
        sol = solve_ivp(f, (t0, t_end), y0, method="LSODA", t_eval=t_eval, rtol=tol, atol=tol)
    except (ValueError, ArithmeticError) as exc:
        raise ConvergenceError(str(exc), code="9999") from exc
    if not sol.success or sol.y.shape[1] != len(t_eval):
        raise ConvergenceError(f"solve_ivp failed: {sol.message}", code="9999")
    y = np.nan_to_num(sol.y.T, nan=0.0, posinf=0.0, neginf=0.0)
    return ODESolution(t_eval, y)


def solve(f: RHS, t_span: Tuple[float, float], y0: Sequence[float], steps: int = 500,
          method: str = "rk4", cancel: Optional[threading.Event] = None) -> ODESolution:
    """
    Integrate ``y' = f(t, y)`` over ``t_span``.

    Args:
        method: 'rk4' (fixed step) or 'adaptive' (LSODA, falls back to rk4 on failure)
    """
    if method == "rk4":
        return rk4(f, t_span, y0, steps, cancel)
    if method == "adaptive":
        _check_cancel(cancel)
        try:
            return adaptive(f, t_span, y0, steps)
        except ConvergenceError as exc:
            logger.warning("Adaptive integration failed (%s), falling back to RK4", exc)
            return rk4(f, t_span, y0, steps, cancel)
    raise ValueError(f"Unknown ODE method '{method}'")


# -------------------- Right-hand sides --------------------
def _prime_normalize(source: str) -> str:
    return re.sub(r"[′’ʼ]", "'", source).replace("\\prime", "'").strip()


def scalar_rhs(fn: CompiledFunction, scope: Optional[Mapping[str, float]] = None) -> RHS:
    """y' = fn(x, y) as a stepper right-hand side; undefined values count as 0."""
    base = dict(scope or {})

    def rhs(t: float, state: np.ndarray) -> np.ndarray:
        value = fn({**base, "x": t, "y": state[0]})
        return np.array([value if np.isfinite(value) else 0.0])
    return rhs


def second_order_to_system(rhs_source: str, scope: Optional[Mapping[str, float]] = None) -> Optional[RHS]:
    """
    Turn ``y'' = f(x, y, y')`` into the system ``[y, y'] -> [y', y'']``.
    The right-hand side may name the first derivative ``y'`` or ``yp``.
    """
    fn = compile_expression(_prime_normalize(rhs_source).replace("y'", "(yp)"), mode="none")
    if fn is None:
        return None
    base = dict(scope or {})

    def system(t: float, state: np.ndarray) -> np.ndarray:
        y, yp = state[0], state[1]
        ypp = fn({**base, "x": t, "y": y, "yp": yp})
        return np.array([yp, ypp if np.isfinite(ypp) else 0.0])
    return system


def rearrange_implicit_ode(source: str) -> Optional[Tuple[str, CompiledFunction]]:
    """
    Solve an implicit ODE ``F(x, y, y') = 0`` for ``y'``.

    ``A = B`` is read as ``A - B = 0``. Returns the explicit right-hand side
    (as text and compiled) when sympy finds exactly one solution, else None.
    """
    cleaned = _prime_normalize(source)
    cleaned = re.sub(r"\s*=\s*0\s*$", "", cleaned)
    if "=" in cleaned:
        lhs, rhs = cleaned.split("=", 1)
        cleaned = f"({lhs}) - ({rhs})"
    if not cleaned or "y'" not in cleaned:
        return None
    yp = sp.Symbol("yp")
    try:
        expr = parse_plain(cleaned.replace("y'", "(yp)"))
        solutions = sp.solve(expr, yp)
    except (ParseError, NotImplementedError, ValueError, TypeError) as exc:
        logger.debug("Cannot rearrange %r: %s", source, exc)
        return None
    if len(solutions) != 1 or solutions[0].has(yp):
        return None
    explicit = solutions[0]
    return sp.sstr(explicit).replace("**", "^"), CompiledFunction(explicit, str(explicit))


def build_rhs(expr: str, kind: str = FIRST_ORDER, scope: Optional[Mapping[str, float]] = None,
              is_latex: bool = False) -> Optional[Tuple[RHS, List[float]]]:
    """Right-hand side and default initial state for one of the three ODE kinds."""
    if kind == SECOND_ORDER:
        system = second_order_to_system(expr, scope)
        return (system, [1.0, 0.0]) if system else None
    if kind == IMPLICIT:
        rearranged = rearrange_implicit_ode(expr)
        return (scalar_rhs(rearranged[1], scope), [1.0]) if rearranged else None
    if kind == FIRST_ORDER:
        fn = compile_expression(expr, is_latex=is_latex, mode="none")
        return (scalar_rhs(fn, scope), [1.0]) if fn else None
    raise ValueError(f"Unknown ODE kind '{kind}'")


# -------------------- Plot helpers --------------------
def _bad(value: float, bound: float) -> bool:
    return not np.isfinite(value) or abs(value) > bound


def solve_ode_plot(expr: str, t_span: Tuple[float, float], y0: Sequence[float],
                   scope: Optional[Mapping[str, float]] = None, steps: Optional[int] = None,
                   method: str = "rk4", is_latex: bool = False,
                   cancel: Optional[threading.Event] = None) -> List[Point]:
    """
    Solve ``y' = expr`` (or ``y'' = expr`` for a two-component ``y0``) in one
    direction. Points beyond the value bound are dropped by the adaptive
    method and end the curve for rk4.
    """
    settings = get_settings()
    steps = steps or settings.ode_steps
    kind = SECOND_ORDER if len(y0) == 2 else FIRST_ORDER
    built = build_rhs(expr, kind, scope, is_latex)
    if built is None:
        return []
    sol = solve(built[0], t_span, y0, steps, method, cancel)
    points: List[Point] = []
    for t, state in zip(sol.t, sol.y):
        if _bad(state[0], settings.ode_value_bound):
            if method == "adaptive":
                continue
            break
        points.append((float(t), float(state[0])))
    return points


def ode_trajectory(expr: str, kind: str, x_min: float, x_max: float,
                   scope: Optional[Mapping[str, float]] = None, t0: float = 0.0,
                   y0: Optional[Sequence[float]] = None, steps: Optional[int] = None,
                   is_latex: bool = False, cancel: Optional[threading.Event] = None) -> List[Point]:
    """
    One continuous curve through the initial condition, covering the view.

    Runs rk4 forward to ``x_max + 2`` and backward to ``x_min - 2`` and joins
    the reversed backward samples (without the shared start) with the forward
    ones. Out-of-bound values are skipped on the backward branch and stop the
    forward branch.
    """
    settings = get_settings()
    steps = steps or settings.ode_steps
    built = build_rhs(expr, kind, scope, is_latex)
    if built is None:
        return []
    f, default_y0 = built
    start = list(y0) if y0 is not None else default_y0
    fwd = rk4(f, (t0, x_max + 2), start, steps, cancel)
    bwd = rk4(f, (t0, x_min - 2), start, steps, cancel)

    bound = settings.ode_value_bound
    points: List[Point] = []
    for i in range(len(bwd.t) - 1, 0, -1):
        y = bwd.y[i][0]
        if _bad(y, bound):
            continue
        points.append((float(bwd.t[i]), float(y)))
    for i in range(len(fwd.t)):
        y = fwd.y[i][0]
        if _bad(y, bound):
            break
        points.append((float(fwd.t[i]), float(y)))
    return points


def flow_lines(dx_expr: str, dy_expr: str, x_min: float, x_max: float, y_min: float, y_max: float,
               step_x: float, step_y: float, scope: Optional[Mapping[str, float]] = None,
               cancel: Optional[threading.Event] = None) -> List[List[Point]]:
    """
    Trajectories of the system ``x' = dx_expr, y' = dy_expr`` from a grid of seeds.

    All seeds advance together through one vectorized rk4 run; each line ends
    at its first non-finite or out-of-bound sample and only lines with at
    least three samples are kept.
    """
    fx = compile_expression(dx_expr, mode="none")
    fy = compile_expression(dy_expr, mode="none")
    if fx is None or fy is None or step_x <= 0 or step_y <= 0:
        return []
    settings = get_settings()
    base = dict(scope or {})

    sx = np.arange(x_min, x_max + step_x * 1e-9, step_x)
    sy = np.arange(y_min, y_max + step_y * 1e-9, step_y)
    seeds_x, seeds_y = np.meshgrid(sx, sy, indexing="ij")
    state0 = np.stack([seeds_x.ravel(), seeds_y.ravel()])

    def system(t: float, state: np.ndarray) -> np.ndarray:
        dx = fx.evaluate_grid(base, x=state[0], y=state[1])
        dy = fy.evaluate_grid(base, x=state[0], y=state[1])
        return np.nan_to_num(np.stack([dx, dy]), nan=0.0)

    sol = rk4(system, (0.0, settings.flow_duration), state0, settings.flow_steps, cancel)
    xs, ys = sol.y[:, 0, :], sol.y[:, 1, :]  # (steps + 1, seeds)
    bound = settings.flow_value_bound
    with np.errstate(invalid='ignore'):
        bad = ~np.isfinite(xs) | ~np.isfinite(ys) | (np.abs(xs) > bound) | (np.abs(ys) > bound)

    lines: List[List[Point]] = []
    for seed in range(state0.shape[1]):
        stop = np.flatnonzero(bad[:, seed])
        n = stop[0] if len(stop) else len(sol.t)
        if n > 2:
            lines.append([(float(xs[i, seed]), float(ys[i, seed])) for i in range(n)])
    return lines


# -------------------- Text solver --------------------
_RHS_RE = re.compile(
    r"^(?:\(dy\)\s*/\s*\(dx\)|\(d\s*\*?\s*y\)\s*/\s*\(d\s*\*?\s*x\)|dy\s*/\s*dx|diff\(y(?:,\s*x)?\)|y')\s*=\s*(.+)$"
)


@dataclass
class ODETextResult:
    output: str
    steps: List[str] = field(default_factory=list)


def format_number(value: float) -> str:
    if abs(value) < 1e-10:
        return "0"
    if abs(value - round(value)) < 1e-10:
        return str(int(round(value)))
    return str(float(f"{value:.6f}"))


def detect_affine_rhs(fn: CompiledFunction) -> Optional[Tuple[float, float, float]]:
    """(a, b, c) when ``fn(x, y) == a*y + b*x + c`` on a handful of sample points."""
    def value_at(x: float, y: float) -> Optional[float]:
        v = fn({"x": x, "y": y})
        return v if np.isfinite(v) else None

    c, fx10, fy01 = value_at(0, 0), value_at(1, 0), value_at(0, 1)
    if c is None or fx10 is None or fy01 is None:
        return None
    b, a = fx10 - c, fy01 - c
    for x, y in ((2, 3), (-1, 2), (0.5, -1.5)):
        actual = value_at(x, y)
        if actual is None or abs(actual - (a * y + b * x + c)) > 1e-6:
            return None
    return a, b, c


def linear_general_solution(a: float, b: float, c: float) -> str:
    if abs(a) < 1e-10:
        return f"y = {format_number(b / 2)}x^2 + {format_number(c)}x + C"
    p = b / a
    q = b / (a * a) + c / a
    return f"y + {format_number(p)}x + {format_number(q)} = C*e^({format_number(a)}x)"


def solve_ode_text(source: str) -> ODETextResult:
    """
    Solver panel entry: ``dy/dx = f``, ``y' = f`` or an implicit form with ``y'``.

    Affine right-hand sides get the closed-form general solution; anything
    else is integrated from y(0) = 1 over [0, 10] and reported as samples.
    Raises ParseError when the input is not an ODE that can be handled.
    """
    text = _prime_normalize(source)
    m = _RHS_RE.match(text)
    implicit_form = False
    if m:
        rhs = m.group(1).strip()
        fn = compile_expression(rhs, mode="none")
        if fn is None:
            raise ParseError(message_for("2004", rhs), code="2004", equation=rhs)
    else:
        if "y'" not in text:
            raise ParseError(message_for("4002"), code="4002", equation=source)
        rearranged = rearrange_implicit_ode(text)
        if rearranged is None:
            raise ParseError(message_for("4001"), code="4001", equation=source)
        rhs, fn = rearranged
        implicit_form = True

    given = [f"Given: {source if implicit_form else f'dy/dx = {rhs}'}"]
    if implicit_form:
        given.append(f"Rearranged to: dy/dx = {rhs}")

    coeffs = detect_affine_rhs(fn)
    if coeffs is not None:
        equation = linear_general_solution(*coeffs)
        return ODETextResult(equation, given + [
            "Detected first-order linear ODE: y' = a*y + b*x + c",
            f"General solution: {equation}",
        ])

    t0, y0, t_end = 0.0, 1.0, 10.0
    sol = solve(scalar_rhs(fn), (t0, t_end), [y0], steps=500, method="adaptive")
    interval = max(1, len(sol.t) // 5)
    samples = [f"y({sol.t[i]:.2f}) = {sol.y[i][0]:.4f}" for i in range(0, len(sol.t), interval)]
    return ODETextResult(
        f"y({sol.t[-1]:.2f}) = {sol.y[-1][0]:.4f}",
        given + [
            f"Initial condition: y({t0:g}) = {y0:g}",
            f"Numerical solution (LSODA) on [{t0:g}, {t_end:g}]:",
        ] + samples,
    )

# End of ode.py
