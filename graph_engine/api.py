# api.py - named requests served by the background worker
"""
Named, serializable requests.

Each handler takes plain arguments (strings, numbers, lists, scope dicts) plus
an optional ``cancel`` event and answers with an AnalysisResult. Nothing that
crosses this boundary is a live function or engine object.

  marching_squares              contour polylines of an implicit curve
  edge_crossings                point cloud on an implicit curve
  find_zeros                    roots of y = f(x)
  find_extrema                  local minima and maxima of y = f(x)
  find_intersections            crossings of two graphs
  simpson_integrate             definite integral, composite Simpson
  compute_arc_length            arc length of a graph
  sample_implicit_field         3D scalar field of F(x, y, z)
  extract_isosurface            triangles of F(x, y, z) = 0
  solve_ode_plot                one-directional ODE solution
  compute_slope_field_solution  two-sided ODE trajectory through y(0)
  solve_system_ode_plot         flow lines of a 2D system
  solve_ode_text                solver-panel ODE answer
  integrate_symbolic            symbolic antiderivative / definite integral
  differentiate                 symbolic derivative
  compute_regression            least-squares fit of a point set
  taylor_expansion              Taylor polynomial around a center
  compute_limit                 two-sided numerical limit
  solve_linear_system           square linear system A x = b
  descriptive_stats             mean, median, spread and quartiles of a data set
  histogram                     equal-width bin counts of a data set
"""
import logging
import threading
from dataclasses import asdict
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import calculus, implicit, numerics, ode, regression, stats, symbolic_integration, systems
from .compiler import compile_expression, compile_implicit
from .errors import EngineError, message_for
from .results import AnalysisResult, ResultKind

logger = logging.getLogger(__name__)

Handler = Callable[..., AnalysisResult]
HANDLERS: Dict[str, Handler] = {}


def request(name: str) -> Callable[[Handler], Handler]:
    """Register a handler under ``name``."""
    def register(fn: Handler) -> Handler:
        HANDLERS[name] = fn
        return fn
    return register


def _not_compiled(source: str) -> AnalysisResult:
    return AnalysisResult.failure(message_for("2004", source))


def _bounds_2d(x_min: float, x_max: float, y_min: float, y_max: float):
    return (float(x_min), float(x_max)), (float(y_min), float(y_max))


# -------------------- Implicit curves --------------------
@request("marching_squares")
def marching_squares(expr: str, x_min: float, x_max: float, y_min: float, y_max: float,
                     scope: Optional[Mapping[str, float]] = None, grid_size: Optional[int] = None,
                     is_latex: bool = False, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_implicit(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    field = implicit.sample_field_2d(fn, _bounds_2d(x_min, x_max, y_min, y_max), grid_size, scope)
    contours = implicit.marching_squares(field)
    return AnalysisResult(
        ResultKind.CONTOUR_SET,
        [{"points": c.to_list(), "closed": c.closed} for c in contours],
        method="marching-squares",
    )


@request("edge_crossings")
def edge_crossings(expr: str, x_min: float, x_max: float, y_min: float, y_max: float,
                   scope: Optional[Mapping[str, float]] = None, resolution: Optional[int] = None,
                   max_points: Optional[int] = None, is_latex: bool = False,
                   cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_implicit(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    field = implicit.sample_field_2d(fn, _bounds_2d(x_min, x_max, y_min, y_max), resolution, scope,
                                     fill_nonfinite=None)
    return AnalysisResult(ResultKind.POINT_SET, implicit.edge_crossings(field, max_points),
                          method="edge-crossings")


# -------------------- Function analysis --------------------
@request("find_zeros")
def find_zeros(expr: str, x_min: float, x_max: float, scope: Optional[Mapping[str, float]] = None,
               samples: Optional[int] = None, is_latex: bool = False,
               cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_expression(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    return AnalysisResult(ResultKind.VECTOR, numerics.find_roots(fn, x_min, x_max, samples, scope),
                          method="sign-change")


@request("find_extrema")
def find_extrema(expr: str, x_min: float, x_max: float, scope: Optional[Mapping[str, float]] = None,
                 samples: Optional[int] = None, is_latex: bool = False,
                 cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_expression(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    found = numerics.find_extrema(fn, x_min, x_max, samples, scope)
    base = dict(scope or {})

    def with_values(xs: List[float]) -> List[Tuple[float, float]]:
        return [(x, fn(base, x=x)) for x in xs]

    return AnalysisResult(
        ResultKind.POINT_SET,
        {"minima": with_values(found.minima), "maxima": with_values(found.maxima)},
        method="central-difference",
    )


@request("find_intersections")
def find_intersections(expr_a: str, expr_b: str, x_min: float, x_max: float,
                       scope: Optional[Mapping[str, float]] = None, samples: Optional[int] = None,
                       limit: Optional[int] = None, is_latex: bool = False,
                       cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn_a = compile_expression(expr_a, is_latex)
    fn_b = compile_expression(expr_b, is_latex)
    if fn_a is None or fn_b is None:
        return _not_compiled(expr_a if fn_a is None else expr_b)
    points = numerics.find_intersections(fn_a, fn_b, x_min, x_max, samples, scope, limit)
    return AnalysisResult(ResultKind.POINT_SET, points, method="sign-change")


@request("simpson_integrate")
def simpson_integrate(expr: str, a: float, b: float, variable: str = "x",
                      scope: Optional[Mapping[str, float]] = None, n: Optional[int] = None,
                      is_latex: bool = False, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_expression(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    return AnalysisResult(ResultKind.SCALAR, numerics.simpson_integrate(fn, a, b, n, scope, variable),
                          method="simpson")


@request("compute_arc_length")
def compute_arc_length(expr: str, a: float, b: float, scope: Optional[Mapping[str, float]] = None,
                       n: Optional[int] = None, is_latex: bool = False,
                       cancel: Optional[threading.Event] = None) -> AnalysisResult:
    fn = compile_expression(expr, is_latex)
    if fn is None:
        return _not_compiled(expr)
    return AnalysisResult(ResultKind.SCALAR, numerics.arc_length(fn, a, b, n, scope), method="simpson")


# -------------------- Implicit surfaces --------------------
def _field_3d(expr: str, scope, resolution, is_latex, time_budget, cancel):
    fn = compile_implicit(expr, is_latex)
    if fn is None:
        return None
    return implicit.sample_field_3d(fn, None, resolution, scope, time_budget, cancel)


@request("sample_implicit_field")
def sample_implicit_field(expr: str, scope: Optional[Mapping[str, float]] = None,
                          resolution: Optional[int] = None, is_latex: bool = False,
                          time_budget: Optional[float] = None,
                          cancel: Optional[threading.Event] = None) -> AnalysisResult:
    field = _field_3d(expr, scope, resolution, is_latex, time_budget, cancel)
    if field is None:
        return _not_compiled(expr)
    return AnalysisResult(
        ResultKind.MATRIX, field.values.astype(np.float32), method="grid-sampling",
        meta={"timed_out": field.timed_out, "bounds": field.bounds, "resolution": field.resolution},
    )


@request("extract_isosurface")
def extract_isosurface(expr: str, scope: Optional[Mapping[str, float]] = None,
                       resolution: Optional[int] = None, is_latex: bool = False,
                       time_budget: Optional[float] = None, max_triangles: Optional[int] = None,
                       cancel: Optional[threading.Event] = None) -> AnalysisResult:
    field = _field_3d(expr, scope, resolution, is_latex, time_budget, cancel)
    if field is None:
        return _not_compiled(expr)
    triangles = implicit.marching_cubes(field, max_triangles)
    return AnalysisResult(
        ResultKind.MATRIX, triangles, method="marching-cubes",
        meta={"timed_out": field.timed_out, "triangles": len(triangles)},
    )


# -------------------- ODEs --------------------
@request("solve_ode_plot")
def solve_ode_plot(expr: str, t_span: Sequence[float], y0: Sequence[float],
                   scope: Optional[Mapping[str, float]] = None, steps: Optional[int] = None,
                   method: str = "rk4", is_latex: bool = False,
                   cancel: Optional[threading.Event] = None) -> AnalysisResult:
    points = ode.solve_ode_plot(expr, (t_span[0], t_span[1]), list(y0), scope, steps, method, is_latex, cancel)
    return AnalysisResult(ResultKind.POINT_SET, points, method=method)


@request("compute_slope_field_solution")
def compute_slope_field_solution(expr: str, x_min: float, x_max: float, kind: str = ode.FIRST_ORDER,
                                 scope: Optional[Mapping[str, float]] = None, is_latex: bool = False,
                                 cancel: Optional[threading.Event] = None) -> AnalysisResult:
    points = ode.ode_trajectory(expr, kind, x_min, x_max, scope, is_latex=is_latex, cancel=cancel)
    return AnalysisResult(ResultKind.POINT_SET, points, method="rk4")


@request("solve_system_ode_plot")
def solve_system_ode_plot(dx_expr: str, dy_expr: str, x_min: float, x_max: float,
                          y_min: float, y_max: float, step_x: float, step_y: float,
                          scope: Optional[Mapping[str, float]] = None,
                          cancel: Optional[threading.Event] = None) -> AnalysisResult:
    lines = ode.flow_lines(dx_expr, dy_expr, x_min, x_max, y_min, y_max, step_x, step_y, scope, cancel)
    return AnalysisResult(ResultKind.CONTOUR_SET, lines, method="rk4")


@request("solve_ode_text")
def solve_ode_text(source: str, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        solved = ode.solve_ode_text(source)
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    return AnalysisResult(ResultKind.SCALAR, solved.output, method="ode", steps=solved.steps)


# -------------------- Symbolic --------------------
def _symbolic(result: symbolic_integration.IntegrationResult) -> AnalysisResult:
    if not result.ok:
        return AnalysisResult.failure(result.error, result.method, result.steps)
    meta = {k: v for k, v in asdict(result).items() if k in ("latex", "value")}
    return AnalysisResult(ResultKind.SCALAR, result.result, result.method, list(result.steps), meta=meta)


@request("integrate_symbolic")
def integrate_symbolic(expression: str, variable: str = "x", bounds: Optional[Sequence[float]] = None,
                       cancel: Optional[threading.Event] = None) -> AnalysisResult:
    span = (bounds[0], bounds[1]) if bounds is not None else None
    return _symbolic(symbolic_integration.integrate(expression, variable, span))


@request("differentiate")
def differentiate(expression: str, variable: str = "x",
                  cancel: Optional[threading.Event] = None) -> AnalysisResult:
    return _symbolic(symbolic_integration.differentiate(expression, variable))


# -------------------- Regression --------------------
@request("compute_regression")
def compute_regression(points: Sequence[Sequence[float]], kind: str = regression.LINEAR,
                       cancel: Optional[threading.Event] = None) -> AnalysisResult:
    if kind not in regression.REGRESSION_KINDS:
        return AnalysisResult.failure(f"Unknown regression kind '{kind}'")
    fitted = regression.fit(points, kind)
    if fitted is None:
        return AnalysisResult.failure(message_for("6000"))
    return AnalysisResult(
        ResultKind.VECTOR, list(fitted.coefficients), method=fitted.kind,
        meta={"equation": fitted.equation, "r2": fitted.r2},
    )


# -------------------- Calculus --------------------
@request("taylor_expansion")
def taylor_expansion(expression: str, variable: str = "x", center: float = 0.0, order: int = 5,
                     cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        expansion = calculus.taylor_expansion(expression, variable, float(center), int(order))
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    return AnalysisResult(ResultKind.SCALAR, expansion.latex, method="series", steps=expansion.steps,
                          meta={"coefficients": expansion.coefficients, "center": expansion.center,
                                "order": expansion.order})


@request("compute_limit")
def compute_limit(expression: str, approach: float, variable: str = "x",
                  scope: Optional[Mapping[str, float]] = None,
                  cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        found = calculus.numerical_limit(expression, variable, float(approach), scope)
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    return AnalysisResult(ResultKind.SCALAR, found.value, method="two-sided",
                          steps=calculus.limit_steps(expression, variable, float(approach), found),
                          meta={"left": found.left, "right": found.right, "exists": found.exists})


# -------------------- Linear systems --------------------
@request("solve_linear_system")
def solve_linear_system(source: str, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        solved = systems.solve_linear_system(source)
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    return AnalysisResult(ResultKind.RECORD, solved.solution, method="numpy.linalg.solve",
                          steps=solved.steps, meta={"output": solved.output})


# -------------------- Statistics --------------------
@request("descriptive_stats")
def descriptive_stats(data: stats.Data, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        values = stats.as_array(data)
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    summary = stats.descriptive_stats(values)
    return AnalysisResult(ResultKind.RECORD, summary.to_dict(), method="descriptive",
                          steps=summary.steps(values.tolist()))


@request("histogram")
def histogram(data: stats.Data, bins: int = 10, cancel: Optional[threading.Event] = None) -> AnalysisResult:
    try:
        found = stats.histogram(data, bins)
    except EngineError as exc:
        return AnalysisResult.failure(exc.message)
    return AnalysisResult(ResultKind.VECTOR, [b.count for b in found], method="equal-width",
                          meta={"bins": [asdict(b) for b in found]})

# End of api.py
