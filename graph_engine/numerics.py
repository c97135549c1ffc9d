# numerics.py - sampled analysis of compiled functions
"""
Numerical analysis toolkit.

Every routine samples a compiled function on a uniform grid and works on the
samples with numpy. Non-finite samples are skipped (or count as 0 inside the
Simpson sums); a function undefined everywhere gives an empty result.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple, Union

import numpy as np

from .compiler import CompiledFunction
from .config import get_settings

logger = logging.getLogger(__name__)

Evaluator = Union[CompiledFunction, Callable[[Mapping[str, float]], float]]


@dataclass
class Extrema:
    minima: List[float] = field(default_factory=list)
    maxima: List[float] = field(default_factory=list)


def evaluate_on(fn: Evaluator, xs: np.ndarray, scope: Optional[Mapping[str, float]] = None,
                variable: str = "x") -> np.ndarray:
    """Evaluate ``fn`` at every point of ``xs``, returning a float array (NaN where undefined)."""
    scope = dict(scope or {})
    if isinstance(fn, CompiledFunction):
        return fn.evaluate_grid(scope, **{variable: xs})
    return np.array([fn({**scope, variable: float(x)}) for x in xs], dtype=float)


def sample(fn: Evaluator, x_min: float, x_max: float, samples: Optional[int] = None,
           scope: Optional[Mapping[str, float]] = None, variable: str = "x") -> Tuple[np.ndarray, np.ndarray]:
    """Uniform samples: ``samples`` steps, ``samples + 1`` points including both ends."""
    samples = samples or get_settings().analysis_samples
    xs = np.linspace(x_min, x_max, samples + 1)
    return xs, evaluate_on(fn, xs, scope, variable)


def _merge_close(values: np.ndarray, tolerance: float) -> List[float]:
    merged: List[float] = []
    for v in np.sort(values):
        if not merged or v - merged[-1] > tolerance:
            merged.append(float(v))
    return merged


# -------------------- Roots --------------------
def find_roots(fn: Evaluator, x_min: float, x_max: float, samples: Optional[int] = None,
               scope: Optional[Mapping[str, float]] = None) -> List[float]:
    """
    Zeros of ``fn`` on [x_min, x_max].

    A zero is recorded where consecutive samples change sign (linear
    interpolation between them) or where a sample is within 1e-10 of zero.
    Zeros closer than half a step are merged.
    """
    xs, ys = sample(fn, x_min, x_max, samples, scope)
    dx = (x_max - x_min) / (len(xs) - 1)
    tol = get_settings().zero_tolerance
    y0, y1 = ys[:-1], ys[1:]
    with np.errstate(all='ignore'):
        finite = np.isfinite(y0) & np.isfinite(y1)
        crossing = finite & (y0 * y1 < 0)
        t = np.where(crossing, y0 / (y0 - y1), 0.0)
    touching = np.isfinite(ys) & (np.abs(np.nan_to_num(ys, nan=np.inf)) < tol)
    candidates = np.concatenate([xs[:-1][crossing] + t[crossing] * dx, xs[touching]])
    return _merge_close(candidates, abs(dx) / 2)


# -------------------- Extrema --------------------
def find_extrema(fn: Evaluator, x_min: float, x_max: float, samples: Optional[int] = None,
                 scope: Optional[Mapping[str, float]] = None) -> Extrema:
    """
    Local extrema from sign changes of the central-difference derivative.
    positive -> negative marks a maximum, negative -> positive a minimum.
    A derivative sample that is exactly 0 counts as the end of the change.
    """
    xs, ys = sample(fn, x_min, x_max, samples, scope)
    dx = (x_max - x_min) / (len(xs) - 1)
    with np.errstate(all='ignore'):
        deriv = (ys[2:] - ys[:-2]) / (2 * dx)  # at xs[1:-1]
        d0, d1 = deriv[:-1], deriv[1:]
        finite = np.isfinite(d0) & np.isfinite(d1)
        maxima = finite & (d0 > 0) & (d1 <= 0)
        minima = finite & (d0 < 0) & (d1 >= 0)
        t = np.where(maxima | minima, d0 / (d0 - d1), 0.0)
    positions = xs[1:-2] + t * dx
    return Extrema(minima=[float(p) for p in positions[minima]],
                   maxima=[float(p) for p in positions[maxima]])


# -------------------- Intersections --------------------
def find_intersections(fn_a: Evaluator, fn_b: Evaluator, x_min: float, x_max: float,
                       samples: Optional[int] = None, scope: Optional[Mapping[str, float]] = None,
                       limit: Optional[int] = None) -> List[Tuple[float, float]]:
    """Crossings of two functions as (x, y) pairs, at most ``limit`` of them."""
    settings = get_settings()
    limit = settings.intersection_limit if limit is None else limit
    xs, ya = sample(fn_a, x_min, x_max, samples, scope)
    _, yb = sample(fn_b, x_min, x_max, samples, scope)
    dx = (x_max - x_min) / (len(xs) - 1)
    tol = settings.zero_tolerance
    with np.errstate(all='ignore'):
        diff = ya - yb
        d0, d1 = diff[:-1], diff[1:]
        finite = np.isfinite(d0) & np.isfinite(d1)
        # a sample on the crossing is reported by the interval it starts
        crossing = finite & ((np.abs(d0) < tol) | ((d0 * d1 < 0) & (np.abs(d1) >= tol)))

    points: List[Tuple[float, float]] = []
    for i in np.flatnonzero(crossing):
        if len(points) >= limit:
            break
        t = 0.0 if abs(d0[i]) < tol else d0[i] / (d0[i] - d1[i])
        y = ya[i] + t * (ya[i + 1] - ya[i])
        if np.isfinite(y):
            points.append((float(xs[i] + t * dx), float(y)))
    return points


# -------------------- Integration --------------------
def simpson_weights(n: int) -> np.ndarray:
    """1, 4, 2, 4, ..., 2, 4, 1 for an even ``n``."""
    w = np.ones(n + 1)
    w[1:-1:2] = 4
    w[2:-1:2] = 2
    return w


def simpson_integrate(fn: Evaluator, a: float, b: float, n: Optional[int] = None,
                      scope: Optional[Mapping[str, float]] = None, variable: str = "x") -> float:
    """
    Composite Simpson's rule on [a, b] with ``n`` intervals (rounded up to even).
    Non-finite samples count as 0.
    """
    if a == b:
        return 0.0
    n = n or get_settings().simpson_intervals
    n += n % 2
    xs = np.linspace(a, b, n + 1)
    ys = np.nan_to_num(evaluate_on(fn, xs, scope, variable), nan=0.0, posinf=0.0, neginf=0.0)
    h = (b - a) / n
    return float(h / 3 * np.dot(simpson_weights(n), ys))


def arc_length(fn: Evaluator, a: float, b: float, n: Optional[int] = None,
               scope: Optional[Mapping[str, float]] = None) -> float:
    """
    Length of the graph of ``fn`` over [a, b]: Simpson's rule on sqrt(1 + f'(x)^2)
    with a central-difference derivative.
    """
    if not (np.isfinite(a) and np.isfinite(b)) or a >= b:
        return 0.0
    settings = get_settings()
    n = n or settings.arc_length_intervals
    n += n % 2
    H = settings.derivative_step
    xs = np.linspace(a, b, n + 1)
    with np.errstate(all='ignore'):
        deriv = (evaluate_on(fn, xs + H, scope) - evaluate_on(fn, xs - H, scope)) / (2 * H)
        integrand = np.sqrt(1 + deriv * deriv)
    integrand = np.nan_to_num(integrand, nan=0.0, posinf=0.0)
    h = (b - a) / n
    return float(h / 3 * np.dot(simpson_weights(n), integrand))
