# regression.py - least-squares fits over 2D point sets
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

LINEAR = "linear"
QUADRATIC = "quadratic"
EXPONENTIAL = "exponential"
REGRESSION_KINDS = (LINEAR, QUADRATIC, EXPONENTIAL)


@dataclass
class RegressionResult:
    """
    Fitted model.

    Attributes:
        kind: 'linear' (y = a x + b), 'quadratic' (y = a x^2 + b x + c) or
              'exponential' (y = a e^(b x))
        coefficients: [a, b] or [a, b, c] in the order above
        equation: display string with 4 decimals
        r2: coefficient of determination against the original y values
    """
    kind: str
    coefficients: List[float] = field(default_factory=list)
    equation: str = ""
    r2: float = 0.0

    def evaluate(self, x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        c = self.coefficients
        if self.kind == LINEAR:
            return c[0] * x + c[1]
        if self.kind == QUADRATIC:
            return c[0] * x ** 2 + c[1] * x + c[2]
        if self.equation == "N/A":
            return x * np.nan
        return c[0] * np.exp(c[1] * x)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "coefficients": list(self.coefficients),
                "equation": self.equation, "r2": self.r2}


def r_squared(y: np.ndarray, predicted: np.ndarray) -> float:
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        return 1.0
    ss_res = float(np.sum((y - predicted) ** 2))
    return 1.0 - ss_res / ss_tot


def _linear_coefficients(x: np.ndarray, y: np.ndarray) -> Tuple[float, float]:
    n = len(x)
    denom = n * np.sum(x * x) - np.sum(x) ** 2
    if denom == 0:
        # all x equal: horizontal line through the mean
        return 0.0, float(y.mean())
    slope = (n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denom
    intercept = y.mean() - slope * x.mean()
    return float(slope), float(intercept)


def linear_fit(x: np.ndarray, y: np.ndarray) -> RegressionResult:
    a, b = _linear_coefficients(x, y)
    return RegressionResult(LINEAR, [a, b], f"y = {a:.4f}x + {b:.4f}", r_squared(y, a * x + b))


def quadratic_fit(x: np.ndarray, y: np.ndarray) -> RegressionResult:
    """
    Normal equations of y = a x^2 + b x + c solved with Cramer's rule.
    A (numerically) singular system degrades to the linear fit.
    """
    s0, s1, s2, s3, s4 = len(x), np.sum(x), np.sum(x ** 2), np.sum(x ** 3), np.sum(x ** 4)
    t0, t1, t2 = np.sum(y), np.sum(x * y), np.sum(x ** 2 * y)

    D = s0 * (s2 * s4 - s3 * s3) - s1 * (s1 * s4 - s2 * s3) + s2 * (s1 * s3 - s2 * s2)
    if abs(D) < 1e-15:
        logger.debug("Singular quadratic system (D=%g), using linear fit", D)
        return linear_fit(x, y)

    c = (t0 * (s2 * s4 - s3 * s3) - s1 * (t1 * s4 - t2 * s3) + s2 * (t1 * s3 - t2 * s2)) / D
    b = (s0 * (t1 * s4 - t2 * s3) - t0 * (s1 * s4 - s2 * s3) + s2 * (s1 * t2 - s2 * t1)) / D
    a = (s0 * (s2 * t2 - s3 * t1) - s1 * (s1 * t2 - s2 * t1) + t0 * (s1 * s3 - s2 * s2)) / D
    a, b, c = float(a), float(b), float(c)
    return RegressionResult(QUADRATIC, [a, b, c], f"y = {a:.4f}x² + {b:.4f}x + {c:.4f}",
                            r_squared(y, a * x ** 2 + b * x + c))


def exponential_fit(x: np.ndarray, y: np.ndarray) -> RegressionResult:
    """
    y = a e^(b x) from a linear fit of ln y over the points with y > 0.
    Fewer than two such points give the zero model with r2 = 0.
    """
    positive = y > 0
    if np.count_nonzero(positive) < 2:
        return RegressionResult(EXPONENTIAL, [0.0, 0.0], "N/A", 0.0)
    b, ln_a = _linear_coefficients(x[positive], np.log(y[positive]))
    a = float(np.exp(ln_a))
    with np.errstate(over='ignore', invalid='ignore'):
        predicted = a * np.exp(b * x)
    return RegressionResult(EXPONENTIAL, [a, b], f"y = {a:.4f}e^({b:.4f}x)", r_squared(y, predicted))


_FITS = {LINEAR: linear_fit, QUADRATIC: quadratic_fit, EXPONENTIAL: exponential_fit}


def fit(points: Sequence[Sequence[float]], kind: str = LINEAR) -> Optional[RegressionResult]:
    """
    Fit ``kind`` to ``points`` ([[x, y], ...]). Returns None for fewer than two points.
    """
    if kind not in _FITS:
        raise ValueError(f"Unknown regression kind '{kind}', expected one of {REGRESSION_KINDS}")
    if len(points) < 2:
        return None
    data = np.asarray(points, dtype=float).reshape(-1, 2)
    return _FITS[kind](data[:, 0], data[:, 1])
