# expressions.py - expression model, kind detection and small input grammars
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from .errors import message_for

logger = logging.getLogger(__name__)


# ------------------------ Expression kinds ------------------------
class ExpressionKind(Enum):
    ALGEBRAIC = "algebraic"
    PARAMETRIC = "parametric"
    POLAR = "polar"
    IMPLICIT = "implicit"
    DIFFERENTIAL = "differential"
    SERIES = "series"
    POINTS = "points"
    SLIDER = "slider"
    INEQUALITY = "inequality"


class Analysis(Enum):
    PLOT = "plot"
    ROOTS = "roots"
    EXTREMA = "extrema"
    INTERSECTIONS = "intersections"
    DEFINITE_INTEGRAL = "definite-integral"
    ARC_LENGTH = "arc-length"
    CONTOUR = "contour"
    ISOSURFACE = "isosurface"
    ODE_TRAJECTORY = "ode-trajectory"
    REGRESSION = "regression"


# Which analyses each kind may be routed to. Every kind must have an entry.
ELIGIBLE_ANALYSES: Dict[ExpressionKind, FrozenSet[Analysis]] = {
    ExpressionKind.ALGEBRAIC: frozenset({
        Analysis.PLOT, Analysis.ROOTS, Analysis.EXTREMA, Analysis.INTERSECTIONS,
        Analysis.DEFINITE_INTEGRAL, Analysis.ARC_LENGTH,
    }),
    ExpressionKind.SERIES: frozenset({
        Analysis.PLOT, Analysis.ROOTS, Analysis.EXTREMA, Analysis.INTERSECTIONS,
        Analysis.DEFINITE_INTEGRAL,
    }),
    ExpressionKind.PARAMETRIC: frozenset({Analysis.PLOT}),
    ExpressionKind.POLAR: frozenset({Analysis.PLOT}),
    ExpressionKind.IMPLICIT: frozenset({Analysis.PLOT, Analysis.CONTOUR, Analysis.ISOSURFACE}),
    ExpressionKind.INEQUALITY: frozenset({Analysis.PLOT, Analysis.CONTOUR}),
    ExpressionKind.DIFFERENTIAL: frozenset({Analysis.PLOT, Analysis.ODE_TRAJECTORY}),
    ExpressionKind.POINTS: frozenset({Analysis.PLOT, Analysis.REGRESSION}),
    ExpressionKind.SLIDER: frozenset(),
}

_missing = set(ExpressionKind) - set(ELIGIBLE_ANALYSES)
if _missing:
    raise RuntimeError(f"No analysis table entry for: {sorted(k.value for k in _missing)}")


def eligible_analyses(kind: ExpressionKind) -> FrozenSet[Analysis]:
    return ELIGIBLE_ANALYSES[kind]


# ------------------------ Kind detection ------------------------
_NUMBER = r"-?\d+(?:\.\d+)?"
_SLIDER_RE = re.compile(rf"^([a-wA-W])\s*=\s*({_NUMBER})$")
_POINT_RE = rf"\(\s*{_NUMBER}\s*,\s*{_NUMBER}\s*\)"
_POINTS_RE = re.compile(rf"^\s*{_POINT_RE}\s*(,\s*{_POINT_RE}\s*)*$")
_SECOND_ORDER_RE = re.compile(r"y''|d\^?2y/dx\^?2|\\frac\{d\^?\{?2\}?y\}\{dx\^?\{?2\}?\}")
_FIRST_ORDER_RE = re.compile(r"dy/dx|y'|\\frac\{dy\}\{dx\}")
_SERIES_RE = re.compile(r"\\sum|\\Sigma|\bsum\(|\\prod|\bprod\(")


def detect_kind(source: str) -> ExpressionKind:
    """
    Classify an expression by its surface form.

    The checks run as a priority chain: specific forms (sliders, point lists,
    ODEs) are tested before the generic ones so that e.g. ``y' = y`` is not
    mistaken for an implicit curve.
    """
    s = source.strip()
    if not s:
        return ExpressionKind.ALGEBRAIC
    body, restriction = parse_domain_restriction(s)
    if restriction is not None:
        s = body.strip()
    if _SLIDER_RE.match(s):
        return ExpressionKind.SLIDER
    if _POINTS_RE.match(s):
        return ExpressionKind.POINTS
    if re.search(r"<=|>=|<|>", s) and "!=" not in s:
        return ExpressionKind.INEQUALITY
    if _SECOND_ORDER_RE.search(s) or _FIRST_ORDER_RE.search(s):
        return ExpressionKind.DIFFERENTIAL
    if _SERIES_RE.search(s):
        return ExpressionKind.SERIES
    if "(t)" in s or (re.match(r"^[^=]*,[^=]*$", s) and re.search(r"\bt\b", s)):
        return ExpressionKind.PARAMETRIC
    if re.match(r"^r\s*[=(]", s):
        return ExpressionKind.POLAR
    if "=" in s and not re.match(r"^y\s*=", s):
        lhs = s.split("=")[0]
        if (re.search(r"[xy]", lhs) and "x" in s and "y" in s) or re.match(r"^\s*x\s*$", lhs):
            return ExpressionKind.IMPLICIT
    return ExpressionKind.ALGEBRAIC


def ode_order(source: str) -> int:
    """2 for y''/d2y/dx2 forms, otherwise 1."""
    return 2 if _SECOND_ORDER_RE.search(source) else 1


@dataclass(frozen=True)
class Expression:
    """
    Immutable user expression.

    Attributes:
        source: raw text as entered
        is_latex: True when ``source`` is LaTeX markup
    """
    source: str
    is_latex: bool = False

    @property
    def kind(self) -> ExpressionKind:
        if self.is_latex:
            from .latex import LaTeXConverter
            plain = LaTeXConverter.to_plain(self.source)
            if plain is None:
                return detect_kind(self.source)
            return detect_kind(plain)
        return detect_kind(self.source)

    def is_eligible(self, analysis: Analysis) -> bool:
        return analysis in ELIGIBLE_ANALYSES[self.kind]


# ------------------------ Small grammars ------------------------
def parse_slider(source: str) -> Optional[Tuple[str, float]]:
    """'a = 3' -> ('a', 3.0); anything else -> None."""
    m = _SLIDER_RE.match(source.strip())
    if not m:
        return None
    return m.group(1), float(m.group(2))


def parse_points(source: str) -> List[Tuple[float, float]]:
    """'(1, 2), (3, 4)' -> [(1.0, 2.0), (3.0, 4.0)]. Invalid input gives []."""
    if not _POINTS_RE.match(source.strip()):
        return []
    pairs = re.findall(rf"\(\s*({_NUMBER})\s*,\s*({_NUMBER})\s*\)", source)
    return [(float(a), float(b)) for a, b in pairs]


@dataclass(frozen=True)
class DomainRestriction:
    """
    Interval restriction on the ``x`` variable.

    ``lower``/``upper`` are None when unbounded on that side; ``excluded`` is a
    single value removed from the domain (``x != c``).
    """
    lower: Optional[float] = None
    upper: Optional[float] = None
    lower_strict: bool = True
    upper_strict: bool = True
    excluded: Optional[float] = None

    def contains(self, x: float) -> bool:
        return bool(self.mask(np.asarray(x, dtype=float)))

    def mask(self, x: np.ndarray) -> np.ndarray:
        ok = np.ones(np.shape(x), dtype=bool)
        if self.lower is not None:
            ok &= (x > self.lower) if self.lower_strict else (x >= self.lower)
        if self.upper is not None:
            ok &= (x < self.upper) if self.upper_strict else (x <= self.upper)
        if self.excluded is not None:
            ok &= x != self.excluded
        return ok


_DOMAIN_SUFFIX_RE = re.compile(r"^(.+?)\s*\{(.+)\}\s*$")
_RANGE_RE = re.compile(rf"^({_NUMBER})\s*(<=|<)\s*x\s*(<=|<)\s*({_NUMBER})$")
_SIMPLE_RE = re.compile(rf"^x\s*(>=|<=|>|<|!=)\s*({_NUMBER})$")


def parse_domain_restriction(source: str) -> Tuple[str, Optional[DomainRestriction]]:
    """
    Split ``"x^2 {x > 0}"`` into the body and its restriction.

    Supported conditions: ``a < x < b`` (either bound may use ``<=``) and
    ``x OP c`` with OP one of ``> >= < <= !=``. An unrecognised condition
    leaves the body unrestricted.
    """
    m = _DOMAIN_SUFFIX_RE.match(source)
    if not m:
        return source, None
    body, cond = m.group(1).strip(), m.group(2).strip()

    rm = _RANGE_RE.match(cond)
    if rm:
        return body, DomainRestriction(
            lower=float(rm.group(1)), upper=float(rm.group(4)),
            lower_strict=rm.group(2) == "<", upper_strict=rm.group(3) == "<",
        )

    sm = _SIMPLE_RE.match(cond)
    if sm:
        op, val = sm.group(1), float(sm.group(2))
        if op == "!=":
            return body, DomainRestriction(excluded=val)
        if op in (">", ">="):
            return body, DomainRestriction(lower=val, lower_strict=op == ">")
        return body, DomainRestriction(upper=val, upper_strict=op == "<")

    logger.debug(message_for("2006", cond))
    return body, None
