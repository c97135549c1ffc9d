# stats.py - descriptive statistics and histograms of a data set
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Sequence, Union

import numpy as np

from .errors import ParseError, message_for

logger = logging.getLogger(__name__)

Data = Union[str, Sequence[float], np.ndarray]

_SEPARATORS = re.compile(r"[\s,;]+")


@dataclass
class DescriptiveStats:
    """
    Summary of a data set. ``stddev`` and ``variance`` are population values,
    ``q1``/``q3`` the 25th and 75th percentiles averaged at exact ranks.
    An empty data set gives all zeros.
    """
    mean: float = 0.0
    median: float = 0.0
    stddev: float = 0.0
    variance: float = 0.0
    min: float = 0.0
    max: float = 0.0
    q1: float = 0.0
    q3: float = 0.0
    count: int = 0

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def steps(self, values: Sequence[float]) -> List[str]:
        shown = ", ".join(f"{v:g}" for v in values)
        return [
            f"Data: [{shown}]  (n = {self.count})",
            f"Mean: {self.mean:.4f}",
            f"Median: {self.median:.4f}",
            f"Standard Deviation: {self.stddev:.4f}",
            f"Variance: {self.variance:.4f}",
            f"Min: {self.min:g}, Max: {self.max:g}",
            f"Q1: {self.q1:.4f}, Q3: {self.q3:.4f}",
            f"IQR: {self.iqr:.4f}",
        ]


@dataclass
class HistogramBin:
    lo: float
    hi: float
    count: int = 0


def as_array(data: Data) -> np.ndarray:
    """Accept a list of numbers or text like ``"1, 2, 3"``; non-numeric tokens raise ParseError."""
    if isinstance(data, str):
        tokens = [t for t in _SEPARATORS.split(data.strip()) if t]
        try:
            return np.array([float(t) for t in tokens], dtype=float)
        except ValueError as exc:
            raise ParseError(message_for("2004", data), code="2004", equation=data) from exc
    return np.asarray(data, dtype=float).ravel()


def descriptive_stats(data: Data) -> DescriptiveStats:
    values = as_array(data)
    if values.size == 0:
        return DescriptiveStats()
    q1, q3 = np.percentile(values, [25, 75], method="averaged_inverted_cdf")
    return DescriptiveStats(
        mean=float(np.mean(values)),
        median=float(np.median(values)),
        stddev=float(np.std(values)),
        variance=float(np.var(values)),
        min=float(np.min(values)),
        max=float(np.max(values)),
        q1=float(q1),
        q3=float(q3),
        count=int(values.size),
    )


def histogram(data: Data, bins: int = 10) -> List[HistogramBin]:
    """
    ``bins`` equal-width bins from min to max. The last bin is closed so the
    maximum lands in it; a constant data set uses a total width of 1.
    """
    values = as_array(data)
    if values.size == 0:
        return []
    bins = max(1, int(bins))
    lo, hi = float(values.min()), float(values.max())
    step = ((hi - lo) or 1.0) / bins
    index = np.minimum(np.floor((values - lo) / step).astype(int), bins - 1)
    counts = np.bincount(index, minlength=bins)
    logger.debug("Histogram of %d values into %d bins", values.size, bins)
    return [HistogramBin(lo + i * step, lo + (i + 1) * step, int(counts[i])) for i in range(bins)]

# End of stats.py
