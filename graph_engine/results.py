# results.py - tagged analysis results
"""
AnalysisResult is the record every named request answers with.
The ``kind`` tag tells consumers how to read ``value``:

  SCALAR       float, or the display string of a symbolic answer
  VECTOR       list of floats
  MATRIX       numpy array (sampled fields, triangle lists)
  POINT        (x, y)
  POINT_SET    list of (x, y), or a mapping of named point lists
  CONTOUR_SET  list of polylines
  RECORD       mapping of named values (solutions, summary statistics)
  ERROR        value is None, ``error`` holds the message
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


class ResultKind(Enum):
    SCALAR = "scalar"
    VECTOR = "vector"
    MATRIX = "matrix"
    POINT = "point"
    POINT_SET = "point-set"
    CONTOUR_SET = "contour-set"
    RECORD = "record"
    ERROR = "error"


@dataclass
class AnalysisResult:
    kind: ResultKind
    value: Any = None
    method: Optional[str] = None
    steps: List[str] = field(default_factory=list)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.kind is not ResultKind.ERROR

    @classmethod
    def failure(cls, error: str, method: Optional[str] = None, steps: Optional[List[str]] = None) -> "AnalysisResult":
        return cls(ResultKind.ERROR, None, method, list(steps or []), error)

    def to_dict(self) -> Dict[str, Any]:
        """
        Plain record: numpy scalars become Python numbers, tuples become lists.
        Arrays stay numpy arrays so large fields are not copied element by element.
        """
        return {
            "kind": self.kind.value,
            "value": _plain(self.value),
            "method": self.method,
            "steps": list(self.steps),
            "error": self.error,
            "meta": _plain(self.meta),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value
