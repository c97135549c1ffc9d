# errors.py - exception taxonomy for the math engine
"""
Errors raised inside graph_engine.

Every error carries a human readable message, a four digit code and
(optionally) the offending expression. Codes are structured as:

1. digit: component (1 config, 2 compiler, 3 symbolic, 4 numerics/ODE/calculus,
   5 geometry, 6 regression/statistics/linear systems, 7 worker)
2.-4. digit: error number

Most of these never reach a caller: the compiler turns parse failures into
``None``, evaluators turn domain faults into NaN and the integrator reports
``ok=False``. They are raised where a component has to signal upwards and
caught at the component boundary.
"""
from typing import Optional


class EngineError(Exception):
    def __init__(self, message: str, code: str = "9999", equation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.equation = equation

    def __str__(self) -> str:
        if self.equation:
            return f"[{self.code}] {self.message} ({self.equation})"
        return f"[{self.code}] {self.message}"


class ConfigurationError(EngineError):
    pass


class ParseError(EngineError):
    pass


class DomainError(EngineError):
    pass


class ConvergenceError(EngineError):
    pass


class DegenerateInputError(EngineError):
    pass


class RequestCancelled(EngineError):
    pass


class UnknownRequestError(EngineError):
    pass


ERROR_MESSAGES = {
    "1000": "Could not read settings file: ",  # + path
    "1001": "Unknown setting: ",  # + key
    "1002": "Invalid value for setting: ",  # + key

    "2000": "Empty expression.",
    "2001": "Unbalanced braces or parentheses: ",  # + source
    "2002": "Unknown LaTeX macro: ",  # + macro
    "2003": "Malformed summation/product bounds: ",  # + source
    "2004": "Could not parse expression: ",  # + source
    "2005": "Recursive function definition: ",  # + names
    "2006": "Unsupported domain restriction: ",  # + condition
    "2007": "Not a linear equation: ",  # + equation

    "3000": "Could not determine a symbolic integral for ",  # + expr d var
    "3001": "Symbolic engine failed: ",  # + error
    "3002": "Integral diverges, the integrand is unbounded at ",  # + point

    "4000": "Evaluation outside of domain: ",  # + expression and point
    "4001": "Cannot rearrange implicit ODE. Try writing it as y' = f(x,y)",
    "4002": "Expected form: dy/dx = f(x,y), y' = f(x,y), or an implicit ODE containing y'",

    "5000": "Scalar field sampling exceeded its time budget.",

    "6000": "Not enough points for regression.",
    "6001": "The linear system has no unique solution.",
    "6002": "A linear system needs as many equations as unknowns: ",  # + unknowns
    "6003": "A linear system needs at least two equations.",

    "7000": "Request cancelled: ",  # + request name
    "7001": "Unknown request: ",  # + request name
    "7002": "Worker is not running.",

    "9999": "Unexpected Error: ",  # + error
}


def message_for(code: str, detail: str = "") -> str:
    """Return the registered message for ``code`` with ``detail`` appended."""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES["9999"]) + detail

# End of errors.py
