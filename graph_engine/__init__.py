"""graph_engine/ # root package
├── __init__.py # imports and version info
├── errors.py # EngineError taxonomy and message codes
├── config.py # EngineSettings, JSON/env loading
├── expressions.py # ExpressionKind, eligibility table, domain restrictions
├── latex.py # LaTeX -> plain text conversion and export
├── compiler.py # expression compiler, FunctionRegistry
├── symbolic_integration.py # rule-based integrator with sympy fallback
├── numerics.py # roots, extrema, intersections, Simpson, arc length
├── ode.py # RK4/LSODA, trajectories, flow lines, text solver
├── implicit.py # scalar fields, marching squares/cubes, edge crossings
├── regression.py # linear/quadratic/exponential fits
├── calculus.py # Taylor expansions, numerical limits
├── systems.py # square linear systems
├── stats.py # descriptive statistics, histograms
├── results.py # AnalysisResult
├── api.py # named requests
└── worker.py # background MathWorker"""

# graph_engine/__init__.py
"""
graph_engine: math engine for a graphing calculator.

Modules:
  expressions          - ExpressionKind classification and analysis eligibility
  compiler             - text/LaTeX expressions to CompiledFunction evaluators
  latex                - LaTeXConverter for LaTeX input and output
  symbolic_integration - step-by-step symbolic integration and differentiation
  numerics             - sampled roots, extrema, intersections, integrals
  ode                  - ODE integration, slope-field trajectories, flow lines
  implicit             - implicit curves and surfaces from scalar fields
  regression           - least-squares regression of point sets
  calculus             - Taylor expansions and two-sided numerical limits
  systems              - square linear systems solved with numpy
  stats                - descriptive statistics and histograms
  api / worker         - named requests and the background MathWorker

Usage:
  from graph_engine import compile_expression, find_roots
  f = compile_expression("y = x^2 - 4")
  find_roots(f, -5, 5)
"""
__version__ = "0.1.0"

# core imports
from .errors import (EngineError, ConfigurationError, ParseError, DomainError, ConvergenceError,
                     DegenerateInputError, RequestCancelled, UnknownRequestError)
from .config import EngineSettings, load_settings, get_settings, set_settings
from .expressions import Analysis, Expression, ExpressionKind, DomainRestriction, detect_kind, eligible_analyses
from .latex import LaTeXConverter
from .compiler import (CompiledFunction, FunctionRegistry, compile_expression, compile_implicit,
                       compile_parametric)
from .symbolic_integration import IntegrationResult, integrate, differentiate
from .numerics import Extrema, find_roots, find_extrema, find_intersections, simpson_integrate, arc_length
from .ode import ODESolution, solve, rk4, ode_trajectory, solve_ode_plot, flow_lines, solve_ode_text
from .implicit import ScalarField, Contour, sample_field_2d, sample_field_3d, marching_squares, marching_cubes, edge_crossings
from .regression import RegressionResult, fit
from .calculus import TaylorResult, LimitResult, taylor_expansion, numerical_limit
from .systems import LinearSystemResult, solve_linear_system
from .stats import DescriptiveStats, HistogramBin, descriptive_stats, histogram
from .results import AnalysisResult, ResultKind
from .worker import MathWorker, RequestHandle, get_math_worker, terminate_math_worker

# package-level shortcuts
__all__ = [
    "EngineError", "ConfigurationError", "ParseError", "DomainError", "ConvergenceError",
    "DegenerateInputError", "RequestCancelled", "UnknownRequestError",
    "EngineSettings", "load_settings", "get_settings", "set_settings",
    "Analysis", "Expression", "ExpressionKind", "DomainRestriction", "detect_kind", "eligible_analyses",
    "LaTeXConverter",
    "CompiledFunction", "FunctionRegistry", "compile_expression", "compile_implicit", "compile_parametric",
    "IntegrationResult", "integrate", "differentiate",
    "Extrema", "find_roots", "find_extrema", "find_intersections", "simpson_integrate", "arc_length",
    "ODESolution", "solve", "rk4", "ode_trajectory", "solve_ode_plot", "flow_lines", "solve_ode_text",
    "ScalarField", "Contour", "sample_field_2d", "sample_field_3d", "marching_squares", "marching_cubes",
    "edge_crossings",
    "RegressionResult", "fit",
    "TaylorResult", "LimitResult", "taylor_expansion", "numerical_limit",
    "LinearSystemResult", "solve_linear_system",
    "DescriptiveStats", "HistogramBin", "descriptive_stats", "histogram",
    "AnalysisResult", "ResultKind",
    "MathWorker", "RequestHandle", "get_math_worker", "terminate_math_worker",
]
