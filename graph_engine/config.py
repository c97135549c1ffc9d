# config.py - engine settings
"""
Tunable limits of the math engine.

Settings come from three layers, later layers win:
  1. the defaults below
  2. an optional JSON file (``load_settings(path)``)
  3. environment variables ``GRAPH_ENGINE_<FIELD>`` (e.g. GRAPH_ENGINE_IMPLICIT_TIME_BUDGET=1.5)
"""
import json
import logging
import os
from dataclasses import dataclass, fields, replace, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import ConfigurationError, message_for

logger = logging.getLogger(__name__)

ENV_PREFIX = "GRAPH_ENGINE_"


@dataclass(frozen=True)
class EngineSettings:
    # analysis sampling
    analysis_samples: int = 200
    intersection_limit: int = 20
    simpson_intervals: int = 1000
    arc_length_intervals: int = 200
    derivative_step: float = 1e-6
    zero_tolerance: float = 1e-10

    # ODE
    ode_steps: int = 400
    ode_value_bound: float = 1e6
    flow_value_bound: float = 1e4
    flow_duration: float = 10.0
    flow_steps: int = 200
    adaptive_tolerance: float = 1e-8

    # implicit geometry
    contour_grid_size: int = 100
    implicit_view_min: float = -5.0
    implicit_view_max: float = 5.0
    implicit_resolution: int = 180
    implicit_time_budget: float = 3.6  # seconds
    implicit_max_polygons: int = 80000
    edge_crossing_max_points: int = 1500

    # compiler
    compile_cache_size: int = 64
    max_series_terms: int = 10000


def _coerce(name: str, raw: Any, template: Any) -> Any:
    try:
        if isinstance(template, bool):
            if isinstance(raw, str):
                return raw.strip().lower() in ("1", "true", "yes", "on")
            return bool(raw)
        return type(template)(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(message_for("1002", name), code="1002")


def _apply(settings: EngineSettings, overrides: Dict[str, Any]) -> EngineSettings:
    known = {f.name for f in fields(EngineSettings)}
    values = {}
    for key, raw in overrides.items():
        if key not in known:
            raise ConfigurationError(message_for("1001", key), code="1001")
        values[key] = _coerce(key, raw, getattr(settings, key))
    return replace(settings, **values)


def load_settings(path: Optional[Union[str, Path]] = None, env: Optional[Dict[str, str]] = None) -> EngineSettings:
    """
    Build settings from defaults, an optional JSON file and the environment.

    Args:
        path: JSON file holding a flat mapping of setting name -> value
        env: mapping to read ``GRAPH_ENGINE_*`` overrides from (defaults to os.environ)
    """
    settings = EngineSettings()

    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                file_values = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(message_for("1000", str(path)), code="1000") from exc
        if not isinstance(file_values, dict):
            raise ConfigurationError(message_for("1000", str(path)), code="1000")
        settings = _apply(settings, file_values)
        logger.debug("Loaded %d settings from %s", len(file_values), path)

    env = os.environ if env is None else env
    env_values = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX)
    }
    if env_values:
        settings = _apply(settings, env_values)
        logger.debug("Applied environment overrides: %s", sorted(env_values))

    return settings


def save_settings(settings: EngineSettings, path: Union[str, Path]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(settings), f, indent=4)


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Process-wide settings, loaded lazily on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_settings(settings: EngineSettings) -> None:
    global _settings
    _settings = settings

# End of config.py
