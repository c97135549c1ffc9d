import json

import pytest

from graph_engine.config import EngineSettings, get_settings, load_settings, save_settings, set_settings
from graph_engine.errors import ConfigurationError
from graph_engine.numerics import find_intersections
from graph_engine.compiler import compile_expression


def test_defaults():
    settings = load_settings(env={})
    assert settings == EngineSettings()
    assert settings.implicit_resolution == 180
    assert settings.implicit_time_budget == 3.6
    assert settings.compile_cache_size == 64


def test_file_then_environment(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"analysis_samples": 400, "implicit_time_budget": 1.5}))
    settings = load_settings(path, env={"GRAPH_ENGINE_ANALYSIS_SAMPLES": "800", "HOME": "/root"})
    assert settings.analysis_samples == 800
    assert settings.implicit_time_budget == 1.5


def test_save_and_reload(tmp_path):
    path = tmp_path / "engine.json"
    save_settings(EngineSettings(ode_steps=123), path)
    assert load_settings(path, env={}).ode_steps == 123


@pytest.mark.parametrize("overrides, code", [
    ({"GRAPH_ENGINE_NO_SUCH_SETTING": "1"}, "1001"),
    ({"GRAPH_ENGINE_ODE_STEPS": "many"}, "1002"),
])
def test_bad_environment(overrides, code):
    with pytest.raises(ConfigurationError) as info:
        load_settings(env=overrides)
    assert info.value.code == code


def test_unreadable_file(tmp_path):
    with pytest.raises(ConfigurationError) as info:
        load_settings(tmp_path / "missing.json", env={})
    assert info.value.code == "1000"
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_settings(broken, env={})


def test_settings_drive_defaults():
    set_settings(EngineSettings(intersection_limit=1))
    assert get_settings().intersection_limit == 1
    points = find_intersections(compile_expression("x^2"), compile_expression("x + 1"), -3, 3)
    assert len(points) == 1
