import pytest

from graph_engine.compiler import clear_cache
from graph_engine.config import EngineSettings, set_settings


@pytest.fixture(autouse=True)
def default_settings():
    """Every test starts from the default settings and an empty compile cache."""
    set_settings(EngineSettings())
    clear_cache()
    yield
    set_settings(EngineSettings())
    clear_cache()
