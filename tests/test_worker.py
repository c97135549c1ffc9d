import threading
from concurrent.futures import CancelledError

import pytest

from graph_engine import api
from graph_engine.errors import EngineError, RequestCancelled, UnknownRequestError
from graph_engine.results import AnalysisResult, ResultKind
from graph_engine.worker import MathWorker, get_math_worker, terminate_math_worker

TIMEOUT = 30


@pytest.fixture
def worker():
    w = MathWorker()
    yield w
    w.terminate(timeout=TIMEOUT)


@pytest.fixture
def gate(monkeypatch):
    """A 'block' request that waits for the returned event before finishing."""
    release = threading.Event()
    started = threading.Event()

    def block(cancel=None):
        started.set()
        release.wait(TIMEOUT)
        return AnalysisResult(ResultKind.SCALAR, 1.0)

    monkeypatch.setitem(api.HANDLERS, "block", block)
    return started, release


def test_named_request_round_trip(worker):
    record = worker.call("find_zeros", timeout=TIMEOUT, expr="x^2 - 4", x_min=-5, x_max=5)
    assert record["kind"] == "vector"
    assert record["value"] == [pytest.approx(-2, abs=1e-3), pytest.approx(2, abs=1e-3)]


def test_unknown_request_is_rejected(worker):
    with pytest.raises(UnknownRequestError) as info:
        worker.submit("no_such_request")
    assert info.value.code == "7001"


def test_requests_run_in_submission_order(worker, monkeypatch):
    order = []

    def record(value, cancel=None):
        order.append(value)
        return AnalysisResult(ResultKind.SCALAR, value)

    monkeypatch.setitem(api.HANDLERS, "record", record)
    handles = [worker.submit("record", value=i) for i in range(20)]
    assert [h.result(TIMEOUT)["value"] for h in handles] == list(range(20))
    assert order == list(range(20))


def test_cancel_queued_request(worker, gate):
    started, release = gate
    first = worker.submit("block")
    assert started.wait(TIMEOUT)
    second = worker.submit("find_zeros", expr="x", x_min=-1, x_max=1)
    second.cancel()
    release.set()
    assert first.result(TIMEOUT)["value"] == 1.0
    assert second.cancelled()
    with pytest.raises(CancelledError):
        second.result(TIMEOUT)


def test_cancel_running_request_delivers_no_partial_result(worker, monkeypatch):
    started = threading.Event()

    def spin(cancel=None):
        started.set()
        while not cancel.wait(0.01):
            pass
        raise RequestCancelled("stopped", code="7000")

    monkeypatch.setitem(api.HANDLERS, "spin", spin)
    handle = worker.submit("spin")
    assert started.wait(TIMEOUT)
    handle.cancel()
    with pytest.raises(CancelledError):
        handle.result(TIMEOUT)


def test_handler_exception_becomes_error_record(worker, monkeypatch):
    def broken(cancel=None):
        raise RuntimeError("boom")

    monkeypatch.setitem(api.HANDLERS, "broken", broken)
    record = worker.call("broken", timeout=TIMEOUT)
    assert record["kind"] == "error"
    assert "boom" in record["error"]


def test_terminated_worker_refuses_requests():
    w = MathWorker()
    w.terminate(timeout=TIMEOUT)
    assert not w.running
    with pytest.raises(EngineError) as info:
        w.submit("find_zeros", expr="x", x_min=-1, x_max=1)
    assert info.value.code == "7002"


def test_module_worker_is_shared():
    try:
        assert get_math_worker() is get_math_worker()
    finally:
        terminate_math_worker(timeout=TIMEOUT)


# -------------------- Handlers --------------------
def test_compile_failure_is_an_error_result():
    result = api.find_zeros("(x +", -1, 1)
    assert result.kind is ResultKind.ERROR
    assert result.error.startswith("Could not parse expression: ")


def test_marching_squares_request():
    result = api.marching_squares("x^2 + y^2 = 1", -2, 2, -2, 2, grid_size=40)
    assert result.kind is ResultKind.CONTOUR_SET
    assert len(result.value) == 1
    assert result.value[0]["closed"]


def test_find_extrema_request_reports_values():
    result = api.find_extrema("(x - 0.33)^2 + 1", -5, 5)
    (x, y), = result.value["minima"]
    assert x == pytest.approx(0.33, abs=1e-3)
    assert y == pytest.approx(1, abs=1e-6)
    assert result.value["maxima"] == []


def test_sample_implicit_field_request_reports_time_out():
    result = api.sample_implicit_field("x + y + z = 0", resolution=10, time_budget=0)
    assert result.kind is ResultKind.MATRIX
    assert result.meta["timed_out"]
    assert result.value.shape == (11, 11, 11)


def test_extract_isosurface_request():
    result = api.extract_isosurface("x^2 + y^2 + z^2 = 4", resolution=16)
    assert result.value.shape[1:] == (3, 3)
    assert result.meta["triangles"] == len(result.value)


def test_symbolic_requests():
    record = api.integrate_symbolic("3*x^2 + 2*x + 1").to_dict()
    assert record["value"] == "x^3 + x^2 + x"
    assert record["method"] == "rules"
    assert record["meta"]["latex"] == "x^{3} + x^{2} + x"
    definite = api.integrate_symbolic("x", bounds=[0, 2])
    assert definite.meta["value"] == pytest.approx(2)
    assert api.differentiate("sin(x)").value == "cos(x)"
    failed = api.integrate_symbolic("x^x")
    assert failed.kind is ResultKind.ERROR


def test_ode_requests():
    text = api.solve_ode_text("dy/dx = x")
    assert text.value == "y = 0.5x^2 + 0x + C"
    assert api.solve_ode_text("x + 1").kind is ResultKind.ERROR
    traj = api.compute_slope_field_solution("y", -1, 1)
    assert traj.kind is ResultKind.POINT_SET and traj.value
    flows = api.solve_system_ode_plot("-y", "x", -1, 1, -1, 1, 1, 1)
    assert len(flows.value) == 9


def test_regression_request():
    result = api.compute_regression([[1, 2], [2, 4], [3, 6]])
    assert result.value == [pytest.approx(2), pytest.approx(0, abs=1e-12)]
    assert result.meta["r2"] == pytest.approx(1)
    assert api.compute_regression([[1, 2]]).error == "Not enough points for regression."
    assert api.compute_regression([[1, 2], [2, 3]], kind="cubic").kind is ResultKind.ERROR


def test_numeric_requests():
    assert api.simpson_integrate("x^2", 0, 3).value == pytest.approx(9)
    assert api.compute_arc_length("x", 0, 1).value == pytest.approx(2 ** 0.5, abs=1e-6)
    points = api.find_intersections("x^2", "x + 1", -3, 3).value
    assert len(points) == 2
    crossings = api.edge_crossings("x^2 + y^2 = 1", -2, 2, -2, 2, resolution=40).value
    assert crossings.shape[1] == 2


def test_every_named_request_is_registered():
    assert set(api.HANDLERS) >= {
        "marching_squares", "edge_crossings", "find_zeros", "find_extrema", "find_intersections",
        "simpson_integrate", "compute_arc_length", "sample_implicit_field", "extract_isosurface",
        "solve_ode_plot", "compute_slope_field_solution", "solve_system_ode_plot", "solve_ode_text",
        "integrate_symbolic", "differentiate", "compute_regression", "taylor_expansion", "compute_limit",
        "solve_linear_system", "descriptive_stats", "histogram",
    }


def test_definite_integral_request_falls_back_to_simpson():
    result = api.integrate_symbolic("x^x", bounds=[0, 1])
    assert result.method == "simpson"
    assert result.meta["value"] == pytest.approx(0.78343, abs=1e-4)
    diverges = api.integrate_symbolic("1/x", bounds=[-1, 1])
    assert diverges.kind is ResultKind.ERROR
    assert diverges.error.startswith("Integral diverges")


def test_calculus_requests():
    taylor = api.taylor_expansion("sin(x)", order=3)
    assert taylor.value == "x - 0.1667x^{3}"
    assert taylor.meta["coefficients"] == pytest.approx([0, 1, 0, -1 / 6])
    assert api.taylor_expansion("ln(x)").error.startswith("Evaluation outside of domain")
    limit = api.compute_limit("sin(x)/x", 0)
    assert limit.value == pytest.approx(1, abs=1e-6)
    assert limit.steps[-1] == "Limit = 1.000000"
    jump = api.compute_limit("abs(x)/x", 0)
    assert jump.ok and not jump.meta["exists"]
    assert jump.steps[-1] == "Limit = DNE"


def test_linear_system_request():
    result = api.solve_linear_system("2x + y = 5, x - y = 1")
    assert result.kind is ResultKind.RECORD
    assert result.value == {"x": pytest.approx(2), "y": pytest.approx(1)}
    assert result.meta["output"] == "x = 2, y = 1"
    singular = api.solve_linear_system("x + y = 1, 2x + 2y = 2")
    assert singular.error == "The linear system has no unique solution."


def test_statistics_requests():
    summary = api.descriptive_stats("2, 4, 4, 4, 5, 5, 7, 9").to_dict()
    assert summary["kind"] == "record"
    assert summary["value"]["stddev"] == pytest.approx(2)
    assert summary["value"]["count"] == 8
    assert api.descriptive_stats("1, x").kind is ResultKind.ERROR
    bins = api.histogram([0, 1, 2, 3], bins=2)
    assert bins.value == [2, 2]
    assert bins.meta["bins"][1] == {"lo": 1.5, "hi": 3.0, "count": 2}
