"""
Demo script for graph_engine.
Covers: compiling plain-text and LaTeX expressions, roots/extrema/intersections,
Simpson integrals, step-by-step symbolic integration, slope-field trajectories,
flow lines, implicit curves and surfaces, regression and the background worker.

Requires the optional plotting extra (pip install graph-engine[plot]).
"""
import os

import matplotlib.pyplot as plt
import numpy as np

from graph_engine import (
    compile_expression,
    compile_implicit,
    find_roots,
    find_extrema,
    find_intersections,
    simpson_integrate,
    integrate,
    ode_trajectory,
    flow_lines,
    sample_field_2d,
    sample_field_3d,
    marching_squares,
    marching_cubes,
    fit,
    get_math_worker,
    terminate_math_worker,
)
from graph_engine.ode import FIRST_ORDER


def save_matplotlib_figure(fig, filename):
    """Helper function to save matplotlib figures with consistent style and show them."""
    plt.show()
    fig.savefig(filename, bbox_inches='tight', dpi=200)
    plt.close(fig)


def main():
    os.makedirs("figures", exist_ok=True)

    print("\n1. Function analysis")
    print("--------------------")
    f = compile_expression("y = x^3 - 3x")
    g = compile_expression("\\frac{1}{2}x + 1", is_latex=True)
    roots = find_roots(f, -3, 3)
    extrema = find_extrema(f, -3, 3)
    crossings = find_intersections(f, g, -3, 3)
    area = simpson_integrate(f, 0, 2)
    print(f"roots: {np.round(roots, 4)}")
    print(f"minima: {np.round(extrema.minima, 4)}, maxima: {np.round(extrema.maxima, 4)}")
    print(f"intersections with x/2 + 1: {[(round(x, 4), round(y, 4)) for x, y in crossings]}")
    print(f"∫_0^2 f dx ≈ {area:.6f}")

    xs = np.linspace(-3, 3, 400)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(xs, f.evaluate_grid(x=xs), label="x^3 - 3x")
    ax.plot(xs, g.evaluate_grid(x=xs), label="x/2 + 1")
    ax.scatter(roots, np.zeros(len(roots)), color="k", zorder=3)
    ax.scatter(*zip(*crossings), color="r", zorder=3)
    ax.set_ylim(-5, 5)
    ax.legend()
    save_matplotlib_figure(fig, "figures/function_analysis.png")

    print("\n2. Symbolic integration")
    print("-----------------------")
    for integrand in ("3*x^2 + 2*x + 1", "cos(2x)", "1/(1 + x^2)", "x*e^x"):
        result = integrate(integrand)
        print(f"∫ {integrand} dx = {result.result} + C   [{result.method}]")
        for step in result.steps:
            print(f"    {step}")

    print("\n3. Slope field and flow lines")
    print("-----------------------------")
    trajectory = ode_trajectory("x - y", FIRST_ORDER, -4, 4)
    lines = flow_lines("-y", "x - 0.2y", -3, 3, -3, 3, 1.5, 1.5)
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(10, 4))
    X, Y = np.meshgrid(np.linspace(-4, 4, 17), np.linspace(-4, 4, 17))
    slope = compile_expression("x - y", mode="none").evaluate_grid(x=X, y=Y)
    norm = np.hypot(1, slope)
    ax1.quiver(X, Y, 1 / norm, slope / norm, angles="xy", color="0.6")
    ax1.plot(*zip(*trajectory), color="C0")
    ax1.set_xlim(-4, 4)
    ax1.set_ylim(-4, 4)
    ax1.set_title("y' = x - y, y(0) = 1")
    for line in lines:
        ax2.plot(*zip(*line), lw=0.8)
    ax2.set_aspect("equal")
    ax2.set_title("x' = -y, y' = x - 0.2y")
    save_matplotlib_figure(fig, "figures/ode.png")
    print(f"trajectory points: {len(trajectory)}, flow lines: {len(lines)}")

    print("\n4. Implicit geometry")
    print("--------------------")
    field = sample_field_2d(compile_implicit("x^4 + y^4 - 2xy = 1"), ((-2, 2), (-2, 2)), 150)
    contours = marching_squares(field)
    fig, ax = plt.subplots(figsize=(5, 5))
    for contour in contours:
        ax.plot(contour.points[:, 0], contour.points[:, 1])
    ax.set_aspect("equal")
    save_matplotlib_figure(fig, "figures/implicit_curve.png")

    volume = sample_field_3d(compile_implicit("x^2 + y^2 - z^2 = 1"), resolution=60)
    triangles = marching_cubes(volume)
    print(f"curve pieces: {len(contours)}, surface triangles: {len(triangles)}, "
          f"timed out: {volume.timed_out}")
    fig = plt.figure(figsize=(6, 6))
    ax = fig.add_subplot(projection="3d")
    ax.plot_trisurf(*triangles.reshape(-1, 3).T,
                    triangles=np.arange(len(triangles) * 3).reshape(-1, 3), alpha=0.6)
    save_matplotlib_figure(fig, "figures/implicit_surface.png")

    print("\n5. Regression")
    print("-------------")
    rng = np.random.default_rng(0)
    px = np.linspace(0, 4, 12)
    points = np.column_stack([px, 2 * np.exp(0.6 * px) * rng.normal(1, 0.05, px.size)])
    for kind in ("linear", "quadratic", "exponential"):
        model = fit(points.tolist(), kind)
        print(f"{kind:12s} {model.equation:32s} r² = {model.r2:.4f}")

    print("\n6. Background worker")
    print("--------------------")
    worker = get_math_worker()
    handles = [
        worker.submit("find_zeros", expr="sin(x)", x_min=-7, x_max=7),
        worker.submit("solve_ode_text", source="y' = 2y + 4"),
        worker.submit("compute_regression", points=points.tolist(), kind="exponential"),
    ]
    for handle in handles:
        record = handle.result(timeout=30)
        print(f"{handle.name}: {record['value']}")
    terminate_math_worker()


if __name__ == "__main__":
    main()
