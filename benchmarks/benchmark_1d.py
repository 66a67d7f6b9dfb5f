"""Benchmark the JAX stages against the sequential reference.

1D compressible Euler weak blast wave on [-2, 2] with Hennemann-Gassner
shock capturing. Every stage is timed on its own on both targets, then the
end-to-end residuals are compared.

Usage:
    python benchmarks/benchmark_1d.py
    DGSEM_LEVEL=8 DGSEM_PRECISION=float32 python benchmarks/benchmark_1d.py --plot stages.png
"""

import argparse
import time

import numpy as np

from dgsem.config import RunConfig
from dgsem.core.basis import LobattoLegendreBasis
from dgsem.core.mesh import TreeMesh
from dgsem.equations import (
    CompressibleEulerEquations,
    flux_lax_friedrichs,
    flux_ranocha,
)
from dgsem.equations.compressible_euler import initial_condition_weak_blast_wave
from dgsem.log import get_logger
from dgsem.semidiscretization import SemidiscretizationHyperbolic
from dgsem.solvers import DGSEM, IndicatorHennemannGassner, VolumeIntegralShockCapturingHG
from dgsem.solvers import reference

logger = get_logger("dgsem.benchmark")


def create_semidiscretization(config):
    equations = CompressibleEulerEquations(ndims=1, gamma=1.4)
    basis = LobattoLegendreBasis(config.polydeg)
    indicator = IndicatorHennemannGassner(equations, basis, alpha_max=0.5,
                                          alpha_min=0.001, alpha_smooth=True)
    volume_integral = VolumeIntegralShockCapturingHG(
        indicator, volume_flux_dg=flux_ranocha, volume_flux_fv=flux_lax_friedrichs)
    solver = DGSEM(basis, flux_lax_friedrichs, volume_integral)

    mesh = TreeMesh(config.coordinates_min, config.coordinates_max,
                    initial_refinement_level=config.initial_refinement_level,
                    n_cells_max=10 ** 6)
    return SemidiscretizationHyperbolic(mesh, equations, initial_condition_weak_blast_wave,
                                        solver, dtype=config.dtype)


def time_stage(fn, n_warmup, n_repeat):
    for _ in range(n_warmup):
        fn()
    times = []
    for _ in range(n_repeat):
        t0 = time.perf_counter()
        fn()
        times.append(time.perf_counter() - t0)
    return np.mean(times), np.std(times)


def _noop():
    pass


def reference_stages(semi, du, u, t):
    """Host stages by name; stages over an empty face catalog are no-ops."""
    mesh, equations, dg, cache = semi.mesh, semi.equations, semi.solver, semi.cache
    sfv = cache.elements.surface_flux_values
    stages = {
        "reset_du": lambda: reference.reset_du(du),
        "volume_integral": lambda: reference.calc_volume_integral(
            du, u, mesh, equations, dg.volume_integral, dg, cache),
        "prolong2interfaces": lambda: reference.prolong2interfaces(cache, u, equations, dg),
        "interface_flux": lambda: reference.calc_interface_flux(sfv, equations, dg, cache),
        "prolong2boundaries": lambda: reference.prolong2boundaries(cache, u, equations, dg),
        "boundary_flux": lambda: reference.calc_boundary_flux(
            cache, t, semi.boundary_conditions, equations, dg),
        "prolong2mortars": lambda: reference.prolong2mortars(cache, u, equations, dg),
        "mortar_flux": lambda: reference.calc_mortar_flux(sfv, equations, dg, cache),
        "surface_integral": lambda: reference.calc_surface_integral(du, u, equations, dg, cache),
        "apply_jacobian": lambda: reference.apply_jacobian(du, equations, dg, cache),
        "calc_sources": lambda: reference.calc_sources(
            du, u, t, semi.source_terms, equations, dg, cache),
        "rhs": lambda: semi.rhs(du, u, t),
    }
    return _skip_empty(stages, cache.nboundaries, cache.nmortars)


def device_stages(semi_jax, du, u, t):
    """Device stages by name, same keys as `reference_stages`."""
    stages = {
        "reset_du": lambda: semi_jax.reset_du(du),
        "volume_integral": lambda: semi_jax.volume_integral(du, u),
        "prolong2interfaces": lambda: semi_jax.prolong2interfaces(u),
        "interface_flux": lambda: semi_jax.interface_flux(),
        "prolong2boundaries": lambda: semi_jax.prolong2boundaries(u),
        "boundary_flux": lambda: semi_jax.boundary_flux(t),
        "prolong2mortars": lambda: semi_jax.prolong2mortars(u),
        "mortar_flux": lambda: semi_jax.mortar_flux(),
        "surface_integral": lambda: semi_jax.surface_integral(du),
        "apply_jacobian": lambda: semi_jax.apply_jacobian(du),
        "calc_sources": lambda: semi_jax.calc_sources(du, u, t),
        "rhs": lambda: semi_jax.rhs(du, u, t),
    }
    return _skip_empty(stages, semi_jax.nboundaries, semi_jax.nmortars)


def _skip_empty(stages, nboundaries, nmortars):
    if nboundaries == 0:
        stages["prolong2boundaries"] = stages["boundary_flux"] = _noop
    if nmortars == 0:
        stages["prolong2mortars"] = stages["mortar_flux"] = _noop
    return stages


def plot_timings(results, filename):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    names = list(results)
    x = np.arange(len(names))
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(x - 0.2, [results[n][0] * 1e3 for n in names], 0.4, label="reference")
    ax.bar(x + 0.2, [results[n][1] * 1e3 for n in names], 0.4, label="jax")
    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=30, ha="right")
    ax.set_ylabel("time per call [ms]")
    ax.set_yscale("log")
    ax.legend()
    fig.tight_layout()
    fig.savefig(filename, dpi=150)
    plt.close(fig)
    logger.info(f"[dgsem] Stage timings plotted to {filename}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--plot", default=None, help="save a bar chart of the stage timings")
    args = parser.parse_args()

    from dgsem.solvers.jax.containers_jax import copy_to_device, copy_to_host
    from dgsem.solvers.jax.semidiscretization_jax import SemidiscretizationJAX

    config = RunConfig()
    logger.info("=" * 70)
    logger.info("BENCHMARK: JAX vs reference DG-SEM stages (1D weak blast wave)")
    logger.info("=" * 70)
    logger.info(f"  {config}")

    semi = create_semidiscretization(config)
    u = semi.compute_coefficients(config.t)
    du = np.zeros_like(u)
    semi_jax = SemidiscretizationJAX(semi, dtype=config.dtype)
    du_device, u_device = copy_to_device(du, u, dtype=config.dtype)

    # prime the device traces so that the flux stages see valid data
    semi_jax.rhs(du_device, u_device, config.t)

    ref = reference_stages(semi, du, u, config.t)
    dev = device_stages(semi_jax, du_device, u_device, config.t)

    results = {}
    logger.info(f"\n{'stage':<22}{'reference [ms]':>18}{'jax [ms]':>14}{'speedup':>10}")
    logger.info("-" * 64)
    for name in ref:
        mean_ref, _ = time_stage(ref[name], config.n_warmup, config.n_repeat)
        mean_dev, _ = time_stage(dev[name], config.n_warmup, config.n_repeat)
        results[name] = (mean_ref, mean_dev)
        speedup = mean_ref / mean_dev if mean_dev > 0 else float("nan")
        logger.info(f"{name:<22}{mean_ref * 1e3:>18.3f}{mean_dev * 1e3:>14.3f}{speedup:>9.1f}x")

    du_ref = semi.rhs(np.zeros_like(u), u, config.t)
    du_jax = semi_jax.rhs(du_device, u_device, config.t)
    du_jax, _ = copy_to_host(du_jax, u_device)
    du_ref = du_ref.astype(np.float64)
    error = np.linalg.norm(du_jax.astype(np.float64) - du_ref) / np.linalg.norm(du_ref)
    status = "PASS" if error <= config.rtol else "FAIL"
    logger.info("-" * 64)
    logger.info(f"  rhs relative error: {error:.3e} (tolerance {config.rtol:.0e}) {status}")

    if args.plot:
        plot_timings(results, args.plot)


if __name__ == "__main__":
    main()
