"""
Shared problem setups and comparison helpers for the test suite.
"""

import numpy as np

from dgsem.backend import get_array_module
from dgsem.core.basis import LobattoLegendreBasis
from dgsem.core.mesh import TreeMesh
from dgsem.equations import (
    BoundaryConditionDirichlet,
    CompressibleEulerEquations,
    LinearScalarAdvectionEquation,
    ShallowWaterEquations,
    boundary_condition_slip_wall,
    flux_lax_friedrichs,
    flux_nonconservative_wintermeyer_etal,
    flux_ranocha,
    flux_shima_etal,
    flux_wintermeyer_etal,
    source_terms_convergence_test,
    waterheight_pressure,
)
from dgsem.equations import compressible_euler, linear_scalar_advection, shallow_water
from dgsem.semidiscretization import SemidiscretizationHyperbolic
from dgsem.solvers import (
    DGSEM,
    IndicatorHennemannGassner,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)


def assert_norm_close(actual, expected, rtol, atol=1e-13, name="array"):
    """Norm-based comparison: ||a - b|| <= rtol * max(||a||, ||b||) + atol."""
    actual = np.asarray(actual, dtype=np.float64)
    expected = np.asarray(expected, dtype=np.float64)
    assert actual.shape == expected.shape, f"{name}: shape {actual.shape} != {expected.shape}"
    error = np.linalg.norm(actual - expected)
    scale = max(np.linalg.norm(actual), np.linalg.norm(expected))
    assert error <= rtol * scale + atol, (
        f"{name}: ||diff|| = {error:.3e} exceeds {rtol:.1e} * {scale:.3e}")


class ConstantIndicator:
    """Blending provider returning the same alpha for every element."""

    def __init__(self, value):
        self.value = value

    def __call__(self, u, mesh, equations, dg, cache):
        xp = get_array_module(u)
        return self.value + xp.zeros(u.shape[-1], dtype=u.dtype)


def patch_right_half(ndims):
    """Refine the cells with x > 0 once."""
    return [{"type": "box",
             "coordinates_min": (0.0,) + (-1.0,) * (ndims - 1),
             "coordinates_max": (1.0,) * ndims}]


# =============================================================================
# Setups
# =============================================================================

def euler_1d_blast_wave(level=5, polydeg=3, indicator=None, dtype=np.float64):
    """1D weak blast wave on [-2, 2] with shock capturing."""
    equations = CompressibleEulerEquations(ndims=1)
    basis = LobattoLegendreBasis(polydeg)
    if indicator is None:
        indicator = IndicatorHennemannGassner(equations, basis, alpha_max=0.5,
                                              alpha_min=0.001, alpha_smooth=True)
    solver = DGSEM(basis, surface_flux=flux_lax_friedrichs,
                   volume_integral=VolumeIntegralShockCapturingHG(
                       indicator, volume_flux_dg=flux_ranocha, volume_flux_fv=flux_lax_friedrichs))
    mesh = TreeMesh(-2.0, 2.0, initial_refinement_level=level)
    return SemidiscretizationHyperbolic(mesh, equations,
                                        compressible_euler.initial_condition_weak_blast_wave,
                                        solver, dtype=dtype)


def euler_1d_convergence(level, polydeg=3):
    equations = CompressibleEulerEquations(ndims=1)
    solver = DGSEM(polydeg, surface_flux=flux_lax_friedrichs,
                   volume_integral=VolumeIntegralWeakForm())
    mesh = TreeMesh(0.0, 2.0, initial_refinement_level=level)
    return SemidiscretizationHyperbolic(mesh, equations,
                                        compressible_euler.initial_condition_convergence_test,
                                        solver, source_terms=source_terms_convergence_test)


def advection_2d_mortar(polydeg=3, dtype=np.float64):
    equations = LinearScalarAdvectionEquation((0.2, -0.7))
    solver = DGSEM(polydeg, surface_flux=flux_lax_friedrichs)
    mesh = TreeMesh((-1.0, -1.0), (1.0, 1.0), initial_refinement_level=2,
                    refinement_patches=patch_right_half(2))
    return SemidiscretizationHyperbolic(mesh, equations,
                                        linear_scalar_advection.initial_condition_gauss, solver,
                                        dtype=dtype)


def advection_3d_mortar(polydeg=3):
    equations = LinearScalarAdvectionEquation((0.2, -0.7, 0.5))
    solver = DGSEM(polydeg, surface_flux=flux_lax_friedrichs)
    mesh = TreeMesh((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0), initial_refinement_level=1,
                    refinement_patches=patch_right_half(3))
    return SemidiscretizationHyperbolic(
        mesh, equations, linear_scalar_advection.initial_condition_convergence_test, solver)


def euler_2d_slip_walls(polydeg=3, dtype=np.float64):
    """Flux differencing on a non-periodic mortar mesh with slip walls."""
    equations = CompressibleEulerEquations(ndims=2)
    solver = DGSEM(polydeg, surface_flux=flux_lax_friedrichs,
                   volume_integral=VolumeIntegralFluxDifferencing(flux_ranocha))
    mesh = TreeMesh((-1.0, -1.0), (1.0, 1.0), initial_refinement_level=2,
                    refinement_patches=patch_right_half(2), periodicity=False)
    return SemidiscretizationHyperbolic(mesh, equations,
                                        compressible_euler.initial_condition_weak_blast_wave,
                                        solver, boundary_conditions=boundary_condition_slip_wall,
                                        dtype=dtype)


def euler_3d_convergence(polydeg=2):
    """Flux differencing with source terms on a 3D mortar mesh."""
    equations = CompressibleEulerEquations(ndims=3)
    solver = DGSEM(polydeg, surface_flux=flux_lax_friedrichs,
                   volume_integral=VolumeIntegralFluxDifferencing(flux_shima_etal))
    mesh = TreeMesh((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0), initial_refinement_level=1,
                    refinement_patches=patch_right_half(3))
    return SemidiscretizationHyperbolic(mesh, equations,
                                        compressible_euler.initial_condition_convergence_test,
                                        solver, source_terms=source_terms_convergence_test)


def shallow_water_1d_dirichlet(polydeg=3):
    """Nonconservative system with Dirichlet boundaries and shock capturing."""
    equations = ShallowWaterEquations(ndims=1, gravity_constant=9.81)
    basis = LobattoLegendreBasis(polydeg)
    indicator = IndicatorHennemannGassner(equations, basis, alpha_max=0.5,
                                          alpha_min=0.001, variable=waterheight_pressure)
    volume_integral = VolumeIntegralShockCapturingHG(
        indicator,
        volume_flux_dg=(flux_wintermeyer_etal, flux_nonconservative_wintermeyer_etal),
        volume_flux_fv=(flux_lax_friedrichs, flux_nonconservative_wintermeyer_etal))
    solver = DGSEM(basis, (flux_lax_friedrichs, flux_nonconservative_wintermeyer_etal),
                   volume_integral)
    mesh = TreeMesh(-3.0, 3.0, initial_refinement_level=3,
                    refinement_patches=[{"type": "box", "coordinates_min": 0.0,
                                         "coordinates_max": 1.5}],
                    periodicity=False)
    boundary_condition = BoundaryConditionDirichlet(shallow_water.initial_condition_weak_blast_wave)
    return SemidiscretizationHyperbolic(mesh, equations,
                                        shallow_water.initial_condition_weak_blast_wave,
                                        solver, boundary_conditions=boundary_condition)


def shallow_water_2d_mortar(polydeg=3):
    equations = ShallowWaterEquations(ndims=2, gravity_constant=9.81)
    solver = DGSEM(polydeg,
                   surface_flux=(flux_lax_friedrichs, flux_nonconservative_wintermeyer_etal),
                   volume_integral=VolumeIntegralFluxDifferencing(
                       (flux_wintermeyer_etal, flux_nonconservative_wintermeyer_etal)))
    mesh = TreeMesh((-1.0, -1.0), (1.0, 1.0), initial_refinement_level=2,
                    refinement_patches=patch_right_half(2))
    return SemidiscretizationHyperbolic(mesh, equations,
                                        shallow_water.initial_condition_weak_blast_wave, solver)


def lake_at_rest_1d(polydeg=3):
    equations = ShallowWaterEquations(ndims=1, gravity_constant=9.81, H0=0.5)
    flux_pair = (flux_wintermeyer_etal, flux_nonconservative_wintermeyer_etal)
    solver = DGSEM(polydeg, surface_flux=flux_pair,
                   volume_integral=VolumeIntegralFluxDifferencing(flux_pair))
    mesh = TreeMesh(-2.0, 2.0, initial_refinement_level=3,
                    refinement_patches=[{"type": "box", "coordinates_min": -0.5,
                                         "coordinates_max": 1.0}])
    return SemidiscretizationHyperbolic(mesh, equations,
                                        shallow_water.initial_condition_lake_at_rest, solver)


SETUPS = {
    "euler_1d_blast_wave": euler_1d_blast_wave,
    "advection_2d_mortar": advection_2d_mortar,
    "advection_3d_mortar": advection_3d_mortar,
    "euler_2d_slip_walls": euler_2d_slip_walls,
    "euler_3d_convergence": euler_3d_convergence,
    "shallow_water_1d_dirichlet": shallow_water_1d_dirichlet,
    "shallow_water_2d_mortar": shallow_water_2d_mortar,
}
