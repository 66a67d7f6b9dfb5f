"""
Tests for the sequential reference residual pipeline.

Checks discrete properties that do not need a second implementation:
free-stream preservation, conservation, well-balancedness, convergence
against a manufactured solution, determinism and full face coverage.

Usage:
    pytest dgsem/tests/test_reference.py -v
"""

import numpy as np
import pytest

from dgsem.core.basis import LobattoLegendreBasis
from dgsem.core.mesh import TreeMesh
from dgsem.equations import (
    BoundaryConditionDirichlet,
    CompressibleEulerEquations,
    LinearScalarAdvectionEquation,
    ShallowWaterEquations,
    boundary_condition_periodic,
    boundary_condition_slip_wall,
    flux_lax_friedrichs,
    flux_ranocha,
    flux_wintermeyer_etal,
    flux_nonconservative_wintermeyer_etal,
)
from dgsem.equations import compressible_euler, linear_scalar_advection
from dgsem.errors import ShapeError
from dgsem.semidiscretization import SemidiscretizationHyperbolic, digest_boundary_conditions
from dgsem.solvers import (
    DGSEM,
    IndicatorHennemannGassner,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)
from dgsem.solvers import reference
from dgsem.tests.util import (
    SETUPS,
    ConstantIndicator,
    advection_2d_mortar,
    euler_1d_blast_wave,
    euler_1d_convergence,
    lake_at_rest_1d,
    patch_right_half,
)


def evaluate_rhs(semi, u=None, t=0.0):
    if u is None:
        u = semi.compute_coefficients(t)
    du = np.zeros_like(u)
    semi.rhs(du, u, t)
    return du, u


def integrate(semi, du):
    """Integral of each variable of du over the domain."""
    w = semi.solver.basis.weights
    ndims = semi.mesh.ndims
    weights = w
    for _ in range(ndims - 1):
        weights = np.multiply.outer(weights, w)
    volume = 1.0 / semi.cache.elements.inverse_jacobian ** ndims
    integrand = du * weights[None, ..., None] * volume
    axes = tuple(range(1, du.ndim))
    return np.sum(integrand, axis=axes), np.sum(np.abs(integrand), axis=axes)


# =============================================================================
# Discrete properties
# =============================================================================

class TestFreeStream:
    def test_advection_2d_mortar(self):
        equations = LinearScalarAdvectionEquation((0.2, -0.7))
        solver = DGSEM(3, surface_flux=flux_lax_friedrichs)
        mesh = TreeMesh((-1.0, -1.0), (1.0, 1.0), initial_refinement_level=2,
                        refinement_patches=patch_right_half(2))
        semi = SemidiscretizationHyperbolic(
            mesh, equations, linear_scalar_advection.initial_condition_constant, solver)
        du, _ = evaluate_rhs(semi)
        np.testing.assert_allclose(du, 0.0, atol=1e-12)

        # the large side of every mortar sees the constant flux
        sfv = semi.cache.elements.surface_flux_values
        mortars = semi.cache.mortars
        for mortar in range(semi.cache.nmortars):
            orientation = mortars.orientations[mortar]
            large_dir = 2 * orientation + 1 - mortars.large_sides[mortar]
            large = mortars.neighbor_ids[-1, mortar]
            np.testing.assert_allclose(sfv[0, :, large_dir, large],
                                       2.0 * equations.advection_velocity[orientation])

    def test_euler_3d_mortar_flux_differencing(self):
        equations = CompressibleEulerEquations(ndims=3)
        solver = DGSEM(2, surface_flux=flux_lax_friedrichs,
                       volume_integral=VolumeIntegralFluxDifferencing(flux_ranocha))
        mesh = TreeMesh((-1.0,) * 3, (1.0,) * 3, initial_refinement_level=1,
                        refinement_patches=patch_right_half(3))
        semi = SemidiscretizationHyperbolic(
            mesh, equations, compressible_euler.initial_condition_constant, solver)
        du, _ = evaluate_rhs(semi)
        np.testing.assert_allclose(du, 0.0, atol=1e-11)


@pytest.mark.parametrize("setup", ["euler_1d_blast_wave", "advection_2d_mortar",
                                   "advection_3d_mortar", "shallow_water_2d_mortar"])
def test_conservation(setup):
    """On periodic meshes the total of du vanishes (water height only for shallow water)."""
    semi = SETUPS[setup]()
    du, _ = evaluate_rhs(semi)
    total, scale = integrate(semi, du)
    nconserved = 1 if semi.equations.have_nonconservative_terms else len(total)
    for v in range(nconserved):
        assert abs(total[v]) <= 1e-12 * scale[v] + 1e-13


def test_lake_at_rest_is_well_balanced():
    semi = lake_at_rest_1d()
    du, u = evaluate_rhs(semi)
    assert np.ptp(u[0] + u[-1]) < 1e-14
    np.testing.assert_allclose(du, 0.0, atol=1e-10)


def test_convergence_against_manufactured_solution():
    """The residual approximates the exact time derivative with high order."""
    t = 0.1

    def error(level):
        semi = euler_1d_convergence(level)
        du, _ = evaluate_rhs(semi, t=t)
        x = semi.cache.elements.node_coordinates[0]
        omega = np.pi
        rho = 2.0 + 0.1 * np.sin(omega * (x - t))
        rho_t = -omega * 0.1 * np.cos(omega * (x - t))
        du_exact = np.stack([rho_t, rho_t, 2.0 * rho * rho_t])
        return np.max(np.abs(du - du_exact))

    coarse = error(3)
    fine = error(5)
    assert fine < 1e-2
    assert coarse / fine > 8.0


# =============================================================================
# Pipeline behavior
# =============================================================================

class TestPipeline:
    @pytest.mark.parametrize("setup", sorted(SETUPS))
    def test_every_face_is_written(self, setup):
        """Poisoned flux buffers are fully overwritten by the face stages."""
        semi = SETUPS[setup]()
        semi.cache.elements.surface_flux_values.fill(np.nan)
        du, _ = evaluate_rhs(semi)
        assert np.all(np.isfinite(semi.cache.elements.surface_flux_values))
        assert np.all(np.isfinite(du))

    @pytest.mark.parametrize("setup", ["euler_1d_blast_wave", "euler_2d_slip_walls",
                                       "advection_3d_mortar"])
    def test_interface_flux_is_shared(self, setup):
        """Both elements of a conservative interface store the same flux."""
        semi = SETUPS[setup]()
        evaluate_rhs(semi)
        sfv = semi.cache.elements.surface_flux_values
        interfaces = semi.cache.interfaces
        left, right = interfaces.neighbor_ids
        orientations = interfaces.orientations
        np.testing.assert_array_equal(sfv[:, :, 2 * orientations + 1, left],
                                      sfv[:, :, 2 * orientations, right])

    def test_deterministic(self):
        semi = euler_1d_blast_wave()
        du1, u = evaluate_rhs(semi)
        du2, _ = evaluate_rhs(semi, u)
        np.testing.assert_array_equal(du1, du2)

    def test_du_is_overwritten(self):
        semi = advection_2d_mortar()
        expected, u = evaluate_rhs(semi)
        du = np.full_like(u, np.nan)
        semi.rhs(du, u, 0.0)
        np.testing.assert_array_equal(du, expected)

    def test_reset_du_is_idempotent(self):
        """reset twice + volume integral == reset once + volume integral."""
        semi = euler_1d_blast_wave()
        mesh, equations, dg, cache = semi.mesh, semi.equations, semi.solver, semi.cache
        u = semi.compute_coefficients(0.0)

        results = []
        for nresets in (1, 2):
            du = np.full_like(u, 3.5)
            for _ in range(nresets):
                reference.reset_du(du)
            reference.calc_volume_integral(du, u, mesh, equations, dg.volume_integral, dg, cache)
            results.append(du)
        np.testing.assert_array_equal(results[0], results[1])
        assert np.abs(results[0]).max() > 0

    def test_nan_input_propagates(self):
        semi = advection_2d_mortar()
        u = semi.compute_coefficients(0.0)
        u[0, 1, 1, 7] = np.nan
        du = np.zeros_like(u)
        semi.rhs(du, u, 0.0)
        assert np.isnan(du[..., 7]).any()
        assert np.isfinite(du[..., 0]).all()

    def test_weak_form_matches_central_flux_differencing(self):
        """With the central flux, flux differencing reduces to the weak form."""
        equations = CompressibleEulerEquations(ndims=1)
        mesh = TreeMesh(-2.0, 2.0, initial_refinement_level=3)
        results = []
        for volume_integral in (VolumeIntegralWeakForm(), "flux_differencing"):
            solver = DGSEM(3, surface_flux=flux_lax_friedrichs, volume_integral=volume_integral)
            semi = SemidiscretizationHyperbolic(
                mesh, equations, compressible_euler.initial_condition_weak_blast_wave, solver)
            results.append(evaluate_rhs(semi)[0])
        np.testing.assert_allclose(results[0], results[1], rtol=1e-12, atol=1e-12)


class TestShockCapturing:
    def test_pure_dg_branch(self):
        """alpha = 0 reproduces flux differencing exactly."""
        blended, u = evaluate_rhs(euler_1d_blast_wave(indicator=ConstantIndicator(0.0)))
        semi = euler_1d_blast_wave()
        semi.solver.volume_integral = VolumeIntegralFluxDifferencing(flux_ranocha)
        pure, _ = evaluate_rhs(semi, u)
        np.testing.assert_array_equal(blended, pure)

    def test_blending_is_linear_in_alpha(self):
        du = {alpha: evaluate_rhs(euler_1d_blast_wave(indicator=ConstantIndicator(alpha)))[0]
              for alpha in (0.0, 0.5, 1.0)}
        np.testing.assert_allclose(du[0.5], 0.5 * (du[0.0] + du[1.0]), rtol=1e-12, atol=1e-12)
        assert not np.allclose(du[0.0], du[1.0])

    def test_indicator_constant_state(self):
        semi = euler_1d_blast_wave()
        x = semi.cache.elements.node_coordinates
        u = np.ascontiguousarray(
            compressible_euler.initial_condition_constant(x, 0.0, semi.equations))
        indicator = semi.solver.volume_integral.indicator
        alpha = indicator(u, semi.mesh, semi.equations, semi.solver, semi.cache)
        np.testing.assert_array_equal(alpha, 0.0)

    def test_indicator_detects_blast(self):
        semi = euler_1d_blast_wave()
        u = semi.compute_coefficients(0.0)
        indicator = semi.solver.volume_integral.indicator
        alpha = indicator(u, semi.mesh, semi.equations, semi.solver, semi.cache)
        assert alpha.shape == (semi.mesh.nelements,)
        assert 0.0 < alpha.max() <= indicator.alpha_max
        # far away from the blast the solution is constant
        assert alpha[0] == 0.0 and alpha[-1] == 0.0

    def test_indicator_smoothing(self):
        semi = euler_1d_blast_wave(level=3)
        alpha = np.zeros(semi.mesh.nelements)
        alpha[4] = 0.4
        smoothed = IndicatorHennemannGassner._smooth(alpha, np, semi.cache)
        np.testing.assert_allclose(smoothed[3:6], [0.2, 0.4, 0.2])
        assert smoothed.sum() == pytest.approx(0.8)
        assert alpha.sum() == pytest.approx(0.4)


# =============================================================================
# Setup validation
# =============================================================================

class TestValidation:
    def test_wrong_shape(self):
        semi = euler_1d_blast_wave(level=3)
        u = semi.compute_coefficients(0.0)
        with pytest.raises(ShapeError):
            semi.rhs(np.zeros_like(u[:, :, :-1]), u, 0.0)
        with pytest.raises(ShapeError):
            semi.rhs(np.zeros_like(u), u[:2], 0.0)

    def test_integer_buffers(self):
        semi = euler_1d_blast_wave(level=3)
        u = semi.compute_coefficients(0.0)
        with pytest.raises(ShapeError):
            semi.rhs(np.zeros(u.shape, dtype=np.int64), u, 0.0)

    def test_non_contiguous_du(self):
        semi = euler_1d_blast_wave(level=3)
        u = semi.compute_coefficients(0.0)
        with pytest.raises(ShapeError):
            semi.rhs(np.asfortranarray(np.zeros_like(u)), u, 0.0)

    def test_dimension_mismatch(self):
        mesh = TreeMesh((0.0, 0.0), (1.0, 1.0), initial_refinement_level=1)
        with pytest.raises(ShapeError):
            SemidiscretizationHyperbolic(mesh, CompressibleEulerEquations(ndims=1),
                                         compressible_euler.initial_condition_constant,
                                         DGSEM(2))

    def test_weak_form_rejects_nonconservative(self):
        mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=2)
        solver = DGSEM(2, surface_flux=(flux_lax_friedrichs, flux_nonconservative_wintermeyer_etal))
        with pytest.raises(ValueError):
            SemidiscretizationHyperbolic(mesh, ShallowWaterEquations(ndims=1),
                                         compressible_euler.initial_condition_constant, solver)

    def test_unknown_volume_integral(self):
        with pytest.raises(ValueError):
            DGSEM(3, volume_integral="shock_capturing")

    def test_conservative_flux_for_nonconservative_system(self):
        mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=2)
        solver = DGSEM(2, surface_flux=flux_lax_friedrichs,
                       volume_integral=VolumeIntegralFluxDifferencing(
                           (flux_wintermeyer_etal, flux_nonconservative_wintermeyer_etal)))
        with pytest.raises(ValueError):
            SemidiscretizationHyperbolic(mesh, ShallowWaterEquations(ndims=1),
                                         compressible_euler.initial_condition_constant, solver)


class TestBoundaryConditionDigest:
    def test_single_closure(self):
        mesh = TreeMesh((0.0, 0.0), (1.0, 1.0), initial_refinement_level=1, periodicity=False)
        resolved = digest_boundary_conditions(boundary_condition_slip_wall, mesh)
        assert resolved == (boundary_condition_slip_wall,) * 4

    def test_dict(self):
        mesh = TreeMesh((0.0, 0.0), (1.0, 1.0), initial_refinement_level=1,
                        periodicity=(True, False))
        dirichlet = BoundaryConditionDirichlet(compressible_euler.initial_condition_constant)
        resolved = digest_boundary_conditions(
            {"x_neg": boundary_condition_periodic, "x_pos": boundary_condition_periodic,
             "y_neg": dirichlet, "y_pos": boundary_condition_slip_wall}, mesh)
        assert resolved[2] is dirichlet
        assert resolved[3] is boundary_condition_slip_wall

    def test_periodic_axis_needs_periodic_condition(self):
        mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=2)
        with pytest.raises(ValueError):
            digest_boundary_conditions(boundary_condition_slip_wall, mesh)

    def test_periodic_condition_on_wall(self):
        mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=2, periodicity=False)
        with pytest.raises(ValueError):
            digest_boundary_conditions(boundary_condition_periodic, mesh)

    def test_unknown_and_missing_names(self):
        mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=2, periodicity=False)
        with pytest.raises(ValueError):
            digest_boundary_conditions({"x_neg": boundary_condition_slip_wall,
                                        "x_pos": boundary_condition_slip_wall,
                                        "y_neg": boundary_condition_slip_wall}, mesh)
        with pytest.raises(ValueError):
            digest_boundary_conditions({"x_neg": boundary_condition_slip_wall}, mesh)


class TestCoefficients:
    def test_allocate_and_wrap(self):
        semi = advection_2d_mortar()
        u_ode = semi.allocate_coefficients()
        assert u_ode.shape == (int(np.prod(semi.shape)),)
        u = semi.wrap_array(u_ode)
        assert u.shape == semi.shape == (1, 4, 4, 40)
        assert np.shares_memory(u, u_ode)
        with pytest.raises(ShapeError):
            semi.wrap_array(u_ode[:-1])

    def test_compute_coefficients(self):
        semi = advection_2d_mortar()
        u = semi.compute_coefficients(0.0)
        assert u.flags.c_contiguous
        x = semi.cache.elements.node_coordinates
        np.testing.assert_allclose(u[0], np.exp(-(x[0] ** 2 + x[1] ** 2)))


class TestSinglePrecision:
    def test_buffers_follow_dtype(self):
        semi = euler_1d_blast_wave(dtype=np.float32)
        u = semi.compute_coefficients(0.0)
        assert u.dtype == np.float32
        assert semi.allocate_coefficients().dtype == np.float32

        du = np.zeros_like(u)
        semi.rhs(du, u, 0.0)
        cache = semi.cache
        assert cache.elements.node_coordinates.dtype == np.float32
        assert cache.elements.surface_flux_values.dtype == np.float32
        assert cache.interfaces.u.dtype == np.float32
        assert du.dtype == np.float32
        assert np.all(np.isfinite(du))

    def test_close_to_double_precision(self):
        single, _ = evaluate_rhs(advection_2d_mortar(dtype=np.float32))
        double, _ = evaluate_rhs(advection_2d_mortar())
        error = np.linalg.norm(single.astype(np.float64) - double)
        assert error <= 1e-5 * np.linalg.norm(double)

    def test_unsupported_dtype(self):
        with pytest.raises(ValueError):
            advection_2d_mortar(dtype=np.float16)


class TestSolverConstruction:
    def test_from_polynomial_degree(self):
        solver = DGSEM(3, surface_flux=flux_lax_friedrichs)
        assert solver.polydeg == 3
        assert solver.nnodes == 4
        assert isinstance(solver.volume_integral, VolumeIntegralWeakForm)

    def test_shock_capturing_at_construction(self):
        equations = CompressibleEulerEquations(ndims=1)
        basis = LobattoLegendreBasis(3)
        indicator = IndicatorHennemannGassner(equations, basis)
        volume_integral = VolumeIntegralShockCapturingHG(
            indicator, volume_flux_dg=flux_ranocha, volume_flux_fv=flux_lax_friedrichs)
        solver = DGSEM(basis, flux_lax_friedrichs, volume_integral)

        assert solver.basis is basis
        assert solver.volume_integral is volume_integral
        np.testing.assert_array_equal(indicator.inverse_vandermonde,
                                      solver.basis.inverse_vandermonde_legendre)

        mesh = TreeMesh(-2.0, 2.0, initial_refinement_level=3)
        semi = SemidiscretizationHyperbolic(
            mesh, equations, compressible_euler.initial_condition_weak_blast_wave, solver)
        du, _ = evaluate_rhs(semi)
        assert np.all(np.isfinite(du))
