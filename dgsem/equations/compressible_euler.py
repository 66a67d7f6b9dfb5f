"""
Compressible Euler equations of an ideal gas in 1D, 2D and 3D.

Conservative variables: rho, rho_v1, ..., rho_v{ndims}, rho_e.
"""

import numpy as np

from dgsem.backend import get_array_module
from dgsem.equations.base import AbstractEquations


class CompressibleEulerEquations(AbstractEquations):
    """
    Args:
        ndims: Spatial dimension (1, 2 or 3)
        gamma: Ratio of specific heats
    """

    def __init__(self, ndims=1, gamma=1.4):
        if ndims not in (1, 2, 3):
            raise ValueError(f"ndims must be 1, 2 or 3, got {ndims}")
        if gamma <= 1.0:
            raise ValueError("Ratio of specific heats must be > 1")
        self.ndims = ndims
        self.nvariables = ndims + 2
        self.gamma = float(gamma)
        self.inv_gamma_minus_one = 1.0 / (self.gamma - 1.0)
        self.varnames = (("rho",) + tuple(f"rho_v{d + 1}" for d in range(ndims))
                         + ("rho_e",))

    # --- Primitive helpers ---

    def velocities(self, u):
        rho = u[0]
        return [u[1 + d] / rho for d in range(self.ndims)]

    def pressure(self, u):
        """p = (gamma - 1) (rho_e - 1/2 rho |v|^2)"""
        v = self.velocities(u)
        kinetic = 0.0
        for d in range(self.ndims):
            kinetic = kinetic + u[1 + d] * v[d]
        return (self.gamma - 1.0) * (u[-1] - 0.5 * kinetic)

    def cons2prim(self, u):
        xp = get_array_module(u)
        return xp.stack([u[0]] + self.velocities(u) + [self.pressure(u)])

    def prim2cons(self, prim):
        xp = get_array_module(prim)
        rho = prim[0]
        v = [prim[1 + d] for d in range(self.ndims)]
        p = prim[-1]
        kinetic = 0.0
        for d in range(self.ndims):
            kinetic = kinetic + v[d] * v[d]
        rho_e = p * self.inv_gamma_minus_one + 0.5 * rho * kinetic
        return xp.stack([rho] + [rho * vd for vd in v] + [rho_e])

    # --- Physics ---

    def flux(self, u, orientation):
        xp = get_array_module(u)
        v = self.velocities(u)
        p = self.pressure(u)
        rho_v_n = u[1 + orientation]

        f = [rho_v_n]
        for d in range(self.ndims):
            fd = rho_v_n * v[d]
            if d == orientation:
                fd = fd + p
            f.append(fd)
        f.append((u[-1] + p) * v[orientation])
        return xp.stack(f)

    def max_abs_speed_naive(self, u_ll, u_rr, orientation):
        xp = get_array_module(u_ll, u_rr)
        v_ll = u_ll[1 + orientation] / u_ll[0]
        v_rr = u_rr[1 + orientation] / u_rr[0]
        c_ll = xp.sqrt(self.gamma * self.pressure(u_ll) / u_ll[0])
        c_rr = xp.sqrt(self.gamma * self.pressure(u_rr) / u_rr[0])
        return xp.maximum(xp.abs(v_ll), xp.abs(v_rr)) + xp.maximum(c_ll, c_rr)


def density_pressure(u, equations):
    """Shock indicator variable rho * p."""
    return u[0] * equations.pressure(u)


# =============================================================================
# Two-point volume fluxes
# =============================================================================

def flux_shima_etal(u_ll, u_rr, orientation, equations):
    """Kinetic energy and pressure equilibrium preserving flux."""
    xp = get_array_module(u_ll, u_rr)
    ndims = equations.ndims
    rho_ll, rho_rr = u_ll[0], u_rr[0]
    v_ll = equations.velocities(u_ll)
    v_rr = equations.velocities(u_rr)
    p_ll = equations.pressure(u_ll)
    p_rr = equations.pressure(u_rr)

    rho_avg = 0.5 * (rho_ll + rho_rr)
    v_avg = [0.5 * (v_ll[d] + v_rr[d]) for d in range(ndims)]
    p_avg = 0.5 * (p_ll + p_rr)
    kin_avg = 0.0
    for d in range(ndims):
        kin_avg = kin_avg + v_ll[d] * v_rr[d]
    kin_avg = 0.5 * kin_avg

    pv1_avg = 0.5 * (p_ll * v_rr[orientation] + p_rr * v_ll[orientation])
    f_mass = rho_avg * v_avg[orientation]
    f = [f_mass]
    for d in range(ndims):
        fd = f_mass * v_avg[d]
        if d == orientation:
            fd = fd + p_avg
        f.append(fd)
    f.append(p_avg * v_avg[orientation] * equations.inv_gamma_minus_one
             + f_mass * kin_avg + pv1_avg)
    return xp.stack(f)


def flux_ranocha(u_ll, u_rr, orientation, equations):
    """Entropy conserving and kinetic energy preserving flux."""
    xp = get_array_module(u_ll, u_rr)
    ndims = equations.ndims
    rho_ll, rho_rr = u_ll[0], u_rr[0]
    v_ll = equations.velocities(u_ll)
    v_rr = equations.velocities(u_rr)
    p_ll = equations.pressure(u_ll)
    p_rr = equations.pressure(u_rr)

    rho_mean = ln_mean(rho_ll, rho_rr)
    # equals inv_ln_mean(rho_ll / p_ll, rho_rr / p_rr)
    inv_rho_p_mean = p_ll * p_rr * inv_ln_mean(rho_ll * p_rr, rho_rr * p_ll)
    v_avg = [0.5 * (v_ll[d] + v_rr[d]) for d in range(ndims)]
    p_avg = 0.5 * (p_ll + p_rr)
    velocity_square_avg = 0.0
    for d in range(ndims):
        velocity_square_avg = velocity_square_avg + v_ll[d] * v_rr[d]
    velocity_square_avg = 0.5 * velocity_square_avg

    f_mass = rho_mean * v_avg[orientation]
    f = [f_mass]
    for d in range(ndims):
        fd = f_mass * v_avg[d]
        if d == orientation:
            fd = fd + p_avg
        f.append(fd)
    f.append(f_mass * (velocity_square_avg + inv_rho_p_mean * equations.inv_gamma_minus_one)
             + 0.5 * (p_ll * v_rr[orientation] + p_rr * v_ll[orientation]))
    return xp.stack(f)


def ln_mean(x, y):
    """Logarithmic mean (y - x) / (log(y) - log(x))."""
    xp = get_array_module(x, y)
    epsilon_f2 = 1.0e-4
    f2 = (x * (x - 2 * y) + y * y) / (x * (x + 2 * y) + y * y)
    small = f2 < epsilon_f2
    # keep the unused branch finite so that NaN never leaks through the where
    log_ratio = xp.log(xp.where(small, 2.0, y / x))
    general = (y - x) / log_ratio
    series = (x + y) / (2 + f2 * (2 / 3 + f2 * (2 / 5 + 2 / 7 * f2)))
    return xp.where(small, series, general)


def inv_ln_mean(x, y):
    """Inverse logarithmic mean (log(y) - log(x)) / (y - x)."""
    xp = get_array_module(x, y)
    epsilon_f2 = 1.0e-4
    f2 = (x * (x - 2 * y) + y * y) / (x * (x + 2 * y) + y * y)
    small = f2 < epsilon_f2
    log_ratio = xp.log(xp.where(small, 2.0, y / x))
    general = log_ratio / xp.where(small, 1.0, y - x)
    series = (2 + f2 * (2 / 3 + f2 * (2 / 5 + 2 / 7 * f2))) / (x + y)
    return xp.where(small, series, general)


# =============================================================================
# Initial conditions, boundary conditions and source terms
# =============================================================================

def initial_condition_constant(x, t, equations):
    xp = get_array_module(x)
    ones = 1.0 + 0.0 * x[0]
    rho = 1.0 * ones
    v = [0.1 * (d + 1) * ones for d in range(equations.ndims)]
    p = 1.0 * ones
    return equations.prim2cons(xp.stack([rho] + v + [p]))


def initial_condition_convergence_test(x, t, equations):
    """Smooth density wave, paired with `source_terms_convergence_test`."""
    xp = get_array_module(x)
    c = 2.0
    A = 0.1
    L = 2.0
    f = 1.0 / L
    omega = 2.0 * np.pi * f
    x_sum = 0.0 * x[0]
    for d in range(equations.ndims):
        x_sum = x_sum + x[d]
    ini = c + A * xp.sin(omega * (x_sum - t))

    rho = ini
    rho_v = [ini for _ in range(equations.ndims)]
    rho_e = ini * ini
    return xp.stack([rho] + rho_v + [rho_e])


def source_terms_convergence_test(u, x, t, equations):
    """
    Manufactured source terms for `initial_condition_convergence_test`.

    With rho = rho_v_d = sqrt(rho_e) = c + A sin(omega (sum_d x_d - t)) all
    velocities are one and p = (gamma - 1) (rho^2 - ndims/2 rho).
    """
    xp = get_array_module(u, x)
    ndims = equations.ndims
    c = 2.0
    A = 0.1
    L = 2.0
    f = 1.0 / L
    omega = 2.0 * np.pi * f
    gamma = equations.gamma

    x_sum = 0.0 * x[0]
    for d in range(ndims):
        x_sum = x_sum + x[d]
    si = xp.sin(omega * (x_sum - t))
    co = xp.cos(omega * (x_sum - t))
    rho = c + A * si
    rho_x = omega * A * co
    p_x = (gamma - 1.0) * (2.0 * rho - 0.5 * ndims) * rho_x

    du_mass = (ndims - 1) * rho_x
    du_momentum = du_mass + p_x
    du_energy = 2.0 * (ndims - 1) * rho * rho_x + ndims * p_x
    return xp.stack([du_mass] + [du_momentum] * ndims + [du_energy])


def initial_condition_weak_blast_wave(x, t, equations):
    """Weak blast wave centered at the origin."""
    xp = get_array_module(x)
    ndims = equations.ndims
    r2 = 0.0 * x[0]
    for d in range(ndims):
        r2 = r2 + x[d] * x[d]
    r = xp.sqrt(r2)
    inside = r <= 0.5

    rho = xp.where(inside, 1.1691, 1.0)
    p = xp.where(inside, 1.245, 1.0)
    speed = xp.where(inside, 0.1882, 0.0)

    if ndims == 1:
        direction = [xp.where(x[0] > 0.0, 1.0, -1.0)]
    elif ndims == 2:
        phi = xp.arctan2(x[1], x[0])
        direction = [xp.cos(phi), xp.sin(phi)]
    else:
        phi = xp.arctan2(x[1], x[0])
        r_safe = xp.where(r > 0.0, r, 1.0)
        theta = xp.where(r > 0.0, xp.arccos(x[2] / r_safe), 0.0)
        direction = [xp.sin(theta) * xp.cos(phi), xp.sin(theta) * xp.sin(phi), xp.cos(theta)]

    v = [speed * direction[d] for d in range(ndims)]
    return equations.prim2cons(xp.stack([rho] + v + [p]))


def boundary_condition_slip_wall(u_inner, orientation, direction, x, t, surface_flux, equations):
    """
    Slip wall through a mirrored ghost state: the normal momentum changes sign.
    """
    xp = get_array_module(u_inner)
    factors = np.ones(equations.nvariables)
    factors[1 + orientation] = -1.0
    factors = factors.reshape((-1,) + (1,) * (u_inner.ndim - 1))
    u_boundary = u_inner * xp.asarray(factors, dtype=u_inner.dtype)

    if direction % 2 == 1:
        return surface_flux(u_inner, u_boundary, orientation, equations)
    return surface_flux(u_boundary, u_inner, orientation, equations)
