"""
Linear scalar advection u_t + a . grad(u) = 0 in 1D, 2D and 3D.
"""

import numpy as np

from dgsem.backend import get_array_module
from dgsem.equations.base import AbstractEquations


class LinearScalarAdvectionEquation(AbstractEquations):
    """
    Args:
        advection_velocity: float (1D) or one component per axis
    """

    nvariables = 1
    varnames = ("scalar",)

    def __init__(self, advection_velocity):
        velocity = np.atleast_1d(np.asarray(advection_velocity, dtype=float))
        if velocity.ndim != 1 or not 1 <= velocity.size <= 3:
            raise ValueError(f"advection_velocity needs 1 to 3 components, got {advection_velocity}")
        self.ndims = velocity.size
        self.advection_velocity = tuple(float(a) for a in velocity)

    def flux(self, u, orientation):
        return self.advection_velocity[orientation] * u

    def max_abs_speed_naive(self, u_ll, u_rr, orientation):
        return abs(self.advection_velocity[orientation])

    def flux_godunov(self, u_ll, u_rr, orientation):
        """Upwind flux."""
        a = self.advection_velocity[orientation]
        return a * (u_ll if a >= 0.0 else u_rr)


def flux_godunov(u_ll, u_rr, orientation, equations):
    return equations.flux_godunov(u_ll, u_rr, orientation)


# =============================================================================
# Initial conditions
# =============================================================================

def initial_condition_constant(x, t, equations):
    xp = get_array_module(x)
    return xp.stack([2.0 + 0.0 * x[0]])


def initial_condition_convergence_test(x, t, equations):
    """Smooth sine wave, advected with the velocity of `equations`."""
    xp = get_array_module(x)
    c = 1.0
    A = 0.5
    L = 2.0
    f = 1.0 / L
    omega = 2.0 * np.pi * f
    x_trans = x[0] - equations.advection_velocity[0] * t
    for d in range(1, equations.ndims):
        x_trans = x_trans + x[d] - equations.advection_velocity[d] * t
    return xp.stack([c + A * xp.sin(omega * x_trans)])


def initial_condition_gauss(x, t, equations):
    xp = get_array_module(x)
    r2 = 0.0 * x[0]
    for d in range(equations.ndims):
        r2 = r2 + (x[d] - equations.advection_velocity[d] * t) ** 2
    return xp.stack([xp.exp(-r2)])
