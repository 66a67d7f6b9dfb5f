"""
Equation descriptor interface, generic numerical fluxes and boundary conditions.

Every function in this package is vectorized: the variable axis is axis 0
and all trailing axes broadcast. The same code runs per node on NumPy
vectors (reference) and on whole JAX arrays inside jitted stages (device).
"""

from dgsem.backend import get_array_module


DIRECTION_NAMES = ("x_neg", "x_pos", "y_neg", "y_pos", "z_neg", "z_pos")


class AbstractEquations:
    """
    Base class of a hyperbolic system u_t + sum_d f_d(u)_{x_d} (+ g) = s.

    Subclasses set `ndims`, `nvariables`, `varnames` and implement `flux` and
    `max_abs_speed_naive`.
    """

    ndims = None
    nvariables = None
    varnames = ()
    have_nonconservative_terms = False

    def flux(self, u, orientation):
        """Physical flux along axis `orientation`."""
        raise NotImplementedError

    def max_abs_speed_naive(self, u_ll, u_rr, orientation):
        """Upper bound of the wave speeds of the two states."""
        raise NotImplementedError

    def dissipation_local_lax_friedrichs(self, u_ll, u_rr, orientation):
        lam = self.max_abs_speed_naive(u_ll, u_rr, orientation)
        return -0.5 * lam * (u_rr - u_ll)

    def cons2prim(self, u):
        return u

    def prim2cons(self, prim):
        return prim

    def __repr__(self):
        return f"{type(self).__name__}{self.ndims}D(nvariables={self.nvariables})"


# =============================================================================
# Generic numerical fluxes
# =============================================================================

def flux_central(u_ll, u_rr, orientation, equations):
    """Arithmetic mean of the physical fluxes."""
    return 0.5 * (equations.flux(u_ll, orientation) + equations.flux(u_rr, orientation))


def flux_lax_friedrichs(u_ll, u_rr, orientation, equations):
    """Local Lax-Friedrichs (Rusanov) flux."""
    return (flux_central(u_ll, u_rr, orientation, equations)
            + equations.dissipation_local_lax_friedrichs(u_ll, u_rr, orientation))


def split_flux(flux, equations, name="flux"):
    """
    Split a flux (or flux pair) into (conservative, nonconservative).

    Nonconservative systems must be given a (flux, noncons) pair; conservative
    systems a single function.
    """
    if isinstance(flux, tuple):
        if len(flux) != 2:
            raise ValueError(f"{name} must be a (flux, nonconservative_flux) pair")
        if not equations.have_nonconservative_terms:
            raise ValueError(f"{name}: {equations} has no nonconservative terms")
        return flux
    if equations.have_nonconservative_terms:
        raise ValueError(f"{name}: {equations} needs a (flux, nonconservative_flux) pair")
    return flux, None


# =============================================================================
# Boundary conditions
# =============================================================================

class BoundaryConditionPeriodic:
    """Marker for periodic directions; periodic faces are interfaces."""

    def __repr__(self):
        return "boundary_condition_periodic"


boundary_condition_periodic = BoundaryConditionPeriodic()


class BoundaryConditionDirichlet:
    """
    Weakly imposed Dirichlet state.

    Args:
        boundary_value_function: callable (x, t, equations) -> u_boundary
    """

    def __init__(self, boundary_value_function):
        self.boundary_value_function = boundary_value_function

    def __call__(self, u_inner, orientation, direction, x, t, surface_flux, equations):
        u_boundary = self.boundary_value_function(x, t, equations)
        xp = get_array_module(u_inner, u_boundary)
        u_boundary = xp.broadcast_to(u_boundary, u_inner.shape)

        if isinstance(surface_flux, tuple):
            flux_function, noncons_function = surface_flux
        else:
            flux_function, noncons_function = surface_flux, None

        # the inner state is left of the face on positive directions
        if direction % 2 == 1:
            flux = flux_function(u_inner, u_boundary, orientation, equations)
        else:
            flux = flux_function(u_boundary, u_inner, orientation, equations)

        if noncons_function is None:
            return flux
        noncons = noncons_function(u_inner, u_boundary, orientation, equations)
        return flux, noncons

    def __repr__(self):
        name = getattr(self.boundary_value_function, "__name__", repr(self.boundary_value_function))
        return f"BoundaryConditionDirichlet({name})"
