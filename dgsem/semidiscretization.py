"""
Semidiscretization of a hyperbolic system: mesh + equations + solver.

Owns the host cache (tables and buffers) and the resolved boundary
conditions, evaluates initial conditions on the nodes and runs the
reference residual pipeline.
"""

import numpy as np

from dgsem.backend import is_jax_backend
from dgsem.core.containers import create_cache
from dgsem.equations.base import (
    DIRECTION_NAMES,
    BoundaryConditionPeriodic,
    boundary_condition_periodic,
)
from dgsem.errors import ShapeError
from dgsem.log import get_logger
from dgsem.solvers import reference

logger = get_logger("dgsem.semidiscretization")


def digest_boundary_conditions(boundary_conditions, mesh):
    """
    Resolve boundary conditions to one closure per direction.

    Args:
        boundary_conditions: a single closure for all directions, or a dict
            keyed by direction name ("x_neg", "x_pos", ...)

    Returns:
        tuple of length 2*ndims
    """
    names = DIRECTION_NAMES[:2 * mesh.ndims]
    if isinstance(boundary_conditions, dict):
        unknown = set(boundary_conditions) - set(names)
        if unknown:
            raise ValueError(f"Unknown boundary names {sorted(unknown)} (expected {names})")
        missing = [name for name in names if name not in boundary_conditions]
        if missing:
            raise ValueError(f"Missing boundary conditions for {missing}")
        resolved = tuple(boundary_conditions[name] for name in names)
    else:
        resolved = (boundary_conditions,) * len(names)

    for direction, bc in enumerate(resolved):
        periodic_axis = mesh.periodicity[direction // 2]
        is_periodic_bc = isinstance(bc, BoundaryConditionPeriodic)
        if periodic_axis and not is_periodic_bc:
            raise ValueError(f"{names[direction]}: mesh is periodic along this axis, "
                             f"got boundary condition {bc!r}")
        if not periodic_axis and is_periodic_bc:
            raise ValueError(f"{names[direction]}: mesh is not periodic along this axis, "
                             f"boundary_condition_periodic is not allowed")
    return resolved


class SemidiscretizationHyperbolic:
    """
    Args:
        mesh: TreeMesh
        equations: equation descriptor
        initial_condition: callable (x, t, equations) -> u
        solver: DGSEM
        boundary_conditions: closure or dict by direction name
        source_terms: callable (u, x, t, equations) -> source, or None
        dtype: floating point type of the state, the node coordinates and all
            trace and flux buffers (float64 or float32)
    """

    def __init__(self, mesh, equations, initial_condition, solver,
                 boundary_conditions=boundary_condition_periodic, source_terms=None,
                 dtype=np.float64):
        if mesh.ndims != equations.ndims:
            raise ShapeError(f"mesh is {mesh.ndims}D but equations are {equations.ndims}D")
        solver.check(equations)
        dtype = np.dtype(dtype)
        if dtype not in (np.float32, np.float64):
            raise ValueError(f"dtype must be float32 or float64, got {dtype}")

        self.mesh = mesh
        self.equations = equations
        self.initial_condition = initial_condition
        self.solver = solver
        self.source_terms = source_terms
        self.dtype = dtype
        self.boundary_conditions = digest_boundary_conditions(boundary_conditions, mesh)
        self.cache = create_cache(mesh, solver.basis, solver.mortar, equations.nvariables,
                                  dtype=dtype)

        logger.info(f"[dgsem] {self}")

    @property
    def shape(self):
        """Shape of u and du."""
        return ((self.equations.nvariables,) + (self.solver.nnodes,) * self.mesh.ndims
                + (self.mesh.nelements,))

    def allocate_coefficients(self, dtype=None):
        """Flat zero vector holding all degrees of freedom."""
        return np.zeros(int(np.prod(self.shape)), dtype=self.dtype if dtype is None else dtype)

    def wrap_array(self, u_ode):
        """View a flat coefficient vector as (nvars, n, ..., n, nelements)."""
        if u_ode.size != int(np.prod(self.shape)):
            raise ShapeError(f"coefficient vector has {u_ode.size} entries, "
                             f"expected {int(np.prod(self.shape))}")
        return u_ode.reshape(self.shape)

    def compute_coefficients(self, t=0.0):
        """Evaluate the initial condition on all nodes."""
        x = self.cache.elements.node_coordinates
        u = np.asarray(self.initial_condition(x, t, self.equations), dtype=self.dtype)
        return np.ascontiguousarray(np.broadcast_to(u, self.shape))

    def rhs(self, du, u, t):
        """Reference residual: du = rhs(u, t)."""
        return reference.rhs(du, u, t, self.mesh, self.equations, self.boundary_conditions,
                             self.source_terms, self.solver, self.cache)

    def __repr__(self):
        return (f"SemidiscretizationHyperbolic({self.equations!r}, {self.solver!r}, "
                f"nelements={self.mesh.nelements}, dtype={self.dtype.name})")


def rhs_function(semi, dtype=None):
    """
    Residual function (du, u, t) on the backend selected by DGSEM_BACKEND.

    The JAX variant works on device arrays and returns the new du.
    """
    if not is_jax_backend():
        return semi.rhs

    from dgsem.solvers.jax.semidiscretization_jax import SemidiscretizationJAX
    return SemidiscretizationJAX(semi, dtype=dtype).rhs
