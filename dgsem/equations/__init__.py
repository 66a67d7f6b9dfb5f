"""
Equation families, numerical fluxes, initial/boundary conditions and sources.
"""

from dgsem.equations.base import (
    AbstractEquations,
    BoundaryConditionDirichlet,
    DIRECTION_NAMES,
    boundary_condition_periodic,
    flux_central,
    flux_lax_friedrichs,
    split_flux,
)
from dgsem.equations.linear_scalar_advection import (
    LinearScalarAdvectionEquation,
    flux_godunov,
)
from dgsem.equations.compressible_euler import (
    CompressibleEulerEquations,
    boundary_condition_slip_wall,
    density_pressure,
    flux_ranocha,
    flux_shima_etal,
    source_terms_convergence_test,
)
from dgsem.equations.shallow_water import (
    ShallowWaterEquations,
    flux_nonconservative_wintermeyer_etal,
    flux_wintermeyer_etal,
    waterheight_pressure,
)

__all__ = [
    'AbstractEquations',
    'BoundaryConditionDirichlet',
    'DIRECTION_NAMES',
    'boundary_condition_periodic',
    'flux_central',
    'flux_lax_friedrichs',
    'split_flux',
    'LinearScalarAdvectionEquation',
    'flux_godunov',
    'CompressibleEulerEquations',
    'boundary_condition_slip_wall',
    'density_pressure',
    'flux_ranocha',
    'flux_shima_etal',
    'source_terms_convergence_test',
    'ShallowWaterEquations',
    'flux_nonconservative_wintermeyer_etal',
    'flux_wintermeyer_etal',
    'waterheight_pressure',
]
