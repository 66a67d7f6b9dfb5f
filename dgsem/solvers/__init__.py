"""
DG-SEM solver descriptors, shock indicator and the residual pipelines.

- reference: sequential host pipeline (NumPy + Numba)
- jax: accelerator pipeline (JAX), imported on demand
"""

from dgsem.solvers.dgsem import (
    DGSEM,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)
from dgsem.solvers.indicators import IndicatorHennemannGassner

__all__ = [
    'DGSEM',
    'VolumeIntegralFluxDifferencing',
    'VolumeIntegralShockCapturingHG',
    'VolumeIntegralWeakForm',
    'IndicatorHennemannGassner',
]
