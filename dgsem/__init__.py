# dgsem/__init__.py

"""
DG-SEM residual pipeline on tree meshes, with a sequential host reference
and a JAX accelerator backend validated stage by stage against it.

This __init__ is kept LIGHTWEIGHT: submodules are loaded on first attribute
access so that importing dgsem never pulls in JAX or compiles Numba kernels.
"""

from importlib import import_module

__version__ = "0.1.0"

_LAZY = {
    'TreeMesh': 'dgsem.core.mesh',
    'LobattoLegendreBasis': 'dgsem.core.basis',
    'LobattoLegendreMortarL2': 'dgsem.core.basis',
    'DGSEM': 'dgsem.solvers.dgsem',
    'VolumeIntegralWeakForm': 'dgsem.solvers.dgsem',
    'VolumeIntegralFluxDifferencing': 'dgsem.solvers.dgsem',
    'VolumeIntegralShockCapturingHG': 'dgsem.solvers.dgsem',
    'IndicatorHennemannGassner': 'dgsem.solvers.indicators',
    'SemidiscretizationHyperbolic': 'dgsem.semidiscretization',
    'rhs_function': 'dgsem.semidiscretization',
    'RunConfig': 'dgsem.config',
    'get_backend': 'dgsem.backend',
    'Backend': 'dgsem.backend',
    'ShapeError': 'dgsem.errors',
    'TopologyError': 'dgsem.errors',
    'MeshError': 'dgsem.errors',
}

__all__ = sorted(_LAZY)


# -------- Lazy attribute loading (PEP 562) --------
def __getattr__(name):
    if name in _LAZY:
        return getattr(import_module(_LAZY[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
