"""
Exceptions raised by dgsem.

Only setup-time problems are reported: inconsistent buffer shapes and broken
face coverage are fatal before any kernel is dispatched. Numerical
degeneracy (NaN/Inf) is never raised from the residual pipeline.
"""


class DGSEMError(Exception):
    """Base class for all dgsem errors."""


class ShapeError(DGSEMError, ValueError):
    """Buffer dimensions inconsistent with mesh, equations or solver."""


class TopologyError(DGSEMError):
    """A face is not owned by exactly one interface, boundary or mortar side."""

    def __init__(self, message, faces=None):
        super().__init__(message)
        self.faces = [] if faces is None else list(faces)


class MeshError(DGSEMError, ValueError):
    """Invalid tree mesh parameters."""
