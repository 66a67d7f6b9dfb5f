"""
DG-SEM solver descriptor and volume-integral variants.
"""

from dgsem.core.basis import LobattoLegendreBasis, LobattoLegendreMortarL2
from dgsem.equations.base import flux_central, flux_lax_friedrichs, split_flux


class VolumeIntegralWeakForm:
    """du += Dhat . f(u) along each axis."""

    def check(self, equations):
        if equations.have_nonconservative_terms:
            raise ValueError("VolumeIntegralWeakForm does not support nonconservative terms, "
                             "use VolumeIntegralFluxDifferencing")

    def __repr__(self):
        return "VolumeIntegralWeakForm()"


class VolumeIntegralFluxDifferencing:
    """
    Split-form volume integral with a symmetric two-point flux.

    Args:
        volume_flux: two-point flux, or (flux, nonconservative_flux) pair
    """

    def __init__(self, volume_flux=flux_central):
        self.volume_flux = volume_flux

    def check(self, equations):
        split_flux(self.volume_flux, equations, "volume_flux")

    def __repr__(self):
        return f"VolumeIntegralFluxDifferencing({_flux_name(self.volume_flux)})"


class VolumeIntegralShockCapturingHG:
    """
    Blend of flux differencing and a subcell finite-volume scheme.

    Elements with blending coefficient alpha below `atol` use pure flux
    differencing.

    Args:
        indicator: callable (u, mesh, equations, dg, cache) -> alpha[nelements]
        volume_flux_dg: two-point flux for the high-order part
        volume_flux_fv: numerical flux between Lobatto subcells
    """

    atol = 1e-12

    def __init__(self, indicator, volume_flux_dg=flux_central,
                 volume_flux_fv=flux_lax_friedrichs):
        self.indicator = indicator
        self.volume_flux_dg = volume_flux_dg
        self.volume_flux_fv = volume_flux_fv

    def check(self, equations):
        split_flux(self.volume_flux_dg, equations, "volume_flux_dg")
        split_flux(self.volume_flux_fv, equations, "volume_flux_fv")

    def __repr__(self):
        return (f"VolumeIntegralShockCapturingHG({_flux_name(self.volume_flux_dg)}, "
                f"{_flux_name(self.volume_flux_fv)})")


VOLUME_INTEGRALS = {
    'weak_form': VolumeIntegralWeakForm,
    'flux_differencing': VolumeIntegralFluxDifferencing,
}


def _flux_name(flux):
    if isinstance(flux, tuple):
        return "(" + ", ".join(_flux_name(f) for f in flux) + ")"
    return getattr(flux, "__name__", repr(flux))


class DGSEM:
    """
    Discontinuous Galerkin spectral element method on Lobatto-Legendre nodes.

    Args:
        basis: LobattoLegendreBasis, or the polynomial degree N to build one
        surface_flux: numerical flux, or (flux, nonconservative_flux) pair
        volume_integral: one of the VolumeIntegral* descriptors, or its name

    The basis can be built first so that a shock-capturing indicator sharing
    it is passed in at construction:

        basis = LobattoLegendreBasis(3)
        indicator = IndicatorHennemannGassner(equations, basis)
        solver = DGSEM(basis, flux_lax_friedrichs,
                       VolumeIntegralShockCapturingHG(indicator, ...))
    """

    def __init__(self, basis, surface_flux=flux_central, volume_integral=None):
        if not isinstance(basis, LobattoLegendreBasis):
            basis = LobattoLegendreBasis(int(basis))
        self.basis = basis
        self.mortar = LobattoLegendreMortarL2(self.basis)
        self.surface_flux = surface_flux
        if volume_integral is None:
            volume_integral = VolumeIntegralWeakForm()
        elif isinstance(volume_integral, str):
            if volume_integral not in VOLUME_INTEGRALS:
                raise ValueError(f"Unknown volume integral '{volume_integral}' "
                                 f"(expected one of {sorted(VOLUME_INTEGRALS)})")
            volume_integral = VOLUME_INTEGRALS[volume_integral]()
        self.volume_integral = volume_integral

    @property
    def polydeg(self):
        return self.basis.polydeg

    @property
    def nnodes(self):
        return self.basis.nnodes

    def check(self, equations):
        """Validate the configured fluxes against `equations`."""
        split_flux(self.surface_flux, equations, "surface_flux")
        self.volume_integral.check(equations)

    def __repr__(self):
        return (f"DGSEM(polydeg={self.polydeg}, surface_flux={_flux_name(self.surface_flux)}, "
                f"volume_integral={self.volume_integral})")
