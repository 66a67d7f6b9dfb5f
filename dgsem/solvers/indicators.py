"""
Hennemann-Gassner shock indicator.

Computes per-element blending coefficients alpha in [0, alpha_max] from the
modal energy decay of an indicator variable. Written against the array
module of its input so that it runs inside the jitted device volume stage as
well as on the host.
"""

import itertools

import numpy as np

from dgsem.backend import get_array_module
from dgsem.equations.compressible_euler import density_pressure


class IndicatorHennemannGassner:
    """
    Args:
        equations: equation descriptor
        basis: LobattoLegendreBasis of the solver
        alpha_max: upper bound of the blending coefficient
        alpha_min: coefficients below are set to 0, above 1 - alpha_min to 1
        alpha_smooth: take the max with half the neighbors' alpha
        variable: callable (u, equations) -> indicator values per node
    """

    def __init__(self, equations, basis, alpha_max=0.5, alpha_min=0.001,
                 alpha_smooth=True, variable=density_pressure):
        self.alpha_max = float(alpha_max)
        self.alpha_min = float(alpha_min)
        self.alpha_smooth = alpha_smooth
        self.variable = variable

        ndims = equations.ndims
        n = basis.nnodes
        self.ndims = ndims
        self.inverse_vandermonde = basis.inverse_vandermonde_legendre

        max_mode = np.zeros((n,) * ndims, dtype=np.int64)
        for index in itertools.product(range(n), repeat=ndims):
            max_mode[index] = max(index)
        # modes kept in the energies with the highest one or two modes dropped
        self.mask_clip1 = (max_mode <= n - 2).astype(float)
        self.mask_clip2 = (max_mode <= n - 3).astype(float)

        self.threshold = 0.5 * 10.0 ** (-1.8 * n ** 0.25)
        self.parameter_s = np.log((1.0 - 0.0001) / 0.0001)

    def __call__(self, u, mesh, equations, dg, cache):
        xp = get_array_module(u)
        indicator = self.variable(u, equations)  # (n, ..., n, nelements)

        Vinv = xp.asarray(self.inverse_vandermonde, dtype=indicator.dtype)
        modal = indicator
        for axis in range(self.ndims):
            modal = xp.moveaxis(xp.moveaxis(modal, axis, -1) @ Vinv.T, -1, axis)

        node_axes = tuple(range(self.ndims))
        energy_modes = modal * modal
        shape = self.mask_clip1.shape + (1,)
        mask_clip1 = xp.asarray(self.mask_clip1.reshape(shape), dtype=indicator.dtype)
        mask_clip2 = xp.asarray(self.mask_clip2.reshape(shape), dtype=indicator.dtype)
        total_energy = xp.sum(energy_modes, axis=node_axes)
        total_energy_clip1 = xp.sum(energy_modes * mask_clip1, axis=node_axes)
        total_energy_clip2 = xp.sum(energy_modes * mask_clip2, axis=node_axes)

        energy = xp.maximum((total_energy - total_energy_clip1) / total_energy,
                            (total_energy_clip1 - total_energy_clip2) / total_energy_clip1)

        alpha = 1.0 / (1.0 + xp.exp(-self.parameter_s / self.threshold * (energy - self.threshold)))
        alpha = xp.where(alpha < self.alpha_min, 0.0, alpha)
        alpha = xp.where(alpha > 1.0 - self.alpha_min, 1.0, alpha)
        alpha = xp.minimum(self.alpha_max, alpha)

        if self.alpha_smooth:
            alpha = self._smooth(alpha, xp, cache)
        return alpha

    @staticmethod
    def _smooth(alpha, xp, cache):
        """alpha_e = max(alpha_e, 0.5 alpha_neighbor) over interface and mortar neighbors."""
        smoothed = alpha.copy() if xp is np else alpha
        interface_ids = cache.interfaces.neighbor_ids
        pairs = [(interface_ids[0], interface_ids[1])]
        mortar_ids = cache.mortars.neighbor_ids
        large = mortar_ids[-1]
        for k in range(mortar_ids.shape[0] - 1):
            pairs.append((mortar_ids[k], large))

        for left, right in pairs:
            if xp is np:
                np.maximum.at(smoothed, left, 0.5 * alpha[right])
                np.maximum.at(smoothed, right, 0.5 * alpha[left])
            else:
                smoothed = smoothed.at[left].max(0.5 * alpha[right])
                smoothed = smoothed.at[right].max(0.5 * alpha[left])
        return smoothed
