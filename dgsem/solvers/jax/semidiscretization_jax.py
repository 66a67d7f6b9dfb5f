"""
Device orchestrator of the DG-SEM residual pipeline.

Mirrors the host SemidiscretizationHyperbolic: the tables are transferred
once, then every stage is issued as its own jitted call and synchronized
with block_until_ready() before the next one starts.

Usage:
    semi_jax = SemidiscretizationJAX(semi)
    du, u = copy_to_device(du, u)
    du = semi_jax.rhs(du, u, t)
"""

import logging
import time

import jax
import jax.numpy as jnp
import numpy as np

from dgsem.errors import ShapeError
from dgsem.log import get_logger
from dgsem.solvers.jax.containers_jax import cache_to_device
from dgsem.solvers.jax.stages_jax import (
    apply_jacobian_jax,
    boundary_flux_jax,
    calc_sources_jax,
    interface_flux_jax,
    mortar_flux_jax,
    prolong2boundaries_jax,
    prolong2interfaces_jax,
    prolong2mortars_jax,
    surface_integral_jax,
    volume_integral_jax,
)

logger = get_logger("dgsem.pipeline")


class SemidiscretizationJAX:
    """
    Args:
        semi: host SemidiscretizationHyperbolic
        dtype: floating point dtype of the device buffers (default: semi.dtype)

    Attributes:
        cache: DeviceCache holding the latest trace and flux buffers
        timings: accumulated wall time per stage [s] when debug logging is on
    """

    def __init__(self, semi, dtype=None):
        self.semi = semi
        self.mesh = semi.mesh
        self.equations = semi.equations
        self.solver = semi.solver
        self.boundary_conditions = semi.boundary_conditions
        self.source_terms = semi.source_terms
        self.topology = semi.cache.topology
        self.nboundaries = semi.cache.nboundaries
        self.nmortars = semi.cache.nmortars
        self.dtype = np.dtype(semi.dtype if dtype is None else dtype)
        self.shape = semi.shape

        self.cache = cache_to_device(semi.cache, self.dtype)
        self.timings = {}

        logger.info(f"[dgsem] Device cache on {jax.devices()[0]} ({self.dtype.name}): "
                    f"{semi.cache}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def validate_buffers(self, du, u):
        """
        Raises:
            ShapeError: if du or u do not match the semidiscretization
        """
        for name, array in (("u", u), ("du", du)):
            if tuple(array.shape) != self.shape:
                raise ShapeError(f"{name} has shape {tuple(array.shape)}, expected {self.shape}")
            if not jnp.issubdtype(array.dtype, jnp.floating):
                raise ShapeError(f"{name} must be a floating point array, got {array.dtype}")

    def _synchronize(self, name, result, start):
        jax.block_until_ready(result)
        if logger.isEnabledFor(logging.DEBUG):
            self.timings[name] = self.timings.get(name, 0.0) + time.perf_counter() - start
        return result

    def _replace(self, **containers):
        self.cache = self.cache._replace(**containers)

    def _set_surface_flux_values(self, surface_flux_values):
        self._replace(elements=self.cache.elements._replace(
            surface_flux_values=surface_flux_values))

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def reset_du(self, du):
        start = time.perf_counter()
        return self._synchronize("reset_du", jnp.zeros_like(du), start)

    def volume_integral(self, du, u):
        start = time.perf_counter()
        du = volume_integral_jax(du, u, self.cache, self.equations,
                                 self.solver.volume_integral, self.solver)
        return self._synchronize("volume_integral", du, start)

    def prolong2interfaces(self, u):
        start = time.perf_counter()
        interfaces_u = prolong2interfaces_jax(u, self.cache, self.topology)
        self._synchronize("prolong2interfaces", interfaces_u, start)
        self._replace(interfaces=self.cache.interfaces._replace(u=interfaces_u))

    def interface_flux(self):
        start = time.perf_counter()
        sfv = interface_flux_jax(self.cache, self.equations, self.solver, self.topology)
        self._synchronize("interface_flux", sfv, start)
        self._set_surface_flux_values(sfv)

    def prolong2boundaries(self, u):
        start = time.perf_counter()
        boundaries_u = prolong2boundaries_jax(u, self.cache, self.topology)
        self._synchronize("prolong2boundaries", boundaries_u, start)
        self._replace(boundaries=self.cache.boundaries._replace(u=boundaries_u))

    def boundary_flux(self, t):
        start = time.perf_counter()
        sfv = boundary_flux_jax(t, self.cache, self.boundary_conditions, self.equations,
                                self.solver, self.topology)
        self._synchronize("boundary_flux", sfv, start)
        self._set_surface_flux_values(sfv)

    def prolong2mortars(self, u):
        start = time.perf_counter()
        mortars_u = prolong2mortars_jax(u, self.cache, self.topology)
        self._synchronize("prolong2mortars", mortars_u, start)
        self._replace(mortars=self.cache.mortars._replace(u=mortars_u))

    def mortar_flux(self):
        start = time.perf_counter()
        sfv = mortar_flux_jax(self.cache, self.equations, self.solver, self.topology)
        self._synchronize("mortar_flux", sfv, start)
        self._set_surface_flux_values(sfv)

    def surface_integral(self, du):
        start = time.perf_counter()
        du = surface_integral_jax(du, self.cache, self.solver, self.topology)
        return self._synchronize("surface_integral", du, start)

    def apply_jacobian(self, du):
        start = time.perf_counter()
        du = apply_jacobian_jax(du, self.cache)
        return self._synchronize("apply_jacobian", du, start)

    def calc_sources(self, du, u, t):
        if self.source_terms is None:
            return du
        start = time.perf_counter()
        du = calc_sources_jax(du, u, t, self.cache, self.source_terms, self.equations)
        return self._synchronize("calc_sources", du, start)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def rhs(self, du, u, t):
        """
        Evaluate all stages in order with a barrier after each.

        Args:
            du, u: device arrays of shape (nvars, n, ..., n, nelements)
            t: time

        Returns:
            new du
        """
        self.validate_buffers(du, u)
        debug = logger.isEnabledFor(logging.DEBUG)
        before = dict(self.timings) if debug else None

        du = self.reset_du(du)
        du = self.volume_integral(du, u)

        self.prolong2interfaces(u)
        self.interface_flux()

        if self.nboundaries > 0:
            self.prolong2boundaries(u)
            self.boundary_flux(t)

        if self.nmortars > 0:
            self.prolong2mortars(u)
            self.mortar_flux()

        du = self.surface_integral(du)
        du = self.apply_jacobian(du)
        du = self.calc_sources(du, u, t)

        if debug:
            self._log_stage_times(before, t)
            if not bool(jnp.all(jnp.isfinite(du))):
                logger.debug(f"[dgsem] Non-finite values in du at t={t}")
        return du

    def _log_stage_times(self, before, t):
        """Debug line with the wall time each stage took in the last rhs call."""
        stages = []
        for name, total in self.timings.items():
            elapsed = total - before.get(name, 0.0)
            if elapsed > 0.0:
                stages.append(f"{name} {elapsed * 1e3:.3f} ms")
        logger.debug(f"[dgsem] rhs at t={t}: " + ", ".join(stages))

    def __repr__(self):
        return f"SemidiscretizationJAX({self.semi!r}, dtype={self.dtype.name})"
