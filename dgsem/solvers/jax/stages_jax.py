"""
JAX-based stages of the DG-SEM residual pipeline.

Each stage is one jitted function over all elements or faces and nodes.
Equations, solver descriptors, boundary closures and the face topology are
static arguments: they are hashed by identity and their constants are baked
into the compiled stage. State, traces, flux buffers and the geometry tables
are traced arguments.

Stages never mutate: they return the new du or the new trace/flux buffer.
Scatters use index sets that are unique within one .at[].set call, and the
mortar projection is an explicit contraction per mortar, so results are
deterministic.

Usage:
    from dgsem.solvers.jax.stages_jax import prolong2interfaces_jax
    interfaces_u = prolong2interfaces_jax(u, cache, topology)
"""

from functools import partial

import jax
import jax.numpy as jnp

from dgsem.equations.base import split_flux
from dgsem.solvers.dgsem import (
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)


def _flat(array):
    """(nvars, n, ..., n, nelements) -> (nvars, n**ndims, nelements)"""
    return array.reshape(array.shape[0], -1, array.shape[-1])


def _gather_faces(u_flat, face_nodes, directions, elements):
    """
    u_flat[:, face_nodes[directions[f], i], elements[f]] as (nvars, m, nfaces).
    """
    nodes = jnp.asarray(face_nodes)[directions]    # (nfaces, m)
    values = u_flat[:, nodes, elements[:, None]]   # (nvars, nfaces, m)
    return jnp.swapaxes(values, 1, 2)


def _split_fluxes(flux, noncons_flux, u_ll, u_rr, orientation, equations):
    """Numerical flux seen from the left (primary) and the right (secondary) side."""
    fstar = flux(u_ll, u_rr, orientation, equations)
    if noncons_flux is None:
        return fstar, fstar
    return (fstar + 0.5 * noncons_flux(u_ll, u_rr, orientation, equations),
            fstar + 0.5 * noncons_flux(u_rr, u_ll, orientation, equations))


# ==============================================================================
# VOLUME KERNELS
# ==============================================================================

def weak_form_kernel_jax(u, equations, dg):
    """du = sum_axis Dhat . f_axis(u), contracted along each node axis."""
    ndims = u.ndim - 2
    dhat = jnp.asarray(dg.basis.derivative_dhat, dtype=u.dtype)
    du = jnp.zeros_like(u)
    for axis in range(ndims):
        flux = jnp.moveaxis(equations.flux(u, axis), axis + 1, -1)
        du = du + jnp.moveaxis(flux @ dhat.T, -1, axis + 1)
    return du


def flux_differencing_kernel_jax(u, volume_flux, noncons_flux, equations, dg):
    """
    du_i = sum_ii Dsplit[i, ii] f(u_i, u_ii) (+ 0.5 Dsplit[i, ii] g(u_i, u_ii))
    along every line of nodes, all pairs at once.
    """
    ndims = u.ndim - 2
    n = dg.nnodes
    dsplit = jnp.asarray(dg.basis.derivative_split, dtype=u.dtype)
    dsplit_offdiag = dsplit * (1.0 - jnp.eye(n, dtype=u.dtype))
    du = jnp.zeros_like(u)
    for axis in range(ndims):
        line = jnp.moveaxis(u, axis + 1, -1)
        u_i, u_ii = jnp.broadcast_arrays(line[..., :, None], line[..., None, :])
        flux = volume_flux(u_i, u_ii, axis, equations)
        contribution = jnp.einsum('...ij,ij->...i', flux, dsplit_offdiag)
        if noncons_flux is not None:
            noncons = noncons_flux(u_i, u_ii, axis, equations)
            contribution = contribution + 0.5 * jnp.einsum('...ij,ij->...i', noncons, dsplit)
        du = du + jnp.moveaxis(contribution, -1, axis + 1)
    return du


def fv_kernel_jax(u, volume_flux_fv, noncons_flux, equations, dg):
    """First-order finite volumes on the Lobatto subcells, zero flux at the element faces."""
    ndims = u.ndim - 2
    inverse_weights = jnp.asarray(dg.basis.inverse_weights, dtype=u.dtype)
    du = jnp.zeros_like(u)
    for axis in range(ndims):
        line = jnp.moveaxis(u, axis + 1, -1)
        u_ll = line[..., :-1]
        u_rr = line[..., 1:]
        fstar_left, fstar_right = _split_fluxes(volume_flux_fv, noncons_flux,
                                                u_ll, u_rr, axis, equations)
        zero = jnp.zeros_like(fstar_left[..., :1])
        fstar_left = jnp.concatenate([zero, fstar_left, zero], axis=-1)
        fstar_right = jnp.concatenate([zero, fstar_right, zero], axis=-1)
        contribution = inverse_weights * (fstar_left[..., 1:] - fstar_right[..., :-1])
        du = du + jnp.moveaxis(contribution, -1, axis + 1)
    return du


@partial(jax.jit, static_argnums=(3, 4, 5))
def volume_integral_jax(du, u, cache, equations, volume_integral, dg):
    """
    Add the volume integral to du.

    Args:
        du, u: (nvars, n, ..., n, nelements)
        cache: DeviceCache (used by the shock indicator)
        equations, volume_integral, dg: static descriptors

    Returns:
        du + volume contribution
    """
    if isinstance(volume_integral, VolumeIntegralWeakForm):
        return du + weak_form_kernel_jax(u, equations, dg)

    if isinstance(volume_integral, VolumeIntegralFluxDifferencing):
        volume_flux, noncons_flux = split_flux(volume_integral.volume_flux, equations)
        return du + flux_differencing_kernel_jax(u, volume_flux, noncons_flux, equations, dg)

    if isinstance(volume_integral, VolumeIntegralShockCapturingHG):
        alpha = volume_integral.indicator(u, None, equations, dg, cache)
        volume_flux_dg, noncons_dg = split_flux(volume_integral.volume_flux_dg, equations)
        volume_flux_fv, noncons_fv = split_flux(volume_integral.volume_flux_fv, equations)
        du_dg = flux_differencing_kernel_jax(u, volume_flux_dg, noncons_dg, equations, dg)
        du_fv = fv_kernel_jax(u, volume_flux_fv, noncons_fv, equations, dg)
        blended = (1.0 - alpha) * du_dg + alpha * du_fv
        pure_dg = alpha < volume_integral.atol
        return du + jnp.where(pure_dg, du_dg, blended)

    raise ValueError(f"Unknown volume integral {volume_integral!r}")


# ==============================================================================
# INTERFACE KERNELS
# ==============================================================================

@partial(jax.jit, static_argnums=(2,))
def prolong2interfaces_jax(u, cache, topology):
    """
    Returns:
        interfaces_u: (2, nvars, m, ninterfaces)
    """
    interfaces = cache.interfaces
    u_flat = _flat(u)
    orientations = interfaces.orientations
    u_ll = _gather_faces(u_flat, topology.face_nodes, 2 * orientations + 1,
                         interfaces.neighbor_ids[0])
    u_rr = _gather_faces(u_flat, topology.face_nodes, 2 * orientations,
                         interfaces.neighbor_ids[1])
    return jnp.stack([u_ll, u_rr])


@partial(jax.jit, static_argnums=(1, 2, 3))
def interface_flux_jax(cache, equations, dg, topology):
    """
    Returns:
        surface_flux_values with the interface entries written
    """
    flux, noncons_flux = split_flux(dg.surface_flux, equations)
    interfaces = cache.interfaces
    surface_flux_values = cache.elements.surface_flux_values

    for orientation, group in enumerate(topology.interface_groups):
        if group.size == 0:
            continue
        u_ll = interfaces.u[0][..., group]
        u_rr = interfaces.u[1][..., group]
        fstar_left, fstar_right = _split_fluxes(flux, noncons_flux, u_ll, u_rr,
                                                orientation, equations)
        left = interfaces.neighbor_ids[0][group]
        right = interfaces.neighbor_ids[1][group]
        surface_flux_values = surface_flux_values.at[:, :, 2 * orientation + 1, left].set(fstar_left)
        surface_flux_values = surface_flux_values.at[:, :, 2 * orientation, right].set(fstar_right)
    return surface_flux_values


# ==============================================================================
# BOUNDARY KERNELS
# ==============================================================================

@partial(jax.jit, static_argnums=(2,))
def prolong2boundaries_jax(u, cache, topology):
    """
    Returns:
        boundaries_u: (2, nvars, m, nboundaries), element side filled
    """
    boundaries = cache.boundaries
    values = _gather_faces(_flat(u), topology.face_nodes, boundaries.directions,
                           boundaries.neighbor_ids)
    side = boundaries.neighbor_sides
    # keep the untouched side as it was
    side0 = jnp.where(side == 0, values, boundaries.u[0])
    side1 = jnp.where(side == 1, values, boundaries.u[1])
    return jnp.stack([side0, side1])


@partial(jax.jit, static_argnums=(2, 3, 4, 5))
def boundary_flux_jax(t, cache, boundary_conditions, equations, dg, topology):
    """
    Evaluate the boundary closures, one batch per direction.

    Returns:
        surface_flux_values with the boundary entries written
    """
    nonconservative = equations.have_nonconservative_terms
    boundaries = cache.boundaries
    surface_flux_values = cache.elements.surface_flux_values

    for direction, group in enumerate(topology.boundary_groups):
        if group.size == 0:
            continue
        orientation = direction // 2
        inner_side = 0 if direction % 2 == 1 else 1
        u_inner = boundaries.u[inner_side][..., group]
        x = boundaries.node_coordinates[..., group]
        result = boundary_conditions[direction](u_inner, orientation, direction, x, t,
                                                dg.surface_flux, equations)
        if nonconservative:
            flux, noncons = result
            flux = flux + 0.5 * noncons
        else:
            flux = result
        elements = boundaries.neighbor_ids[group]
        surface_flux_values = surface_flux_values.at[:, :, direction, elements].set(flux)
    return surface_flux_values


# ==============================================================================
# MORTAR KERNELS
# ==============================================================================

@partial(jax.jit, static_argnums=(2,))
def prolong2mortars_jax(u, cache, topology):
    """
    Returns:
        mortars_u: (2, nsub, nvars, m, nmortars)
    """
    mortars = cache.mortars
    u_flat = _flat(u)
    forward = jnp.asarray(topology.mortar_forward, dtype=u.dtype)
    nsub = forward.shape[0]
    orientations = mortars.orientations
    large_sides = mortars.large_sides
    small_dirs = 2 * orientations + large_sides
    large_dirs = 2 * orientations + 1 - large_sides

    small = jnp.stack([
        _gather_faces(u_flat, topology.face_nodes, small_dirs, mortars.neighbor_ids[k])
        for k in range(nsub)])                                    # (nsub, nvars, m, nmortars)
    large = _gather_faces(u_flat, topology.face_nodes, large_dirs,
                          mortars.neighbor_ids[nsub])             # (nvars, m, nmortars)
    large_on_subfaces = jnp.einsum('kij,vjM->kviM', forward, large)

    large_left = large_sides == 0
    side0 = jnp.where(large_left, large_on_subfaces, small)
    side1 = jnp.where(large_left, small, large_on_subfaces)
    return jnp.stack([side0, side1])


@partial(jax.jit, static_argnums=(1, 2, 3))
def mortar_flux_jax(cache, equations, dg, topology):
    """
    Subface fluxes to the small elements, their L2 projection to the large one.

    Returns:
        surface_flux_values with the mortar entries written
    """
    flux, noncons_flux = split_flux(dg.surface_flux, equations)
    mortars = cache.mortars
    surface_flux_values = cache.elements.surface_flux_values
    reverse = jnp.asarray(topology.mortar_reverse, dtype=surface_flux_values.dtype)
    nsub = reverse.shape[0]

    for orientation, group in enumerate(topology.mortar_groups):
        if group.size == 0:
            continue
        # variables first for the flux functions: (nvars, nsub, m, nmortars)
        u_ll = jnp.swapaxes(mortars.u[0][..., group], 0, 1)
        u_rr = jnp.swapaxes(mortars.u[1][..., group], 0, 1)
        fstar_left, fstar_right = _split_fluxes(flux, noncons_flux, u_ll, u_rr,
                                                orientation, equations)

        large_sides = mortars.large_sides[group]
        large_left = large_sides == 0
        fstar_small = jnp.where(large_left, fstar_right, fstar_left)
        fstar_large = jnp.where(large_left, fstar_left, fstar_right)

        small_dirs = 2 * orientation + large_sides
        large_dirs = 2 * orientation + 1 - large_sides
        for k in range(nsub):
            small = mortars.neighbor_ids[k][group]
            surface_flux_values = surface_flux_values.at[:, :, small_dirs, small].set(
                fstar_small[:, k])

        projected = jnp.einsum('kij,vkjM->viM', reverse, fstar_large)
        large = mortars.neighbor_ids[nsub][group]
        surface_flux_values = surface_flux_values.at[:, :, large_dirs, large].set(projected)
    return surface_flux_values


# ==============================================================================
# SURFACE INTEGRAL, JACOBIAN, SOURCES
# ==============================================================================

@partial(jax.jit, static_argnums=(2, 3))
def surface_integral_jax(du, cache, dg, topology):
    """du[face nodes] -= sfv / w_0 on negative faces, += sfv / w_N on positive faces."""
    shape = du.shape
    du_flat = _flat(du)
    surface_flux_values = cache.elements.surface_flux_values
    factor_neg = float(dg.basis.boundary_interpolation[0, 0])
    factor_pos = float(dg.basis.boundary_interpolation[-1, 1])

    for direction in range(topology.face_nodes.shape[0]):
        factor = -factor_neg if direction % 2 == 0 else factor_pos
        nodes = topology.face_nodes[direction]
        du_flat = du_flat.at[:, nodes, :].add(factor * surface_flux_values[:, :, direction, :])
    return du_flat.reshape(shape)


@jax.jit
def apply_jacobian_jax(du, cache):
    """du *= -inverse_jacobian[element]"""
    return du * (-cache.elements.inverse_jacobian)


@partial(jax.jit, static_argnums=(4, 5))
def calc_sources_jax(du, u, t, cache, source_terms, equations):
    """du += source_terms(u, x, t) at every node."""
    x = cache.elements.node_coordinates
    return du + source_terms(u, x, t, equations).astype(du.dtype)
