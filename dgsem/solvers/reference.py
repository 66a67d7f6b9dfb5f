"""
Sequential host reference of the DG-SEM residual pipeline.

Every stage loops over elements or faces and nodes in a fixed order.
Equation physics is evaluated one node (or node pair) at a time on NumPy
vectors; equation-independent gathers and scatters run in the Numba kernels
of `dgsem.solvers.kernels`.

All stages mutate the buffers they are given:
- du: (nvars, n, ..., n, nelements), C-contiguous
- the trace buffers and surface_flux_values of `cache`
"""

import numpy as np

from dgsem.equations.base import split_flux
from dgsem.errors import ShapeError
from dgsem.solvers.dgsem import (
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)
from dgsem.solvers.kernels import (
    apply_jacobian_kernel,
    mortar_fluxes_to_elements_kernel,
    prolong2boundaries_kernel,
    prolong2interfaces_kernel,
    prolong2mortars_kernel,
    surface_integral_kernel,
)


def _flat(array, cache):
    """View with flattened node axes: (nvars, nnodes**ndims, nelements)."""
    return array.reshape(array.shape[0], cache.nnodes ** cache.ndims, array.shape[-1])


def _node_strides(ndims, n):
    return [n ** (ndims - 1 - axis) for axis in range(ndims)]


def validate_buffers(du, u, equations, dg, cache):
    """
    Check buffer shapes against the mesh, equations and solver.

    Raises:
        ShapeError: on any mismatch
    """
    expected = (equations.nvariables,) + (dg.nnodes,) * cache.ndims + (cache.nelements,)
    for name, array in (("u", u), ("du", du)):
        if tuple(array.shape) != expected:
            raise ShapeError(f"{name} has shape {tuple(array.shape)}, expected {expected}")
        if not np.issubdtype(array.dtype, np.floating):
            raise ShapeError(f"{name} must be a floating point array, got {array.dtype}")
    if isinstance(du, np.ndarray) and not du.flags.c_contiguous:
        raise ShapeError("du must be C-contiguous to be updated in place")
    if cache.nvars != equations.nvariables:
        raise ShapeError(f"cache was built for {cache.nvars} variables, "
                         f"equations have {equations.nvariables}")


# =============================================================================
# Stages
# =============================================================================

def reset_du(du):
    du.fill(0.0)


def calc_volume_integral(du, u, mesh, equations, volume_integral, dg, cache):
    if isinstance(volume_integral, VolumeIntegralWeakForm):
        weak_form_kernel(du, u, equations, dg, cache)
    elif isinstance(volume_integral, VolumeIntegralFluxDifferencing):
        volume_flux, noncons_flux = split_flux(volume_integral.volume_flux, equations)
        for element in range(cache.nelements):
            flux_differencing_kernel(du, u, element, volume_flux, noncons_flux,
                                     equations, dg, cache)
    elif isinstance(volume_integral, VolumeIntegralShockCapturingHG):
        alpha = np.asarray(volume_integral.indicator(u, mesh, equations, dg, cache))
        volume_flux_dg, noncons_dg = split_flux(volume_integral.volume_flux_dg, equations)
        volume_flux_fv, noncons_fv = split_flux(volume_integral.volume_flux_fv, equations)
        for element in range(cache.nelements):
            alpha_element = alpha[element]
            if alpha_element < volume_integral.atol:
                flux_differencing_kernel(du, u, element, volume_flux_dg, noncons_dg,
                                         equations, dg, cache)
            else:
                flux_differencing_kernel(du, u, element, volume_flux_dg, noncons_dg,
                                         equations, dg, cache, alpha=1.0 - alpha_element)
                fv_kernel(du, u, element, volume_flux_fv, noncons_fv,
                          equations, dg, cache, alpha=alpha_element)
    else:
        raise ValueError(f"Unknown volume integral {volume_integral!r}")


def weak_form_kernel(du, u, equations, dg, cache):
    u_flat = _flat(u, cache)
    du_flat = _flat(du, cache)
    n = dg.nnodes
    strides = _node_strides(cache.ndims, n)
    dhat = dg.basis.derivative_dhat

    for element in range(cache.nelements):
        for node in range(u_flat.shape[1]):
            u_node = u_flat[:, node, element]
            for axis in range(cache.ndims):
                flux = equations.flux(u_node, axis)
                i = (node // strides[axis]) % n
                for ii in range(n):
                    du_flat[:, node + (ii - i) * strides[axis], element] += dhat[ii, i] * flux


def flux_differencing_kernel(du, u, element, volume_flux, noncons_flux, equations, dg, cache,
                             alpha=1.0):
    """
    Pairwise two-point fluxes along every line of nodes of one element.

    The diagonal of the split derivative matrix vanishes, so only pairs with
    i < ii are evaluated and used twice by symmetry.
    """
    u_flat = _flat(u, cache)
    du_flat = _flat(du, cache)
    n = dg.nnodes
    strides = _node_strides(cache.ndims, n)
    dsplit = dg.basis.derivative_split

    for axis in range(cache.ndims):
        stride = strides[axis]
        for node in range(u_flat.shape[1]):
            i = (node // stride) % n
            u_node = u_flat[:, node, element]
            for ii in range(i + 1, n):
                other = node + (ii - i) * stride
                u_other = u_flat[:, other, element]
                flux = volume_flux(u_node, u_other, axis, equations)
                du_flat[:, node, element] += alpha * dsplit[i, ii] * flux
                du_flat[:, other, element] += alpha * dsplit[ii, i] * flux

            if noncons_flux is not None:
                integral = np.zeros_like(u_node)
                for ii in range(n):
                    other = node + (ii - i) * stride
                    noncons = noncons_flux(u_node, u_flat[:, other, element], axis, equations)
                    integral += dsplit[i, ii] * noncons
                du_flat[:, node, element] += 0.5 * alpha * integral


def fv_kernel(du, u, element, volume_flux_fv, noncons_flux, equations, dg, cache, alpha=1.0):
    """
    First-order finite volumes on the Lobatto subcells of one element.

    Subcell interface j (1 <= j <= N) sits between nodes j-1 and j; the outer
    subcell fluxes are zero since the element faces are handled by the
    surface integral.
    """
    u_flat = _flat(u, cache)
    du_flat = _flat(du, cache)
    n = dg.nnodes
    strides = _node_strides(cache.ndims, n)
    inverse_weights = dg.basis.inverse_weights

    for axis in range(cache.ndims):
        stride = strides[axis]
        for node in range(u_flat.shape[1]):
            i = (node // stride) % n
            if i == 0:
                continue
            left = node - stride
            u_ll = u_flat[:, left, element]
            u_rr = u_flat[:, node, element]
            flux = volume_flux_fv(u_ll, u_rr, axis, equations)
            if noncons_flux is None:
                fstar_left = flux
                fstar_right = flux
            else:
                fstar_left = flux + 0.5 * noncons_flux(u_ll, u_rr, axis, equations)
                fstar_right = flux + 0.5 * noncons_flux(u_rr, u_ll, axis, equations)
            du_flat[:, left, element] += alpha * inverse_weights[i - 1] * fstar_left
            du_flat[:, node, element] -= alpha * inverse_weights[i] * fstar_right


def prolong2interfaces(cache, u, equations, dg):
    interfaces = cache.interfaces
    prolong2interfaces_kernel(interfaces.u, _flat(u, cache), interfaces.neighbor_ids,
                              interfaces.orientations, cache.topology.face_nodes)


def calc_interface_flux(surface_flux_values, equations, dg, cache):
    surface_flux, noncons_flux = split_flux(dg.surface_flux, equations)
    interfaces = cache.interfaces

    for interface in range(cache.ninterfaces):
        left = interfaces.neighbor_ids[0, interface]
        right = interfaces.neighbor_ids[1, interface]
        orientation = int(interfaces.orientations[interface])
        for i in range(cache.nfacenodes):
            u_ll = interfaces.u[0, :, i, interface]
            u_rr = interfaces.u[1, :, i, interface]
            flux = surface_flux(u_ll, u_rr, orientation, equations)
            if noncons_flux is None:
                surface_flux_values[:, i, 2 * orientation + 1, left] = flux
                surface_flux_values[:, i, 2 * orientation, right] = flux
            else:
                surface_flux_values[:, i, 2 * orientation + 1, left] = (
                    flux + 0.5 * noncons_flux(u_ll, u_rr, orientation, equations))
                surface_flux_values[:, i, 2 * orientation, right] = (
                    flux + 0.5 * noncons_flux(u_rr, u_ll, orientation, equations))


def prolong2boundaries(cache, u, equations, dg):
    boundaries = cache.boundaries
    prolong2boundaries_kernel(boundaries.u, _flat(u, cache), boundaries.neighbor_ids,
                              boundaries.directions, cache.topology.face_nodes)


def calc_boundary_flux(cache, t, boundary_conditions, equations, dg):
    surface_flux = dg.surface_flux
    nonconservative = equations.have_nonconservative_terms
    boundaries = cache.boundaries
    surface_flux_values = cache.elements.surface_flux_values

    for boundary in range(cache.nboundaries):
        element = boundaries.neighbor_ids[boundary]
        direction = int(boundaries.directions[boundary])
        orientation = direction // 2
        side = boundaries.neighbor_sides[boundary]
        boundary_condition = boundary_conditions[direction]
        for i in range(cache.nfacenodes):
            u_inner = boundaries.u[side, :, i, boundary]
            x = boundaries.node_coordinates[:, i, boundary]
            result = boundary_condition(u_inner, orientation, direction, x, t,
                                        surface_flux, equations)
            if nonconservative:
                flux, noncons = result
                surface_flux_values[:, i, direction, element] = flux + 0.5 * noncons
            else:
                surface_flux_values[:, i, direction, element] = result


def prolong2mortars(cache, u, equations, dg):
    mortars = cache.mortars
    prolong2mortars_kernel(mortars.u, _flat(u, cache), mortars.neighbor_ids,
                           mortars.orientations, mortars.large_sides,
                           cache.topology.face_nodes, cache.topology.mortar_forward)


def calc_mortar_flux(surface_flux_values, equations, dg, cache):
    surface_flux, noncons_flux = split_flux(dg.surface_flux, equations)
    mortars = cache.mortars
    fstar_shape = (cache.nsub, cache.nvars, cache.nfacenodes, cache.nmortars)
    fstar_primary = np.empty(fstar_shape, dtype=surface_flux_values.dtype)
    fstar_secondary = np.empty(fstar_shape, dtype=surface_flux_values.dtype)

    for mortar in range(cache.nmortars):
        orientation = int(mortars.orientations[mortar])
        for k in range(cache.nsub):
            for i in range(cache.nfacenodes):
                u_ll = mortars.u[0, k, :, i, mortar]
                u_rr = mortars.u[1, k, :, i, mortar]
                flux = surface_flux(u_ll, u_rr, orientation, equations)
                if noncons_flux is None:
                    fstar_primary[k, :, i, mortar] = flux
                    fstar_secondary[k, :, i, mortar] = flux
                else:
                    fstar_primary[k, :, i, mortar] = (
                        flux + 0.5 * noncons_flux(u_ll, u_rr, orientation, equations))
                    fstar_secondary[k, :, i, mortar] = (
                        flux + 0.5 * noncons_flux(u_rr, u_ll, orientation, equations))

    mortar_fluxes_to_elements_kernel(surface_flux_values, fstar_primary, fstar_secondary,
                                     mortars.neighbor_ids, mortars.orientations,
                                     mortars.large_sides, cache.topology.mortar_reverse)


def calc_surface_integral(du, u, equations, dg, cache):
    boundary_interpolation = dg.basis.boundary_interpolation
    surface_integral_kernel(_flat(du, cache), cache.elements.surface_flux_values,
                            cache.topology.face_nodes,
                            boundary_interpolation[0, 0], boundary_interpolation[-1, 1])


def apply_jacobian(du, equations, dg, cache):
    apply_jacobian_kernel(_flat(du, cache), cache.elements.inverse_jacobian)


def calc_sources(du, u, t, source_terms, equations, dg, cache):
    if source_terms is None:
        return
    u_flat = _flat(u, cache)
    du_flat = _flat(du, cache)
    x_flat = _flat(cache.elements.node_coordinates, cache)

    for element in range(cache.nelements):
        for node in range(u_flat.shape[1]):
            du_flat[:, node, element] += source_terms(u_flat[:, node, element],
                                                      x_flat[:, node, element], t, equations)


# =============================================================================
# Orchestrator
# =============================================================================

def rhs(du, u, t, mesh, equations, boundary_conditions, source_terms, dg, cache):
    """Evaluate all stages in order; du is fully overwritten."""
    validate_buffers(du, u, equations, dg, cache)

    reset_du(du)
    calc_volume_integral(du, u, mesh, equations, dg.volume_integral, dg, cache)

    prolong2interfaces(cache, u, equations, dg)
    calc_interface_flux(cache.elements.surface_flux_values, equations, dg, cache)

    if cache.nboundaries > 0:
        prolong2boundaries(cache, u, equations, dg)
        calc_boundary_flux(cache, t, boundary_conditions, equations, dg)

    if cache.nmortars > 0:
        prolong2mortars(cache, u, equations, dg)
        calc_mortar_flux(cache.elements.surface_flux_values, equations, dg, cache)

    calc_surface_integral(du, u, equations, dg, cache)
    apply_jacobian(du, equations, dg, cache)
    calc_sources(du, u, t, source_terms, equations, dg, cache)
    return du
