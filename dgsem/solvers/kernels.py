# kernels.py
"""
Numba JIT-compiled kernels of the sequential reference pipeline.

These kernels cover the equation-independent stages: gathering traces onto
faces, scattering surface fluxes back into elements and the Jacobian
scaling. Loops are strictly sequential so that the reference defines the
summation order the device results are compared against.

State arrays are passed with flattened node axes:
- u, du: (nvars, nnodes**ndims, nelements)
- face_nodes: (2*ndims, m) flat node indices of each face

All kernels use:
- nopython=True: Full Numba compilation
- cache=True: Cache compiled code
"""

from numba import jit


# ==============================================================================
# TRACE KERNELS
# ==============================================================================

@jit(nopython=True, cache=True)
def prolong2interfaces_kernel(interfaces_u, u, neighbor_ids, orientations, face_nodes):
    """
    Copy face node values of both elements of each interface.

    Args:
        interfaces_u: (2, nvars, m, ninterfaces) output
        u: (nvars, nnodes_total, nelements)
        neighbor_ids: (2, ninterfaces) primary/secondary elements
        orientations: (ninterfaces,)
        face_nodes: (2*ndims, m)
    """
    nvars = u.shape[0]
    m = face_nodes.shape[1]

    for interface in range(neighbor_ids.shape[1]):
        left = neighbor_ids[0, interface]
        right = neighbor_ids[1, interface]
        orientation = orientations[interface]
        # primary contributes its positive face, secondary its negative face
        left_face = 2 * orientation + 1
        right_face = 2 * orientation
        for i in range(m):
            for v in range(nvars):
                interfaces_u[0, v, i, interface] = u[v, face_nodes[left_face, i], left]
                interfaces_u[1, v, i, interface] = u[v, face_nodes[right_face, i], right]


@jit(nopython=True, cache=True)
def prolong2boundaries_kernel(boundaries_u, u, neighbor_ids, directions, face_nodes):
    """
    Copy face node values of the element owning each boundary.

    Only the side of the element is written: side 0 if the boundary is on the
    element's positive face, side 1 otherwise.
    """
    nvars = u.shape[0]
    m = face_nodes.shape[1]

    for boundary in range(neighbor_ids.shape[0]):
        element = neighbor_ids[boundary]
        direction = directions[boundary]
        side = 0 if direction % 2 == 1 else 1
        for i in range(m):
            for v in range(nvars):
                boundaries_u[side, v, i, boundary] = u[v, face_nodes[direction, i], element]


@jit(nopython=True, cache=True)
def prolong2mortars_kernel(mortars_u, u, neighbor_ids, orientations, large_sides,
                           face_nodes, forward):
    """
    Fill both sides of every mortar subface.

    Small elements are copied directly; the large element face is
    interpolated onto each subface with the forward operator of that subface.

    Args:
        mortars_u: (2, nsub, nvars, m, nmortars) output
        neighbor_ids: (nsub + 1, nmortars), large element last
        large_sides: (nmortars,) 0 if the large element is left of the face
        forward: (nsub, m, m)
    """
    nvars = u.shape[0]
    m = face_nodes.shape[1]
    nsub = forward.shape[0]

    for mortar in range(neighbor_ids.shape[1]):
        orientation = orientations[mortar]
        large_side = large_sides[mortar]
        small_side = 1 - large_side
        small_face = 2 * orientation + large_side
        large_face = 2 * orientation + 1 - large_side
        large = neighbor_ids[nsub, mortar]

        for k in range(nsub):
            small = neighbor_ids[k, mortar]
            for i in range(m):
                for v in range(nvars):
                    mortars_u[small_side, k, v, i, mortar] = u[v, face_nodes[small_face, i], small]

            for i in range(m):
                for v in range(nvars):
                    acc = 0.0
                    for j in range(m):
                        acc += forward[k, i, j] * u[v, face_nodes[large_face, j], large]
                    mortars_u[large_side, k, v, i, mortar] = acc


# ==============================================================================
# SCATTER KERNELS
# ==============================================================================

@jit(nopython=True, cache=True)
def mortar_fluxes_to_elements_kernel(surface_flux_values, fstar_primary, fstar_secondary,
                                     neighbor_ids, orientations, large_sides, reverse):
    """
    Write subface fluxes to the small elements and their L2 projection to the
    large element.

    Args:
        surface_flux_values: (nvars, m, 2*ndims, nelements) output
        fstar_primary: (nsub, nvars, m, nmortars) flux seen from the left side
        fstar_secondary: (nsub, nvars, m, nmortars) flux seen from the right side
        reverse: (nsub, m, m)
    """
    nsub = reverse.shape[0]
    nvars = fstar_primary.shape[1]
    m = fstar_primary.shape[2]

    for mortar in range(neighbor_ids.shape[1]):
        orientation = orientations[mortar]
        large_side = large_sides[mortar]
        small_face = 2 * orientation + large_side
        large_face = 2 * orientation + 1 - large_side
        large = neighbor_ids[nsub, mortar]

        for k in range(nsub):
            small = neighbor_ids[k, mortar]
            for i in range(m):
                for v in range(nvars):
                    if large_side == 0:
                        surface_flux_values[v, i, small_face, small] = fstar_secondary[k, v, i, mortar]
                    else:
                        surface_flux_values[v, i, small_face, small] = fstar_primary[k, v, i, mortar]

        for i in range(m):
            for v in range(nvars):
                acc = 0.0
                for k in range(nsub):
                    for j in range(m):
                        if large_side == 0:
                            acc += reverse[k, i, j] * fstar_primary[k, v, j, mortar]
                        else:
                            acc += reverse[k, i, j] * fstar_secondary[k, v, j, mortar]
                surface_flux_values[v, i, large_face, large] = acc


@jit(nopython=True, cache=True)
def surface_integral_kernel(du, surface_flux_values, face_nodes, factor_neg, factor_pos):
    """
    du[face node] += +/- surface flux / boundary weight.

    Args:
        du: (nvars, nnodes_total, nelements)
        factor_neg: boundary_interpolation[0, 0] (1/w_0)
        factor_pos: boundary_interpolation[N, 1] (1/w_N)
    """
    nvars = du.shape[0]
    m = face_nodes.shape[1]
    ndirections = face_nodes.shape[0]

    for element in range(du.shape[2]):
        for direction in range(ndirections):
            if direction % 2 == 0:
                factor = -factor_neg
            else:
                factor = factor_pos
            for i in range(m):
                node = face_nodes[direction, i]
                for v in range(nvars):
                    du[v, node, element] += factor * surface_flux_values[v, i, direction, element]


@jit(nopython=True, cache=True)
def apply_jacobian_kernel(du, inverse_jacobian):
    """du *= -inverse_jacobian[element]"""
    for element in range(du.shape[2]):
        factor = -inverse_jacobian[element]
        for node in range(du.shape[1]):
            for v in range(du.shape[0]):
                du[v, node, element] *= factor
