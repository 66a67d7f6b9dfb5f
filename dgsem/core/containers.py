"""
Geometry/topology tables and state buffers of a DG-SEM discretization.

Tables are NamedTuples so that the same structure can be mirrored on the
device as a JAX pytree. Face node axes are flattened: a face of an element
with n nodes per axis carries m = n**(ndims-1) nodes, in C order of the
remaining axes.
"""

import itertools
from typing import NamedTuple

import numpy as np

from dgsem.errors import TopologyError
from dgsem.log import get_logger

logger = get_logger("dgsem.containers")


class ElementContainer(NamedTuple):
    node_coordinates: np.ndarray     # (ndims, n, ..., n, nelements)
    inverse_jacobian: np.ndarray     # (nelements,)
    levels: np.ndarray               # (nelements,)
    surface_flux_values: np.ndarray  # (nvars, m, 2*ndims, nelements)


class InterfaceContainer(NamedTuple):
    u: np.ndarray             # (2, nvars, m, ninterfaces)
    neighbor_ids: np.ndarray  # (2, ninterfaces): primary (left), secondary (right)
    orientations: np.ndarray  # (ninterfaces,)


class BoundaryContainer(NamedTuple):
    u: np.ndarray                 # (2, nvars, m, nboundaries)
    neighbor_ids: np.ndarray      # (nboundaries,)
    directions: np.ndarray        # (nboundaries,) face direction of the element
    orientations: np.ndarray      # (nboundaries,)
    neighbor_sides: np.ndarray    # (nboundaries,) 0 if the element is left of the face
    node_coordinates: np.ndarray  # (ndims, m, nboundaries)


class MortarContainer(NamedTuple):
    u: np.ndarray             # (2, nsub, nvars, m, nmortars)
    neighbor_ids: np.ndarray  # (nsub + 1, nmortars): small elements by subface, then large
    orientations: np.ndarray  # (nmortars,)
    large_sides: np.ndarray   # (nmortars,) 0 if the large element is left of the face


class FaceTopology:
    """
    Host-side static index tables.

    Hashed by identity so that it can be a static argument of jitted device
    stages; its arrays are baked into the compiled stages as constants.

    Attributes:
        face_nodes: (2*ndims, m) flat node indices of each face
        interface_groups: per orientation, indices of the interfaces
        boundary_groups: per direction, indices of the boundaries
        mortar_groups: per orientation, indices of the mortars
        mortar_forward, mortar_reverse: (nsub, m, m) subface operators
    """

    def __init__(self, face_nodes, interface_groups, boundary_groups, mortar_groups,
                 mortar_forward, mortar_reverse):
        self.face_nodes = face_nodes
        self.interface_groups = interface_groups
        self.boundary_groups = boundary_groups
        self.mortar_groups = mortar_groups
        self.mortar_forward = mortar_forward
        self.mortar_reverse = mortar_reverse


class Cache:
    """
    All tables and buffers of one semidiscretization on the host.

    Attributes:
        elements, interfaces, boundaries, mortars: containers
        topology: FaceTopology
        ndims, nvars, nnodes, nfacenodes, nsub: sizes
    """

    def __init__(self, elements, interfaces, boundaries, mortars, topology, nvars, nnodes):
        self.elements = elements
        self.interfaces = interfaces
        self.boundaries = boundaries
        self.mortars = mortars
        self.topology = topology
        self.ndims = elements.node_coordinates.shape[0]
        self.nvars = nvars
        self.nnodes = nnodes
        self.nfacenodes = nnodes ** (self.ndims - 1)
        self.nsub = 2 ** (self.ndims - 1)

    @property
    def nelements(self):
        return self.elements.inverse_jacobian.shape[0]

    @property
    def ninterfaces(self):
        return self.interfaces.orientations.shape[0]

    @property
    def nboundaries(self):
        return self.boundaries.orientations.shape[0]

    @property
    def nmortars(self):
        return self.mortars.orientations.shape[0]

    def __repr__(self):
        return (f"Cache(ndims={self.ndims}, nvars={self.nvars}, nnodes={self.nnodes}, "
                f"nelements={self.nelements}, ninterfaces={self.ninterfaces}, "
                f"nboundaries={self.nboundaries}, nmortars={self.nmortars})")


# =============================================================================
# Builders
# =============================================================================

def face_node_indices(ndims, nnodes):
    """
    Flat (C order) node indices of each element face.

    Returns:
        array of shape (2*ndims, nnodes**(ndims-1))
    """
    shape = (nnodes,) * ndims
    faces = []
    for direction in range(2 * ndims):
        axis, side = divmod(direction, 2)
        fixed = 0 if side == 0 else nnodes - 1
        nodes = []
        for rest in itertools.product(range(nnodes), repeat=ndims - 1):
            index = rest[:axis] + (fixed,) + rest[axis:]
            nodes.append(np.ravel_multi_index(index, shape))
        faces.append(nodes)
    return np.array(faces, dtype=np.int64)


def init_elements(mesh, basis, nvars, dtype=np.float64):
    ndims = mesh.ndims
    n = basis.nnodes
    nelements = mesh.nelements

    node_coordinates = np.empty((ndims,) + (n,) * ndims + (nelements,), dtype=dtype)
    for axis in range(ndims):
        shape = [1] * ndims + [nelements]
        shape[axis] = n
        x = (mesh.centers[:, axis][None, :]
             + 0.5 * mesh.cell_lengths[None, :] * basis.nodes[:, None])
        node_coordinates[axis] = np.broadcast_to(x.reshape(shape), (n,) * ndims + (nelements,))

    inverse_jacobian = (2.0 / mesh.cell_lengths).astype(dtype)
    surface_flux_values = np.zeros((nvars, n ** (ndims - 1), 2 * ndims, nelements), dtype=dtype)
    return ElementContainer(node_coordinates, inverse_jacobian, mesh.levels.copy(),
                            surface_flux_values)


def _catalog_faces(mesh):
    interfaces = []  # (left, right, orientation)
    boundaries = []  # (element, direction)
    mortars = []     # (small elements, large, orientation, large_side)

    for element in range(mesh.nelements):
        for direction in range(2 * mesh.ndims):
            axis, side = divmod(direction, 2)
            kind, nb = mesh.face_neighbor(element, direction)
            if kind == "boundary":
                boundaries.append((element, direction))
            elif kind == "same" or mesh.ndims == 1:
                # point faces are always conforming: owned from the left element
                if side == 1:
                    right = nb[0] if kind == "fine" else nb
                    interfaces.append((element, right, axis))
            elif kind == "fine":
                mortars.append((nb, element, axis, 0 if side == 1 else 1))
            # "coarse" faces are owned by the mortar of the coarse element
    return interfaces, boundaries, mortars


def check_face_coverage(nelements, ndims, interfaces, boundaries, mortars):
    """
    Verify that every (element, direction) is owned exactly once.

    Raises:
        TopologyError: listing the offending (element, direction) pairs
    """
    count = np.zeros((nelements, 2 * ndims), dtype=np.int64)
    for left, right, axis in interfaces:
        count[left, 2 * axis + 1] += 1
        count[right, 2 * axis] += 1
    for element, direction in boundaries:
        count[element, direction] += 1
    for small, large, axis, large_side in mortars:
        count[large, 2 * axis + 1 - large_side] += 1
        for element in small:
            count[element, 2 * axis + large_side] += 1

    bad = np.argwhere(count != 1)
    if len(bad) > 0:
        faces = [(int(e), int(d)) for e, d in bad]
        raise TopologyError(f"{len(faces)} element faces are not owned exactly once, "
                            f"first offenders: {faces[:5]}", faces)


def create_cache(mesh, basis, mortar, nvars, dtype=np.float64):
    """Build all tables and buffers for `mesh` with a basis of `basis.nnodes` nodes."""
    ndims = mesh.ndims
    n = basis.nnodes
    m = n ** (ndims - 1)
    nsub = 2 ** (ndims - 1)

    elements = init_elements(mesh, basis, nvars, dtype)
    interfaces, boundaries, mortars = _catalog_faces(mesh)
    check_face_coverage(mesh.nelements, ndims, interfaces, boundaries, mortars)

    face_nodes = face_node_indices(ndims, n)

    # interfaces
    neighbor_ids = np.array([[l, r] for l, r, _ in interfaces], dtype=np.int64).reshape(-1, 2).T
    orientations = np.array([o for _, _, o in interfaces], dtype=np.int64)
    interface_container = InterfaceContainer(
        np.zeros((2, nvars, m, len(interfaces)), dtype=dtype),
        np.ascontiguousarray(neighbor_ids), orientations)

    # boundaries, sorted by direction
    boundaries = sorted(boundaries, key=lambda b: (b[1], b[0]))
    b_ids = np.array([e for e, _ in boundaries], dtype=np.int64)
    b_dirs = np.array([d for _, d in boundaries], dtype=np.int64)
    coords_flat = elements.node_coordinates.reshape(ndims, n ** ndims, mesh.nelements)
    b_coords = np.empty((ndims, m, len(boundaries)), dtype=dtype)
    for b, (element, direction) in enumerate(boundaries):
        b_coords[:, :, b] = coords_flat[:, face_nodes[direction], element]
    boundary_container = BoundaryContainer(
        np.zeros((2, nvars, m, len(boundaries)), dtype=dtype),
        b_ids, b_dirs, b_dirs // 2, np.where(b_dirs % 2 == 1, 0, 1).astype(np.int64), b_coords)

    # mortars
    m_ids = np.array([list(small) + [large] for small, large, _, _ in mortars],
                     dtype=np.int64).reshape(-1, nsub + 1).T
    mortar_container = MortarContainer(
        np.zeros((2, nsub, nvars, m, len(mortars)), dtype=dtype),
        np.ascontiguousarray(m_ids),
        np.array([o for _, _, o, _ in mortars], dtype=np.int64),
        np.array([s for _, _, _, s in mortars], dtype=np.int64))

    forward, reverse = mortar.subface_operators(ndims)
    topology = FaceTopology(
        face_nodes=face_nodes,
        interface_groups=tuple(np.flatnonzero(orientations == o) for o in range(ndims)),
        boundary_groups=tuple(np.flatnonzero(b_dirs == d) for d in range(2 * ndims)),
        mortar_groups=tuple(np.flatnonzero(mortar_container.orientations == o)
                            for o in range(ndims)),
        mortar_forward=forward,
        mortar_reverse=reverse)

    cache = Cache(elements, interface_container, boundary_container, mortar_container,
                  topology, nvars, n)
    logger.info(f"[dgsem] Cache initialized: {cache.nelements} elements, "
                f"{cache.ninterfaces} interfaces, {cache.nboundaries} boundaries, "
                f"{cache.nmortars} mortars")
    return cache
