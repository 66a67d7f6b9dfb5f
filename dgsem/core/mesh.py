"""
Static hierarchical Cartesian tree mesh.

The domain is a hypercube split uniformly up to an initial refinement level,
optionally refined further inside box patches. Refinement is 2:1 balanced
across faces so that every non-conforming face couples one coarse face to
exactly 2**(ndims-1) fine faces.

Leaves are identified by (level, index tuple) and enumerated depth-first in
tree order, children ordered with the first axis fastest.
"""

import itertools

import numpy as np

from dgsem.errors import MeshError
from dgsem.log import get_logger

logger = get_logger("dgsem.mesh")


def _as_tuple(value, ndims=None):
    if np.ndim(value) == 0:
        value = (value,) if ndims is None else (value,) * ndims
    return tuple(float(v) for v in value)


def _child_offsets(ndims):
    # first axis fastest
    return [tuple(reversed(bits)) for bits in itertools.product((0, 1), repeat=ndims)]


class TreeMesh:
    """
    Tree mesh on [coordinates_min, coordinates_max]^ndims.

    Args:
        coordinates_min: Lower corner (float in 1D or sequence)
        coordinates_max: Upper corner
        initial_refinement_level: Uniform refinement level
        refinement_patches: Sequence of dicts {"type": "box", "coordinates_min": ...,
            "coordinates_max": ...}; cells whose center lies strictly inside a
            box are refined once, patches are applied in order
        periodicity: bool or one bool per axis
        n_cells_max: Maximum number of leaf cells
    """

    def __init__(self, coordinates_min, coordinates_max, initial_refinement_level,
                 refinement_patches=(), periodicity=True, n_cells_max=100_000):
        self.coordinates_min = np.array(_as_tuple(coordinates_min))
        self.coordinates_max = np.array(_as_tuple(coordinates_max))
        self.ndims = len(self.coordinates_min)

        if not 1 <= self.ndims <= 3:
            raise MeshError(f"TreeMesh supports 1 to 3 dimensions, got {self.ndims}")
        if len(self.coordinates_max) != self.ndims:
            raise MeshError("coordinates_min and coordinates_max have different dimensions")

        lengths = self.coordinates_max - self.coordinates_min
        if np.any(lengths <= 0.0):
            raise MeshError(f"Empty domain: min={self.coordinates_min}, max={self.coordinates_max}")
        if not np.allclose(lengths, lengths[0], rtol=1e-12, atol=0.0):
            raise MeshError(f"TreeMesh requires a hypercube domain, got side lengths {lengths}")
        self.length = float(lengths[0])

        if initial_refinement_level < 0:
            raise MeshError(f"initial_refinement_level must be >= 0, got {initial_refinement_level}")

        if isinstance(periodicity, (bool, np.bool_)):
            periodicity = (bool(periodicity),) * self.ndims
        self.periodicity = tuple(bool(p) for p in periodicity)
        if len(self.periodicity) != self.ndims:
            raise MeshError(f"periodicity needs {self.ndims} entries, got {len(self.periodicity)}")

        self.n_cells_max = n_cells_max
        self._offsets = _child_offsets(self.ndims)

        n = 2 ** initial_refinement_level
        if n ** self.ndims > n_cells_max:
            raise MeshError(f"Uniform level {initial_refinement_level} needs {n ** self.ndims} "
                            f"cells, exceeding n_cells_max={n_cells_max}")
        self._leaves = {(initial_refinement_level, idx)
                        for idx in itertools.product(range(n), repeat=self.ndims)}

        for patch in refinement_patches:
            self._apply_patch(patch)

        self._build_index()

        logger.debug(f"[dgsem] TreeMesh {self.ndims}D: {self.nelements} cells, "
                     f"levels {self.levels.min()}..{self.levels.max()}, "
                     f"periodicity={self.periodicity}")

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    def _apply_patch(self, patch):
        if patch.get("type", "box") != "box":
            raise MeshError(f"Unknown refinement patch type '{patch['type']}'")
        box_min = np.array(_as_tuple(patch["coordinates_min"], self.ndims))
        box_max = np.array(_as_tuple(patch["coordinates_max"], self.ndims))

        cells = [cell for cell in self._leaves
                 if np.all(self.cell_center(*cell) > box_min)
                 and np.all(self.cell_center(*cell) < box_max)]
        self._refine(cells)
        self._balance()

    def _refine(self, cells):
        for level, idx in cells:
            self._leaves.remove((level, idx))
            for offset in self._offsets:
                child = tuple(2 * i + o for i, o in zip(idx, offset))
                self._leaves.add((level + 1, child))
        if len(self._leaves) > self.n_cells_max:
            raise MeshError(f"Refinement exceeds n_cells_max={self.n_cells_max}")

    def _balance(self):
        while True:
            unbalanced = [cell for cell in self._leaves if self._has_too_fine_neighbor(*cell)]
            if not unbalanced:
                return
            self._refine(unbalanced)

    def _has_too_fine_neighbor(self, level, idx):
        for direction in range(2 * self.ndims):
            nb = self._neighbor_index(level, idx, direction)
            if nb is None or (level, nb) in self._leaves or self._ancestor_leaf(level, nb) is not None:
                continue
            for child in self._facing_children(nb, direction):
                if (level + 1, child) not in self._leaves:
                    return True
        return False

    # -------------------------------------------------------------------------
    # Tree queries
    # -------------------------------------------------------------------------

    def _neighbor_index(self, level, idx, direction):
        axis, side = divmod(direction, 2)
        n = 2 ** level
        i = idx[axis] + (1 if side == 1 else -1)
        if i < 0 or i >= n:
            if not self.periodicity[axis]:
                return None
            i %= n
        return idx[:axis] + (i,) + idx[axis + 1:]

    def _ancestor_leaf(self, level, idx):
        while level > 0:
            level -= 1
            idx = tuple(i // 2 for i in idx)
            if (level, idx) in self._leaves:
                return level, idx
        return None

    def _facing_children(self, idx, direction):
        # children of the neighbor cell `idx` touching the face opposite to `direction`
        axis, side = divmod(direction, 2)
        fixed = 0 if side == 1 else 1
        children = []
        for bits in itertools.product((0, 1), repeat=self.ndims - 1):
            offset = bits[:axis] + (fixed,) + bits[axis:]
            children.append(tuple(2 * i + o for i, o in zip(idx, offset)))
        return children

    def _traverse(self, level, idx):
        if (level, idx) in self._leaves:
            yield level, idx
            return
        for offset in self._offsets:
            yield from self._traverse(level + 1, tuple(2 * i + o for i, o in zip(idx, offset)))

    def _build_index(self):
        root = (0,) * self.ndims
        self.cells = list(self._traverse(0, root))
        self._element_of = {cell: e for e, cell in enumerate(self.cells)}
        self.levels = np.array([level for level, _ in self.cells], dtype=np.int64)
        self.centers = np.array([self.cell_center(level, idx) for level, idx in self.cells])
        self.cell_lengths = self.length / 2.0 ** self.levels

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def nelements(self):
        return len(self.cells)

    def cell_center(self, level, idx):
        h = self.length / 2 ** level
        return self.coordinates_min + (np.asarray(idx) + 0.5) * h

    def face_neighbor(self, element, direction):
        """
        Classify the neighbor across one face of a leaf.

        Returns:
            ("boundary", None) on a non-periodic domain face,
            ("same", e) for a leaf of the same level,
            ("coarse", e) for a coarser leaf,
            ("fine", [e_0, ..., e_k]) for the finer leaves, ordered by subface
        """
        level, idx = self.cells[element]
        nb = self._neighbor_index(level, idx, direction)
        if nb is None:
            return "boundary", None
        if (level, nb) in self._element_of:
            return "same", self._element_of[(level, nb)]
        ancestor = self._ancestor_leaf(level, nb)
        if ancestor is not None:
            return "coarse", self._element_of[ancestor]
        fine = [self._element_of[(level + 1, child)]
                for child in self._facing_children(nb, direction)]
        return "fine", fine

    def __repr__(self):
        return (f"TreeMesh(ndims={self.ndims}, nelements={self.nelements}, "
                f"domain=[{self.coordinates_min}, {self.coordinates_max}], "
                f"periodicity={self.periodicity})")
