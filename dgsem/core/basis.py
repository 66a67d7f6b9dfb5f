"""
Lobatto-Legendre nodal basis and L2 mortar operators.

All operators are built once on the host in float64 and shared by both the
reference and the device pipeline.
"""

import itertools

import numpy as np
from scipy.special import eval_legendre, roots_jacobi, roots_legendre


# =============================================================================
# Nodes, weights and Lagrange polynomials
# =============================================================================

def gauss_lobatto_nodes_weights(n_nodes):
    """
    Legendre-Gauss-Lobatto nodes and weights on [-1, 1].

    The interior nodes are the roots of P'_N, i.e. of the Jacobi polynomial
    P^(1,1)_{N-1}.

    Args:
        n_nodes: Number of nodes (polydeg + 1), at least 2.

    Returns:
        (nodes, weights): arrays of shape (n_nodes,)
    """
    if n_nodes < 2:
        raise ValueError(f"Gauss-Lobatto quadrature needs at least 2 nodes, got {n_nodes}")
    N = n_nodes - 1
    if N > 1:
        interior, _ = roots_jacobi(N - 1, 1.0, 1.0)
    else:
        interior = np.empty(0)
    nodes = np.concatenate(([-1.0], np.sort(interior), [1.0]))
    weights = 2.0 / (N * (N + 1) * eval_legendre(N, nodes) ** 2)
    return nodes, weights


def gauss_nodes_weights(n_nodes):
    """Legendre-Gauss nodes and weights on [-1, 1]."""
    nodes, weights = roots_legendre(n_nodes)
    return np.asarray(nodes), np.asarray(weights)


def barycentric_weights(nodes):
    """w_j = 1 / prod_{k != j} (x_j - x_k)"""
    diff = nodes[:, None] - nodes[None, :]
    np.fill_diagonal(diff, 1.0)
    return 1.0 / np.prod(diff, axis=1)


def lagrange_interpolating_polynomials(x, nodes, wbary):
    """Values of all Lagrange polynomials of `nodes` at the point `x`."""
    hit = np.isclose(x, nodes, rtol=0.0, atol=1e-14)
    if np.any(hit):
        return hit.astype(float)
    terms = wbary / (x - nodes)
    return terms / np.sum(terms)


def polynomial_interpolation_matrix(nodes_in, nodes_out, wbary_in=None):
    """V[k, j] = l_j(nodes_out[k]) for the Lagrange basis of `nodes_in`."""
    if wbary_in is None:
        wbary_in = barycentric_weights(nodes_in)
    return np.array([lagrange_interpolating_polynomials(x, nodes_in, wbary_in)
                     for x in nodes_out])


def polynomial_derivative_matrix(nodes):
    """D[i, j] = l_j'(x_i) via the barycentric formula."""
    wbary = barycentric_weights(nodes)
    n = len(nodes)
    D = np.zeros((n, n))
    for i in range(n):
        for j in range(n):
            if i != j:
                D[i, j] = (wbary[j] / wbary[i]) / (nodes[i] - nodes[j])
        D[i, i] = -np.sum(D[i, :])
    return D


def vandermonde_legendre(nodes):
    """Vandermonde matrix of the L2-normalized Legendre polynomials."""
    n = len(nodes)
    V = np.empty((n, n))
    for j in range(n):
        V[:, j] = eval_legendre(j, nodes) * np.sqrt(j + 0.5)
    return V


# =============================================================================
# Basis
# =============================================================================

class LobattoLegendreBasis:
    """
    Nodal Lagrange basis on the Legendre-Gauss-Lobatto nodes.

    Attributes:
        polydeg: Polynomial degree N
        nnodes: N + 1
        nodes, weights, inverse_weights: LGL quadrature
        derivative_matrix: D[i, j] = l_j'(x_i)
        derivative_dhat: weak-form operator -M^{-1} D^T M
        derivative_split: 2D with the SBP boundary corrections
        boundary_interpolation: (nnodes, 2), column 0 is l(-1)/w, column 1 is l(+1)/w
        inverse_vandermonde_legendre: nodal-to-modal transform
    """

    def __init__(self, polydeg: int):
        if polydeg < 1:
            raise ValueError(f"polydeg must be >= 1, got {polydeg}")
        self.polydeg = int(polydeg)
        self.nnodes = self.polydeg + 1

        self.nodes, self.weights = gauss_lobatto_nodes_weights(self.nnodes)
        self.inverse_weights = 1.0 / self.weights
        self.barycentric_weights = barycentric_weights(self.nodes)

        D = polynomial_derivative_matrix(self.nodes)
        self.derivative_matrix = D

        M = np.diag(self.weights)
        Minv = np.diag(self.inverse_weights)
        self.derivative_dhat = -Minv @ D.T @ M

        Dsplit = 2.0 * D
        Dsplit[0, 0] += 1.0 / self.weights[0]
        Dsplit[-1, -1] -= 1.0 / self.weights[-1]
        self.derivative_split = Dsplit

        self.boundary_interpolation = np.zeros((self.nnodes, 2))
        self.boundary_interpolation[:, 0] = lagrange_interpolating_polynomials(
            -1.0, self.nodes, self.barycentric_weights) * self.inverse_weights
        self.boundary_interpolation[:, 1] = lagrange_interpolating_polynomials(
            1.0, self.nodes, self.barycentric_weights) * self.inverse_weights

        self.inverse_vandermonde_legendre = np.linalg.inv(vandermonde_legendre(self.nodes))

    def __repr__(self):
        return f"LobattoLegendreBasis(polydeg={self.polydeg})"


# =============================================================================
# Mortars
# =============================================================================

class LobattoLegendreMortarL2:
    """
    L2 mortar operators between one coarse face and its two half faces.

    forward_upper/forward_lower interpolate coarse face values onto the upper
    [0, 1] and lower [-1, 0] halves. reverse_upper/reverse_lower are the L2
    projections back onto the coarse face, computed exactly with Gauss
    quadrature so that reverse(forward(p)) reproduces p.
    """

    def __init__(self, basis: LobattoLegendreBasis):
        self.basis = basis
        nodes = basis.nodes
        wbary = basis.barycentric_weights

        self.forward_upper = polynomial_interpolation_matrix(nodes, 0.5 * (nodes + 1.0), wbary)
        self.forward_lower = polynomial_interpolation_matrix(nodes, 0.5 * (nodes - 1.0), wbary)

        gauss_nodes, gauss_weights = gauss_nodes_weights(basis.nnodes)
        gauss_wbary = barycentric_weights(gauss_nodes)
        lobatto2gauss = polynomial_interpolation_matrix(nodes, gauss_nodes, wbary)
        gauss2lobatto = polynomial_interpolation_matrix(gauss_nodes, nodes, gauss_wbary)

        self.reverse_upper = gauss2lobatto @ self._gauss_projection(
            gauss_nodes, gauss_weights, gauss_wbary, +1.0) @ lobatto2gauss
        self.reverse_lower = gauss2lobatto @ self._gauss_projection(
            gauss_nodes, gauss_weights, gauss_wbary, -1.0) @ lobatto2gauss

    @staticmethod
    def _gauss_projection(gauss_nodes, gauss_weights, gauss_wbary, shift):
        n = len(gauss_nodes)
        op = np.zeros((n, n))
        for j in range(n):
            poly = lagrange_interpolating_polynomials(
                0.5 * (gauss_nodes[j] + shift), gauss_nodes, gauss_wbary)
            op[:, j] = 0.5 * poly * gauss_weights[j] / gauss_weights
        return op

    def subface_operators(self, ndims):
        """
        Tensor-product mortar operators on flattened face nodes.

        Subface k is the binary code of the child position along the
        remaining axes, first remaining axis most significant.

        Returns:
            (forward, reverse): arrays of shape (2**(ndims-1), m, m) with
            m = nnodes**(ndims-1)
        """
        nface_dims = ndims - 1
        m = self.basis.nnodes ** nface_dims
        if nface_dims == 0:
            eye = np.ones((1, 1, 1))
            return eye, eye.copy()

        forward_1d = (self.forward_lower, self.forward_upper)
        reverse_1d = (self.reverse_lower, self.reverse_upper)
        forward = np.empty((2 ** nface_dims, m, m))
        reverse = np.empty((2 ** nface_dims, m, m))
        for k, bits in enumerate(itertools.product((0, 1), repeat=nface_dims)):
            f = np.ones((1, 1))
            r = np.ones((1, 1))
            for b in bits:
                f = np.kron(f, forward_1d[b])
                r = np.kron(r, reverse_1d[b])
            forward[k] = f
            reverse[k] = r
        return forward, reverse

    def __repr__(self):
        return f"LobattoLegendreMortarL2(polydeg={self.basis.polydeg})"
