""" Closed-form inverse of the off-diagonal constraints of the dual relaxation.

    Conventions:
        a) theta_prepended = [1, theta_1, ..., theta_N], theta_k in {-1, +1}. Entry 0
           corresponds to the global (un-labelled) quaternion block.
        b) The unknowns of the off-diagonal projection are indexed by unordered block
           pairs {i, j}, i < j, enumerated in row-major upper-triangular order, i.e.
           the order of np.triu_indices(N + 1, k=1). There are N (N + 1) / 2 of them.
        c) For each pair e = {i, j}, the unknown y_e is the 3-vector placed in the last
           column of the antisymmetric off-diagonal block (i, j). Each coordinate of
           y_e is decoupled, so all operators below act on (N (N + 1) / 2, 3) arrays.
"""

from typing import Tuple

import numpy as np
import scipy.sparse as sp


def pair_indices(n_blocks: int) -> Tuple[np.ndarray, np.ndarray]:
    """Row-major upper-triangular block pairs (i, j), i < j."""
    return np.triu_indices(n_blocks, k=1)


def get_pair_incidence(theta_prepended: np.ndarray) -> sp.csr_matrix:
    """Signed incidence G of shape (N + 1, N (N + 1) / 2).

    For the pair e = {i, j}, with t_e = theta_i theta_j:
        G[i, e] = -t_e,    G[j, e] = +t_e.
    G maps the off-diagonal unknowns y to the last columns of the diagonal blocks
    that enforce complementary slackness, u = G y.
    """
    theta = np.asarray(theta_prepended, dtype=float).ravel()
    n_blocks = len(theta)
    iu, ju = pair_indices(n_blocks)
    n_pairs = len(iu)
    t = theta[iu] * theta[ju]

    rows = np.concatenate((iu, ju))
    cols = np.tile(np.arange(n_pairs), 2)
    vals = np.concatenate((-t, t))
    return sp.csr_matrix((vals, (rows, cols)), shape=(n_blocks, n_pairs))


def get_linear_constraint_map(theta_prepended: np.ndarray) -> sp.csr_matrix:
    """Forward operator A = 2 I + G^T G of the off-diagonal normal equations."""
    G = get_pair_incidence(theta_prepended)
    n_pairs = G.shape[1]
    return (2.0 * sp.identity(n_pairs, format="csr") + G.T @ G).tocsr()


def get_linear_projection(theta_prepended: np.ndarray) -> sp.csr_matrix:
    """Sparse closed-form inverse of A = 2 I + G^T G.

    Since G^T G restricted to its range equals (N + 1) I (the Laplacian of the complete
    graph on N + 1 blocks), A^{-1} only depends on two scalars:
        y = 1 / (2 N + 6),    x = (N + 1) y,
    with A^{-1} = x I - y offdiag(G^T G). Every off-diagonal entry is +-y times a
    product of two labels, non-zero only for pairs sharing one block.

    Args:
        theta_prepended: (N + 1,) labels with the leading 1 of the global block.

    Returns:
        A_inv: (N (N + 1) / 2, N (N + 1) / 2) sparse symmetric inverse map.
    """
    theta = np.asarray(theta_prepended, dtype=float).ravel()
    N = len(theta) - 1
    if N < 1:
        raise ValueError(f"At least one correspondence is required. Got N={N}.")

    # NOTE: both scalars must be computed in floating point.
    y = 1.0 / (2.0 * N + 6.0)
    x = (N + 1.0) * y

    if N == 1:
        # a single pair {0, 1}: there are no pairs sharing a block with it.
        return sp.csr_matrix(np.array([[x]]))

    # off-diagonal entries of A are those of G^T G.
    coupling = get_linear_constraint_map(theta).tolil()
    n_pairs = coupling.shape[0]
    coupling.setdiag(0.0)
    coupling = coupling.tocsr()
    coupling.eliminate_zeros()
    return (x * sp.identity(n_pairs, format="csr") - y * coupling).tocsr()
