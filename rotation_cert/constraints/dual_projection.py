import numpy as np

from rotation_cert.constraints.linear_projection import pair_indices
from rotation_cert.utils import LinearMap


def to_blocks(M: np.ndarray) -> np.ndarray:
    """View of a (4 nb, 4 nb) matrix as (nb, nb, 4, 4) blocks, blocks[i, j] = M_ij."""
    nb = M.shape[0] // 4
    return M.reshape(nb, 4, nb, 4).transpose(0, 2, 1, 3)


def from_blocks(blocks: np.ndarray) -> np.ndarray:
    nb = blocks.shape[0]
    return blocks.transpose(0, 2, 1, 3).reshape(4 * nb, 4 * nb)


def get_optimal_dual_projection(
    W: np.ndarray, theta_prepended: np.ndarray, A_inv: LinearMap
) -> np.ndarray:
    """Project a symmetric matrix onto the dual-feasible subspace.

    In the frame rotated by the candidate quaternion, the rank-one primal solution is
    x_bar = kron(theta, e4). The subspace of dual-feasible directions consists of the
    symmetric matrices M with:
        1) antisymmetric off-diagonal 4x4 blocks,
        2) diagonal blocks whose top-left 3x3 corners sum to zero,
        3) complementary slackness, M x_bar = 0.
    The projection (in Frobenius norm) decouples into:
        a) off-diagonal blocks: antisymmetric part of W_ij, with its last column/row
           given by the least-squares solution y = A_inv @ b_W, which also accounts
           for the diagonal entries that (3) ties to y.
        b) diagonal blocks: last column/row fixed by (3), top-left corners centred.

    Args:
        W: (4 + 4N, 4 + 4N) symmetric matrix.
        theta_prepended: (N + 1,) labels with the leading 1 of the global block.
        A_inv: inverse map, see `get_linear_projection`.

    Returns:
        W_dual: (4 + 4N, 4 + 4N) projected symmetric matrix.
    """
    theta = np.asarray(theta_prepended, dtype=float).ravel()
    npm = W.shape[0]
    nb = npm // 4
    assert W.shape == (npm, npm) and npm == 4 * nb
    assert len(theta) == nb, "theta must have one entry per 4x4 block."

    W_blocks = to_blocks(W)
    diag_idx = np.arange(nb)
    iu, ju = pair_indices(nb)
    theta_ij = theta[iu] * theta[ju]

    # first project the off-diagonal blocks.
    W_ij = W_blocks[iu, ju]  # (n_pairs, 4, 4)
    # last column and last row of the off-diagonal and diagonal blocks.
    W_ij_col, W_ij_row = W_ij[:, :3, 3], W_ij[:, 3, :3]
    W_ii_col = W_blocks[diag_idx, diag_idx, :3, 3]
    b_W = (W_ij_col - W_ij_row) + theta_ij[:, None] * (W_ii_col[ju] - W_ii_col[iu])
    y_dual = A_inv @ b_W  # (n_pairs, 3)

    W_dual_ij = 0.5 * (W_ij - W_ij.transpose(0, 2, 1))
    W_dual_ij[:, :3, 3] = y_dual
    W_dual_ij[:, 3, :3] = -y_dual

    W_dual_blocks = np.zeros((nb, nb, 4, 4))
    W_dual_blocks[iu, ju] = W_dual_ij
    W_dual_blocks[ju, iu] = W_dual_ij.transpose(0, 2, 1)

    # project the diagonal blocks.
    # theta-weighted sums of the last columns along each block row.
    row_sums = np.einsum("j, ijk -> ik", theta, W_dual_blocks[:, :, :, 3])  # (nb, 4)
    W_ii = W_blocks[diag_idx, diag_idx].copy()
    # complementary slackness on the last column/row.
    W_ii[:, :, 3] = -theta[:, None] * row_sums
    W_ii[:, 3, :] = -theta[:, None] * row_sums
    # the top-left corners must sum to zero.
    corners = 0.5 * (W_ii[:, :3, :3] + W_ii[:, :3, :3].transpose(0, 2, 1))
    W_ii[:, :3, :3] = corners - corners.mean(0)
    W_dual_blocks[diag_idx, diag_idx] = W_ii

    return from_blocks(W_dual_blocks)
