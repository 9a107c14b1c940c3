from typing import Union

import numpy as np
import scipy.sparse as sp
from scipy.spatial.transform import Rotation

# Any operator supporting `@` with dense arrays: dense ndarrays or scipy sparse.
LinearMap = Union[np.ndarray, sp.spmatrix]

# Coefficient matrix mapping vec(q q^T) to vec(R(q)), both column-major, for
# quaternions q = (x, y, z, w) with the scalar part last.
# fmt: off
ROT_FROM_QQ = np.array(
    [
        [1, 0, 0, 0, 0, -1, 0, 0, 0, 0, -1, 0, 0, 0, 0, 1],
        [0, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0, 1, 0, 0, 1, 0],
        [0, 0, 1, 0, 0, 0, 0, -1, 1, 0, 0, 0, 0, -1, 0, 0],
        [0, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0, -1, 0, 0, -1, 0],
        [-1, 0, 0, 0, 0, 1, 0, 0, 0, 0, -1, 0, 0, 0, 0, 1],
        [0, 0, 0, 1, 0, 0, 1, 0, 0, 1, 0, 0, 1, 0, 0, 0],
        [0, 0, 1, 0, 0, 0, 0, 1, 1, 0, 0, 0, 0, 1, 0, 0],
        [0, 0, 0, -1, 0, 0, 1, 0, 0, 1, 0, 0, -1, 0, 0, 0],
        [-1, 0, 0, 0, 0, -1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1],
    ],
    dtype=float,
)
# fmt: on


def hatmap(v):
    """Skew-symmetric matrix [v]_x such that [v]_x @ x = v x x, for v of shape (3,)
    or (3, 1)."""
    v = np.asarray(v, dtype=float).ravel()
    return np.array(
        [
            [0, -v[2], v[1]],
            [v[2], 0, -v[0]],
            [-v[1], v[0], 0],
        ]
    )


def quat_left_mult(q: np.ndarray) -> np.ndarray:
    """Matrix Omega(q) of the quaternion left-multiplication p -> q * p.

    Both q and p are (x, y, z, w) quaternions (Hamilton product, scalar last), which is
    the convention assumed by `ROT_FROM_QQ`. With this choice:
        Omega(q) @ [0, 0, 0, 1] = q,    and    R(Omega(q) @ p) = R(q) @ R(p).
    Omega(q) is orthogonal whenever q has unit norm.
    """
    x, y, z, w = np.asarray(q, dtype=float).ravel()
    return np.array(
        [
            [w, -z, y, x],
            [z, w, -x, y],
            [-y, x, w, z],
            [-x, -y, -z, w],
        ]
    )


def block_diag_omega(npm: int, q: np.ndarray) -> np.ndarray:
    """(npm, npm) block-diagonal matrix with npm / 4 copies of Omega(q)."""
    if npm <= 0 or npm % 4:
        raise ValueError(f"npm must be a positive multiple of 4. Got {npm}.")
    return np.kron(np.eye(npm // 4), quat_left_mult(q))


def rotation_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Unit quaternion (x, y, z, w) of a rotation matrix."""
    q = Rotation.from_matrix(R).as_quat()
    return q / np.linalg.norm(q)


def quaternion_to_rotation(q: np.ndarray) -> np.ndarray:
    return Rotation.from_quat(q).as_matrix()


def vector_kron(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Kronecker product of two vectors, returned as a flat array."""
    return np.kron(np.ravel(a), np.ravel(b))


def compute_cost_matrix_Q(src: np.ndarray, dst: np.ndarray, cbar2: float) -> np.ndarray:
    """Compute the cost matrix Q of the truncated least squares (TLS) relaxation.

    For the lifted vector x = kron([1, theta], q), with theta in {-1, +1}^n, the
    quadratic form x^T Q x equals the TLS registration cost:
        sum_{theta_k = +1} ||dst_k - R(q) src_k||^2 + sum_{theta_k = -1} cbar2.

    Args:
        src: (3, n) source points.
        dst: (3, n) destination points.
        cbar2: squared truncation threshold.

    Returns:
        Q: (4 + 4n, 4 + 4n) symmetric cost matrix.
    """
    n = src.shape[1]
    assert src.shape == dst.shape == (3, n)
    npm = 4 + 4 * n
    eye4 = np.eye(4)

    # P_k = reshape(ROT_FROM_QQ^T vec(dst_k src_k^T)), so that q^T P_k q = dst_k^T R src_k.
    dst_outer_src = np.einsum("in, jn -> nji", dst, src).reshape(n, 9)  # col-major vec.
    P = (dst_outer_src @ ROT_FROM_QQ).reshape(n, 4, 4).transpose(0, 2, 1)

    sq_norms = (src**2).sum(0) + (dst**2).sum(0)
    c = 0.5 * (sq_norms - cbar2)
    c_bar = 0.5 * (sq_norms + cbar2)

    Q = np.zeros((npm, npm))
    for k in range(n):
        idx = 4 * (k + 1)
        # cross term between the global block and block k (Q1).
        Q1_k = 0.5 * (c[k] * eye4 - P[k])
        Q[:4, idx : idx + 4] += Q1_k
        Q[idx : idx + 4, :4] += Q1_k.T
        # diagonal term of block k (Q2).
        Q[idx : idx + 4, idx : idx + 4] += c_bar[k] * eye4 - P[k]
    return Q
