""" Module for the initial dual guess, built from the KKT complementary slackness.

    For each correspondence k, with residual expressed in the frame of the candidate
    rotation R,
        xi_k = R^T (dst_k - R src_k),
    the 4x4 block of the guess has the structure:
        [ E_k    x_k    ]
        [ x_k^T  lambda_k ]
    where the closed-form expressions of E_k, x_k and lambda_k depend on whether the
    TLS term of the correspondence is active (inlier, theta_k = +1) or inactive
    (outlier, theta_k = -1). Each case is a separate regime class below.
"""

from abc import ABC
from typing import Dict, Type

import numpy as np
import scipy.sparse as sp

from rotation_cert.utils import hatmap


class SlacknessRegime(ABC):
    """Closed-form dual block of a correspondence for a given TLS regime.

    Attributes:
        LABEL: value of theta_k selecting the regime.
        RESIDUAL_WEIGHT: weight of ||xi||^2 in lambda_k and in the corner E_k.
        CBAR2_WEIGHT: weight of cbar2 in lambda_k.
        CROSS_WEIGHT: weight of [xi]_x src in x_k.
    """

    LABEL: float
    RESIDUAL_WEIGHT: float
    CBAR2_WEIGHT: float
    CROSS_WEIGHT: float

    @classmethod
    def block(cls, xi: np.ndarray, src: np.ndarray, cbar2: float) -> np.ndarray:
        """4x4 dual block of one correspondence.

        Args:
            xi: (3,) residual in the frame of the candidate rotation.
            src: (3,) source point.
            cbar2: squared truncation threshold.
        """
        current_block = np.empty((4, 4))
        current_block[:3, :3] = cls.corner(xi, src, cbar2)
        current_block[:3, 3] = current_block[3, :3] = cls.cross_term(xi, src)
        current_block[3, 3] = cls.slack(xi, cbar2)
        return current_block

    @classmethod
    def corner(cls, xi, src, cbar2):
        src_hat = hatmap(src)
        return (
            src_hat @ src_hat
            - 0.5 * src.dot(xi) * np.eye(3)
            + 0.5 * hatmap(xi) @ src_hat
            + 0.5 * np.outer(xi, src)
            - cls.RESIDUAL_WEIGHT * xi.dot(xi) * np.eye(3)
            - 0.25 * cbar2 * np.eye(3)
        )

    @classmethod
    def cross_term(cls, xi, src):
        return -cls.CROSS_WEIGHT * hatmap(xi) @ src

    @classmethod
    def slack(cls, xi, cbar2) -> float:
        """(4, 4) entry of the block."""
        return -cls.RESIDUAL_WEIGHT * xi.dot(xi) - cls.CBAR2_WEIGHT * cbar2


class ActiveRegime(SlacknessRegime):
    """Inlier: lambda = -3/4 ||xi||^2 - 1/4 cbar2,  x = -3/2 [xi]_x src."""

    LABEL = 1.0
    RESIDUAL_WEIGHT = 0.75
    CBAR2_WEIGHT = 0.25
    CROSS_WEIGHT = 1.5


class InactiveRegime(SlacknessRegime):
    """Outlier: lambda = -1/4 ||xi||^2 - 3/4 cbar2,  x = -1/2 [xi]_x src."""

    LABEL = -1.0
    RESIDUAL_WEIGHT = 0.25
    CBAR2_WEIGHT = 0.75
    CROSS_WEIGHT = 0.5


REGIMES: Dict[float, Type[SlacknessRegime]] = {
    ActiveRegime.LABEL: ActiveRegime,
    InactiveRegime.LABEL: InactiveRegime,
}


def get_regime(label: float) -> Type[SlacknessRegime]:
    """Regime of a correspondence given its label in {-1, +1}."""
    try:
        return REGIMES[float(label)]
    except KeyError:
        raise ValueError(f"Unknown label: {label}. Labels must be -1 or +1.") from None


def get_lambda_guess(
    R: np.ndarray,
    theta: np.ndarray,
    src: np.ndarray,
    dst: np.ndarray,
    cbar2: float,
) -> sp.csr_matrix:
    """Initial dual guess lying in the affine subspace of the dual problem.

    The block of correspondence k (at rows/cols 4(k + 1):4(k + 2)) is the negated
    regime block, whereas the block of the global quaternion accumulates all the
    regime blocks, so that the diagonal blocks sum to zero.

    Args:
        R: (3, 3) candidate rotation.
        theta: (n,) labels in {-1, +1}, *without* the leading 1.
        src: (3, n) source points.
        dst: (3, n) destination points.
        cbar2: squared truncation threshold.

    Returns:
        lambda_guess: (4 + 4n, 4 + 4n) sparse symmetric matrix.
    """
    n = src.shape[1]
    assert src.shape == dst.shape == (3, n) and len(theta) == n
    npm = 4 + 4 * n

    # residuals in the frame of the candidate rotation.
    xis = R.T @ (dst - R @ src)

    topleft_block = np.zeros((4, 4))
    rows, cols, vals = [], [], []
    block_rows, block_cols = np.indices((4, 4))
    for k in range(n):
        regime = get_regime(theta[k])
        current_block = regime.block(xis[:, k], src[:, k], cbar2)

        idx = 4 * (k + 1)
        rows.append(idx + block_rows.ravel())
        cols.append(idx + block_cols.ravel())
        vals.append(-current_block.ravel())

        topleft_block += current_block

    rows.append(block_rows.ravel())
    cols.append(block_cols.ravel())
    vals.append(topleft_block.ravel())

    return sp.csr_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(npm, npm),
    )
