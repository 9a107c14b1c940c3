from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, NamedTuple, Optional, Tuple

import numpy as np

from rotation_cert.constraints.linear_projection import get_linear_projection
from rotation_cert.constraints.slackness import get_lambda_guess
from rotation_cert.utils import (
    LinearMap,
    block_diag_omega,
    compute_cost_matrix_Q,
    quaternion_to_rotation,
    rotation_to_quaternion,
    vector_kron,
)


@dataclass(frozen=True)
class CertificationResult:
    """Outcome of a certification call.

    Attributes:
        primal_cost: TLS cost of the candidate, x^T Q x.
        suboptimality: relative sub-optimality bound at the last iteration.
        best_suboptimality: smallest bound over all iterations.
        suboptimality_traj: bound at each iteration.
        certified: True if the candidate is certified as (near-)globally optimal.
        iterations: number of iterations run.
        exceeded_max_iterations: True if the iteration budget was exhausted before
            reaching the desired sub-optimality.
    """

    primal_cost: float
    suboptimality: float
    best_suboptimality: float
    suboptimality_traj: Tuple[float, ...]
    certified: bool
    iterations: int
    exceeded_max_iterations: bool


class CertificationProblem(NamedTuple):
    """Data of the relaxation, expressed in the frame of the candidate rotation."""

    theta_prepended: np.ndarray  # (n + 1,)
    inverse_map: LinearMap  # (n (n + 1) / 2, n (n + 1) / 2)
    Q_bar: np.ndarray  # (4 + 4n, 4 + 4n) rotated cost matrix.
    x_bar: np.ndarray  # (4 + 4n,) rotated rank-one solution.
    mu: float  # primal cost.
    M_init: np.ndarray  # initial iterate, Q_bar - mu J_bar - lambda_guess.


class CertifierBase(ABC):
    """Global optimality certification of a TLS rotation estimate."""

    DEFAULT_CFG = {
        # squared truncation threshold of the TLS cost.
        "cbar2": 1.0,
        "max_iterations": 200,
        # desired relative sub-optimality for certifying the candidate.
        "sub_optimality": 1e-3,
        # relaxation parameter of the splitting iterations, in (0, 2).
        "gamma_tau": 1.999,
    }

    def __init__(self, cfg: Optional[Dict] = None):
        if cfg is None:
            cfg = {}
        unknown = set(cfg) - set(self.DEFAULT_CFG)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        self.cfg: Mapping = MappingProxyType(check_cfg({**self.DEFAULT_CFG, **cfg}))

    def __call__(
        self,
        R: np.ndarray,
        src: np.ndarray,
        dst: np.ndarray,
        theta: np.ndarray,
    ) -> CertificationResult:
        return self.certify(R, src, dst, theta)

    def certify(
        self,
        R: np.ndarray,
        src: np.ndarray,
        dst: np.ndarray,
        theta: np.ndarray,
    ) -> CertificationResult:
        """Certify the global optimality of a rotation estimate.

        Args:
            R: (3, 3) candidate rotation.
            src: (3, n) source points.
            dst: (3, n) destination points.
            theta: (n,) inlier (+1 / True) and outlier (-1 / False) labels.

        Returns:
            result: certification result.
        """
        R, src, dst, theta = check_inputs(R, src, dst, theta)
        problem = self.build_problem(R, src, dst, theta)
        return self.run(problem)

    def build_problem(
        self, R: np.ndarray, src: np.ndarray, dst: np.ndarray, theta: np.ndarray
    ) -> CertificationProblem:
        """Build the rotated cost matrix, the inverse map and the initial iterate."""
        cbar2 = self.cfg["cbar2"]
        n = src.shape[1]
        npm = 4 + 4 * n

        theta_prepended = np.concatenate(([1.0], theta))
        inverse_map = get_linear_projection(theta_prepended)
        Q_cost = compute_cost_matrix_Q(src, dst, cbar2)

        q = rotation_to_quaternion(R)
        # rotation consistent with the normalized quaternion.
        R_q = quaternion_to_rotation(q)

        # rank-one factor of the lifted solution if the candidate were optimal.
        x = vector_kron(theta_prepended, q)

        # move to the frame of the candidate, where x_bar = kron(theta, e4).
        D_omega = block_diag_omega(npm, q)
        Q_bar = D_omega.T @ Q_cost @ D_omega
        x_bar = D_omega.T @ x
        J_bar = np.zeros((npm, npm))
        J_bar[:4, :4] = np.eye(4)

        # cost of the primal. Under strong duality, it is also the cost of the dual.
        mu = float(x @ Q_cost @ x)

        lambda_guess = get_lambda_guess(R_q, theta, src, dst, cbar2)
        M_init = Q_bar - mu * J_bar
        M_init -= lambda_guess.toarray()
        return CertificationProblem(
            theta_prepended, inverse_map, Q_bar, x_bar, mu, M_init
        )

    @abstractmethod
    def run(self, problem: CertificationProblem) -> CertificationResult:
        """Run the certification iterations."""
        pass


def check_cfg(cfg: Dict) -> Dict:
    for key in cfg:
        if not np.isfinite(cfg[key]):
            raise ValueError(f"{key} must be finite. Got {cfg[key]}")
    if not cfg["cbar2"] > 0:
        raise ValueError(f"cbar2 must be positive. Got {cfg['cbar2']}")
    if int(cfg["max_iterations"]) != cfg["max_iterations"] or cfg["max_iterations"] < 1:
        raise ValueError(
            f"max_iterations must be a positive integer. Got {cfg['max_iterations']}"
        )
    if not cfg["sub_optimality"] > 0:
        raise ValueError(
            f"sub_optimality must be positive. Got {cfg['sub_optimality']}"
        )
    if not 0 < cfg["gamma_tau"] < 2:
        raise ValueError(f"gamma_tau must be in (0, 2). Got {cfg['gamma_tau']}")
    return cfg


def check_inputs(R, src, dst, theta):
    """Validate and convert the inputs of a certification call."""
    R = np.asarray(R, dtype=float)
    src = np.asarray(src, dtype=float)
    dst = np.asarray(dst, dtype=float)
    theta = np.asarray(theta)

    if R.shape != (3, 3):
        raise ValueError(f"R must be a (3, 3) matrix. Got shape {R.shape}")
    if src.ndim != 2 or src.shape[0] != 3 or src.shape[1] < 1:
        raise ValueError(f"src must be a (3, n) array with n >= 1. Got {src.shape}")
    if dst.shape != src.shape:
        raise ValueError(
            f"src and dst must have the same shape. Got {src.shape} and {dst.shape}"
        )
    if theta.ndim != 1 or len(theta) != src.shape[1]:
        raise ValueError(
            f"theta must have one label per correspondence ({src.shape[1]}). "
            f"Got shape {theta.shape}"
        )
    for name, arr in (("R", R), ("src", src), ("dst", dst)):
        if not np.isfinite(arr).all():
            raise ValueError(f"{name} contains non-finite values.")

    if theta.dtype == bool:
        theta = np.where(theta, 1.0, -1.0)
    else:
        theta = theta.astype(float)
        if not np.isfinite(theta).all():
            raise ValueError("theta contains non-finite values.")
        theta = np.where(theta > 0, 1.0, -1.0)
    return R, src, dst, theta
