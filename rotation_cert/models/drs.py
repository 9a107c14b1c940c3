import logging
from typing import NamedTuple

import numpy as np
from scipy.linalg import eigh, eigvalsh

from rotation_cert.constraints.dual_projection import get_optimal_dual_projection
from rotation_cert.models.base import (
    CertificationProblem,
    CertificationResult,
    CertifierBase,
)

logger = logging.getLogger(__name__)


class DRSState(NamedTuple):
    """Snapshot of the Douglas-Rachford splitting iterations.

    Attributes:
        iteration: number of iterations performed to reach this state.
        M_affine: iterate of the splitting (not necessarily in any of the two sets).
        M_dual: last projection onto the affine set, i.e. a dual-feasible matrix.
        suboptimality: relative sub-optimality bound given by M_dual.
    """

    iteration: int
    M_affine: np.ndarray
    M_dual: np.ndarray
    suboptimality: float


def nearest_psd(M: np.ndarray) -> np.ndarray:
    """Projection of a symmetric matrix onto the positive-semidefinite cone."""
    eig_vals, eig_vecs = eigh(0.5 * (M + M.T))
    M_psd = (eig_vecs * eig_vals.clip(min=0.0)) @ eig_vecs.T
    return 0.5 * (M_psd + M_psd.T)


def compute_sub_optimality_gap(
    M: np.ndarray, mu: float, n_blocks: int, cbar2: float
) -> float:
    """Relative sub-optimality certified by a dual-feasible matrix M.

    For any feasible lifted primal X, tr(X) = n_blocks and tr(J X) = 1, hence
        tr(Q X) = mu + tr(M X) >= mu + lambda_min(M) n_blocks.
    The absolute gap is normalized by max(mu, cbar2), cbar2 being the cost of a
    single outlier, so that noise-free (zero cost) problems remain well defined.
    """
    min_eig = eigvalsh(0.5 * (M + M.T), subset_by_index=[0, 0])[0]
    gap = max(0.0, -min_eig) * n_blocks
    return gap / max(mu, cbar2)


class DRSCertifier(CertifierBase):
    """Certification through Douglas-Rachford splitting (DRS) between the PSD cone
    and the affine subspace of dual-feasible matrices."""

    def step(self, state: DRSState, problem: CertificationProblem) -> DRSState:
        """One DRS iteration. The input state is left untouched."""
        M_affine = state.M_affine
        M_psd = nearest_psd(M_affine)
        M_dual = self.project_affine(2 * M_psd - M_affine, problem)
        M_affine = M_affine + self.cfg["gamma_tau"] * (M_dual - M_psd)

        suboptimality = compute_sub_optimality_gap(
            M_dual, problem.mu, len(problem.theta_prepended), self.cfg["cbar2"]
        )
        return DRSState(state.iteration + 1, M_affine, M_dual, suboptimality)

    @staticmethod
    def project_affine(W: np.ndarray, problem: CertificationProblem) -> np.ndarray:
        """Projection onto the affine set M_init + {dual-feasible directions}."""
        M_init = problem.M_init
        return M_init + get_optimal_dual_projection(
            W - M_init, problem.theta_prepended, problem.inverse_map
        )

    def initial_state(self, problem: CertificationProblem) -> DRSState:
        return DRSState(0, problem.M_init.copy(), problem.M_init.copy(), np.inf)

    def run(self, problem: CertificationProblem) -> CertificationResult:
        max_iterations = self.cfg["max_iterations"]
        sub_optimality = self.cfg["sub_optimality"]

        state = self.initial_state(problem)
        suboptim_traj = []
        exceeded_max_iterations = True
        while state.iteration < max_iterations:
            state = self.step(state, problem)
            suboptim_traj.append(state.suboptimality)
            logger.debug(
                "DRS iteration %d: sub-optimality %.3e",
                state.iteration,
                state.suboptimality,
            )
            if state.suboptimality < sub_optimality:
                exceeded_max_iterations = False
                break

        if exceeded_max_iterations:
            logger.warning(
                "Maximum number of iterations (%d) reached with sub-optimality %.3e.",
                max_iterations,
                state.suboptimality,
            )

        best_suboptimality = min(suboptim_traj)
        certified = best_suboptimality < sub_optimality
        logger.info(
            "Certification %s after %d iterations: primal cost %.6g, "
            "best sub-optimality %.3e.",
            "succeeded" if certified else "failed",
            state.iteration,
            problem.mu,
            best_suboptimality,
        )
        return CertificationResult(
            primal_cost=problem.mu,
            suboptimality=state.suboptimality,
            best_suboptimality=best_suboptimality,
            suboptimality_traj=tuple(suboptim_traj),
            certified=certified,
            iterations=state.iteration,
            exceeded_max_iterations=exceeded_max_iterations,
        )
