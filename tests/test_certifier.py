import numpy as np
import pytest
from scipy.spatial.transform import Rotation as R

from rotation_cert import CertificationResult, DRSCertifier
from rotation_cert.models.base import check_inputs
from rotation_cert.models.drs import (
    DRSState,
    compute_sub_optimality_gap,
    nearest_psd,
)
from tests.testing_utils import SyntheticData

SRC_4 = np.array(
    [
        [1.0, 0.0, 0.0, 0.5],
        [0.0, 1.0, 0.0, -0.5],
        [0.0, 0.0, 1.0, 0.7],
    ]
)
R_4 = R.from_euler("zyx", [0.4, -0.3, 0.8]).as_matrix()


def test_single_correspondence():
    src = dst = np.array([[1.0], [0.0], [0.0]])
    result = DRSCertifier()(np.eye(3), src, dst, np.array([True]))

    assert isinstance(result, CertificationResult)
    assert abs(result.primal_cost) < 1e-12
    assert result.certified
    assert result.suboptimality < 1e-6
    assert not result.exceeded_max_iterations
    assert result.iterations == len(result.suboptimality_traj) >= 1


def test_noise_free_exact_rotation():
    result = DRSCertifier().certify(R_4, SRC_4, R_4 @ SRC_4, np.ones(4))

    assert abs(result.primal_cost) < 1e-10
    assert result.certified
    assert result.best_suboptimality < 1e-3
    assert np.isfinite(result.suboptimality_traj).all()


def test_perturbed_rotation():
    certifier = DRSCertifier()
    exact = certifier.certify(R_4, SRC_4, R_4 @ SRC_4, np.ones(4))

    delta = R.from_rotvec(np.deg2rad(5.0) * np.array([0.0, 0.6, 0.8]))
    R_perturbed = (delta * R.from_matrix(R_4)).as_matrix()
    perturbed = certifier.certify(R_perturbed, SRC_4, R_4 @ SRC_4, np.ones(4))

    assert perturbed.primal_cost > 1e-4
    assert not perturbed.certified or perturbed.suboptimality > exact.suboptimality
    assert np.isfinite(perturbed.suboptimality_traj).all()


def test_exact_rotation_with_outliers():
    dataset = SyntheticData(seed=5)
    data = dataset.generate_data(npoints=8, outlier_ratio=0.25)
    cbar2 = 1.0
    result = DRSCertifier({"cbar2": cbar2, "max_iterations": 50})(
        data["R"], data["src"], data["dst"], data["theta"]
    )

    assert np.isclose(result.primal_cost, 2 * cbar2)
    assert len(result.suboptimality_traj) == result.iterations
    assert result.best_suboptimality == min(result.suboptimality_traj)
    assert np.isfinite(result.suboptimality_traj).all()


def test_label_encodings_agree():
    dataset = SyntheticData(seed=6)
    data = dataset.generate_data(npoints=5, noise_level=0.01, outlier_ratio=0.4)
    certifier = DRSCertifier({"max_iterations": 5})
    args = (data["R"], data["src"], data["dst"])

    signed = certifier(*args, data["theta"])
    boolean = certifier(*args, data["theta"] > 0)
    binary = certifier(*args, (data["theta"] > 0).astype(int))
    assert signed == boolean == binary


def test_check_inputs_labels():
    for theta in ([True, False, True], [1, 0, 1], [2.0, -0.5, 0.1]):
        _, _, _, labels = check_inputs(np.eye(3), SRC_4[:, :3], SRC_4[:, :3], theta)
        assert labels.dtype == float
        assert np.array_equal(labels, [1.0, -1.0, 1.0])


def test_iteration_budget_exhausted():
    delta = R.from_rotvec(np.deg2rad(5.0) * np.array([1.0, 0.0, 0.0]))
    R_perturbed = (delta * R.from_matrix(R_4)).as_matrix()
    certifier = DRSCertifier({"max_iterations": 1, "sub_optimality": 1e-12})
    result = certifier(R_perturbed, SRC_4, R_4 @ SRC_4, np.ones(4))

    assert result.iterations == 1
    assert result.exceeded_max_iterations
    assert not result.certified
    assert result.suboptimality == result.suboptimality_traj[-1] > 0


def test_step_does_not_mutate_state():
    certifier = DRSCertifier()
    dataset = SyntheticData(seed=7)
    data = dataset.generate_data(npoints=4, noise_level=0.05)
    problem = certifier.build_problem(
        dataset.perturb_rotation(data["R"], 3.0), data["src"], data["dst"], np.ones(4)
    )

    state = certifier.initial_state(problem)
    M_affine = state.M_affine.copy()
    new_state = certifier.step(state, problem)

    assert isinstance(new_state, DRSState)
    assert new_state.iteration == state.iteration + 1
    assert np.array_equal(state.M_affine, M_affine)
    # the dual iterate stays symmetric and in the affine set.
    assert np.allclose(new_state.M_dual, new_state.M_dual.T)
    assert np.allclose(
        certifier.project_affine(new_state.M_dual, problem), new_state.M_dual
    )
    # reproducible.
    assert np.array_equal(certifier.step(state, problem).M_affine, new_state.M_affine)


def test_nearest_psd():
    rng = np.random.default_rng(8)
    W = rng.normal(size=(8, 8))
    W = W + W.T
    W_psd = nearest_psd(W)
    assert np.allclose(W_psd, W_psd.T)
    assert np.linalg.eigvalsh(W_psd).min() > -1e-10
    assert np.allclose(nearest_psd(W_psd), W_psd)


def test_sub_optimality_gap():
    M = np.diag([-0.5, 1.0, 2.0, 3.0])
    assert np.isclose(compute_sub_optimality_gap(M, 4.0, 1, 1.0), 0.5 / 4.0)
    assert np.isclose(compute_sub_optimality_gap(M, 0.0, 2, 0.5), 2.0)
    assert compute_sub_optimality_gap(np.eye(4), 1.0, 1, 1.0) == 0.0


@pytest.mark.parametrize(
    "cfg",
    [
        {"cbar2": 0.0},
        {"cbar2": np.inf},
        {"cbar2": np.nan},
        {"max_iterations": 0},
        {"max_iterations": np.inf},
        {"sub_optimality": np.inf},
        {"max_iterations": 2.5},
        {"sub_optimality": -1.0},
        {"gamma_tau": 2.0},
        {"unknown": 1},
    ],
)
def test_invalid_cfg(cfg):
    with pytest.raises(ValueError):
        DRSCertifier(cfg)


def test_cfg_is_read_only():
    certifier = DRSCertifier({"cbar2": 0.01})
    assert certifier.cfg["cbar2"] == 0.01
    assert certifier.cfg["max_iterations"] == DRSCertifier.DEFAULT_CFG["max_iterations"]
    with pytest.raises(TypeError):
        certifier.cfg["cbar2"] = 1.0  # type: ignore


@pytest.mark.parametrize(
    "R_, src, dst, theta",
    [
        # dimension mismatches.
        (np.eye(3), SRC_4, SRC_4[:, :3], np.ones(4)),
        (np.eye(3), SRC_4, SRC_4, np.ones(3)),
        (np.eye(3), SRC_4.T, SRC_4.T, np.ones(4)),
        (np.eye(4), SRC_4, SRC_4, np.ones(4)),
        (np.eye(3), np.zeros((3, 0)), np.zeros((3, 0)), np.ones(0)),
        # non-finite values.
        (np.full((3, 3), np.nan), SRC_4, SRC_4, np.ones(4)),
        (np.eye(3), np.where(SRC_4 > 0.9, np.inf, SRC_4), SRC_4, np.ones(4)),
        (np.eye(3), SRC_4, SRC_4, np.array([1.0, np.nan, 1.0, 1.0])),
    ],
)
def test_invalid_inputs(R_, src, dst, theta):
    with pytest.raises(ValueError):
        DRSCertifier().certify(R_, src, dst, theta)
