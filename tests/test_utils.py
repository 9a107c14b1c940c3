import numpy as np
import pytest
from scipy.spatial.transform import Rotation as R

from rotation_cert.utils import (
    ROT_FROM_QQ,
    block_diag_omega,
    hatmap,
    quat_left_mult,
    rotation_to_quaternion,
    vector_kron,
)


def random_unit_quaternions(n, seed=0):
    rng = np.random.default_rng(seed)
    q = rng.normal(size=(n, 4))
    return q / np.linalg.norm(q, axis=1, keepdims=True)


def test_hatmap_cross_product():
    rng = np.random.default_rng(0)
    v, x = rng.normal(size=3), rng.normal(size=3)
    assert np.allclose(hatmap(v) @ x, np.cross(v, x))
    assert np.allclose(hatmap(v[:, None]), hatmap(v))
    assert np.allclose(hatmap(v), -hatmap(v).T)


def test_rot_from_qq_matches_scipy():
    for q in random_unit_quaternions(10):
        Rot = R.from_quat(q).as_matrix()
        vec_qq = np.outer(q, q).ravel(order="F")
        assert np.allclose(ROT_FROM_QQ @ vec_qq, Rot.ravel(order="F"))


def test_quat_left_mult_orthogonal():
    for q in random_unit_quaternions(10, seed=1):
        omega = quat_left_mult(q)
        assert np.allclose(omega.T @ omega, np.eye(4))
        assert np.allclose(omega @ np.array([0.0, 0.0, 0.0, 1.0]), q)


def test_quat_left_mult_composes_rotations():
    """The convention of Omega(q) must be the one of ROT_FROM_QQ."""
    qs = random_unit_quaternions(10, seed=2)
    for q, p in zip(qs[:5], qs[5:]):
        qp = quat_left_mult(q) @ p
        R_qp = (ROT_FROM_QQ @ np.outer(qp, qp).ravel(order="F")).reshape(3, 3, order="F")
        R_q = R.from_quat(q).as_matrix()
        R_p = R.from_quat(p).as_matrix()
        assert np.allclose(R_qp, R_q @ R_p)


def test_block_diag_omega():
    q = random_unit_quaternions(1, seed=3)[0]
    D = block_diag_omega(20, q)
    assert D.shape == (20, 20)
    assert np.allclose(D.T @ D, np.eye(20))
    assert np.allclose(D[8:12, 8:12], quat_left_mult(q))
    assert np.allclose(D[:4, 4:], 0.0)

    with pytest.raises(ValueError):
        block_diag_omega(10, q)
    with pytest.raises(ValueError):
        block_diag_omega(0, q)


def test_rotation_to_quaternion():
    Rot = R.from_euler("zyx", [0.3, -0.2, 1.1]).as_matrix()
    q = rotation_to_quaternion(Rot)
    assert np.isclose(np.linalg.norm(q), 1.0)
    assert np.allclose(R.from_quat(q).as_matrix(), Rot)
    assert np.allclose(rotation_to_quaternion(np.eye(3)) ** 2, [0, 0, 0, 1])


def test_vector_kron():
    theta = np.array([1.0, -1.0, 1.0])
    e4 = np.array([0.0, 0.0, 0.0, 1.0])
    assert vector_kron(theta, e4).shape == (12,)
    assert np.allclose(vector_kron(theta, e4)[3::4], theta)
    assert np.allclose(vector_kron(theta[:, None], e4), vector_kron(theta, e4))
