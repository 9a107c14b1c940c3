from math import pi
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation as R


class SyntheticData:
    """Point-cloud registration data: bounded noise on inliers and outliers drawn
    away from their rotated source point."""

    def __init__(self, seed=0, scale=1.0, noise_bound=0.01) -> None:
        self.rng = np.random.default_rng(seed)
        self.scale = scale
        self.noise_bound = noise_bound

    def generate_data(self, npoints=100, outlier_ratio=0.0, euler_ang_magnitude=pi):
        """Generate synthetic data."""
        euler_angles = self.rng.uniform(-euler_ang_magnitude, euler_ang_magnitude, (3,))
        Rot = R.from_euler("zyx", euler_angles).as_matrix()

        src = self.rng.uniform(-0.5 * self.scale, 0.5 * self.scale, (3, npoints))
        dst = Rot @ src + self.add_bounded_noise(npoints)

        theta = np.ones(npoints)
        n_outliers = int(round(outlier_ratio * npoints))
        if n_outliers > 0:
            idx = self.rng.choice(npoints, n_outliers, replace=False)
            dst[:, idx] = self.rng.uniform(-self.scale, self.scale, (3, n_outliers))
            # an outlier that happens to fall within the threshold is an inlier.
            sq_res = ((dst[:, idx] - Rot @ src[:, idx]) ** 2).sum(0)
            theta[idx] = np.where(sq_res <= self.cbar2, 1.0, -1.0)

        return {"src": src, "dst": dst, "R": Rot, "theta": theta}

    def add_bounded_noise(self, n):
        """Noise uniformly distributed within the ball of radius `noise_bound`."""
        directions = self.rng.normal(size=(3, n))
        directions /= np.linalg.norm(directions, axis=0)
        radii = self.noise_bound * self.rng.uniform(0, 1, (1, n)) ** (1 / 3)
        return radii * directions

    def perturb_rotation(self, Rot, angle_deg):
        """Left-perturb a rotation by `angle_deg` degrees around a random axis."""
        axis = self.rng.normal(size=3)
        axis /= np.linalg.norm(axis)
        delta = R.from_rotvec(np.deg2rad(angle_deg) * axis)
        return (delta * R.from_matrix(Rot)).as_matrix()

    @property
    def cbar2(self):
        """Squared truncation threshold consistent with the noise bound."""
        return (3 * self.noise_bound) ** 2


def rotation_error(R_true, R_est) -> float:
    """Angle (degrees) of the relative rotation R_true^T R_est."""
    return np.rad2deg(R.from_matrix(R_true.T @ R_est).magnitude())


def plot_suboptimality(
    ax, suboptimalities: np.ndarray, x_labels: Sequence[str], threshold: float
):
    """Boxplots of log10 sub-optimality per column, with the certification threshold.

    Zero bounds (exact certificates) are clipped to 1e-16 so that they stay visible.
    """
    log_subopt = np.log10(suboptimalities.clip(min=1e-16))
    ax.boxplot(log_subopt, showfliers=False)
    # every run, as jittered points.
    rng = np.random.default_rng(0)
    for col in range(log_subopt.shape[1]):
        jitter = rng.uniform(-0.15, 0.15, log_subopt.shape[0])
        ax.scatter(col + 1 + jitter, log_subopt[:, col], color="0.7", s=4, alpha=0.6)
    ax.axhline(np.log10(threshold), color="r", linestyle="--", label="threshold")
    ax.set(xticklabels=x_labels, ylabel="log10 sub-optimality")
    ax.legend()
