import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from exp_utils import SyntheticData, plot_suboptimality, rotation_error
from rotation_cert import DRSCertifier

NREPEATS = 50
NPOINTS = 30
OUTLIER_RATIO = 0.2
NOISE_BOUND = 0.01
# rotation perturbations (degrees) applied to the ground-truth rotation.
PERTURBATIONS = [0.0, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0]


def main(dataset, certifier, perturbations, outdir):
    """Sub-optimality bound vs. distance of the candidate to the ground truth."""
    suboptimalities = np.zeros((NREPEATS, len(perturbations)))
    certified = np.zeros((NREPEATS, len(perturbations)), dtype=bool)
    r_errors = np.zeros((NREPEATS, len(perturbations)))

    for j, angle in enumerate(tqdm(perturbations)):
        for i in range(NREPEATS):
            data = dataset.generate_data(npoints=NPOINTS, outlier_ratio=OUTLIER_RATIO)
            R_est = dataset.perturb_rotation(data["R"], angle)
            result = certifier(R_est, data["src"], data["dst"], data["theta"])

            suboptimalities[i, j] = result.best_suboptimality
            certified[i, j] = result.certified
            r_errors[i, j] = rotation_error(data["R"], R_est)

    x_labels = [f"{e:.1f}" for e in r_errors.mean(0)]

    # plot results.
    fig, ax = plt.subplots(1, 2, figsize=(10, 5))
    plot_suboptimality(
        ax[0], suboptimalities, x_labels, certifier.cfg["sub_optimality"]
    )
    ax[0].set(xlabel="rot. perturbation (deg)")

    ax[1].plot(x_labels, 100 * certified.mean(0), marker="o", linewidth=2)
    ax[1].set(xlabel="rot. perturbation (deg)", ylabel="certified (%)", ylim=(-5, 105))

    for axi in ax:
        axi.grid(True, linestyle="--", linewidth=0.5, color="gray")

    # save the plots
    filepath = outdir / f"suboptimality_npoints{NPOINTS}_outl{OUTLIER_RATIO}"
    fig.savefig(filepath.with_suffix(".png"), bbox_inches="tight")
    fig.savefig(filepath.with_suffix(".pdf"), bbox_inches="tight")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    dataset = SyntheticData(seed=0, noise_bound=NOISE_BOUND)
    certifier = DRSCertifier({"cbar2": dataset.cbar2, "max_iterations": 500})

    # output folder.
    outdir = Path(__file__).parent / "results" / "suboptimality_vs_perturbation"
    outdir.mkdir(parents=True, exist_ok=True)

    # run experiment
    main(dataset, certifier, PERTURBATIONS, outdir)
