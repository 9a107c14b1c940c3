from pathlib import Path

import perfplot

from exp_utils import SyntheticData
from rotation_cert import DRSCertifier

OUTLIER_RATIO = 0.2


def sample_data(n):
    data = dataset.generate_data(npoints=n, outlier_ratio=OUTLIER_RATIO)
    return data


def certify(certifier, data):
    return certifier(data["R"], data["src"], data["dst"], data["theta"])


if __name__ == "__main__":
    dataset = SyntheticData(1)
    # fixed number of iterations, so that timings are comparable across sizes.
    certifier_10 = DRSCertifier(
        {"cbar2": dataset.cbar2, "max_iterations": 10, "sub_optimality": 1e-12}
    )
    certifier_50 = DRSCertifier(
        {"cbar2": dataset.cbar2, "max_iterations": 50, "sub_optimality": 1e-12}
    )

    labels = ["DRS (10 it.)", "DRS (50 it.)"]
    n_to_test = [2**k for k in range(2, 8)]

    out = perfplot.bench(
        setup=lambda n: sample_data(n),
        kernels=[
            lambda data: certify(certifier_10, data),
            lambda data: certify(certifier_50, data),
        ],
        labels=labels,
        n_range=n_to_test,
        xlabel="#correspondences",
        equality_check=None,
        show_progress=True,
    )

    # time per certification, in ms, for each problem size.
    print("n, " + ", ".join(labels))
    for n, timings in zip(n_to_test, zip(*out.timings_s)):
        print(f"{n}, " + ", ".join(f"{1e3 * t:.2f}" for t in timings))

    out_dir = Path(__file__).parent / "results" / "runtimes"
    out_dir.mkdir(parents=True, exist_ok=True)
    for logy, suffix in ((False, ""), (True, "_log")):
        out.save(str(out_dir / f"runtimes{suffix}.png"), bbox_inches="tight", logy=logy)
