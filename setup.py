from setuptools import find_packages, setup

install_requires = ["numpy", "scipy>=1.5"]

extras_require = {
    # dependencies of the scripts in experiments/.
    "experiments": ["matplotlib", "tqdm", "perfplot"],
    "test": ["pytest"],
}

setup_args = {
    "name": "rotation_cert",
    "version": "0.1.0",
    "description": "Fast global optimality certification of TLS rotation estimates.",
    "python_requires": ">=3.8",
    "packages": find_packages(exclude=["tests", "tests.*", "experiments"]),
    "install_requires": install_requires,
    "extras_require": extras_require,
}
setup(**setup_args)
