#!/usr/bin/env python3
"""Setup script for the ctrv-ukf package."""

import os

from setuptools import find_packages, setup


def _read_version():
    """Read ``__version__`` from ctrv_ukf/version.py without importing it."""
    here = os.path.dirname(os.path.abspath(__file__))
    path = os.path.join(here, "ctrv_ukf", "version.py")
    with open(path) as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError(f"no __version__ in {path}")


setup(
    name="ctrv-ukf",
    version=_read_version(),
    description=(
        "Unscented Kalman Filter fusing lidar and radar measurements "
        "under the CTRV motion model"
    ),
    license="MIT",
    python_requires=">=3.9",
    packages=find_packages(include=["ctrv_ukf", "ctrv_ukf.*"]),
    install_requires=["numpy>=1.22"],
    extras_require={"test": ["pytest>=7"]},
)
