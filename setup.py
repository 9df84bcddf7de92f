#!/usr/bin/env python

"""The setup script."""

from setuptools import setup, find_packages

with open("README.rst") as readme_file:
    readme = readme_file.read()

with open("HISTORY.rst") as history_file:
    history = history_file.read()

requirements = [
    "numpy>=1.26",
    "polars>=1.0",
    "pandas>=2.0",
    "pyarrow>=14.0",
    "numba>=0.59",
    "scipy>=1.11",
    "astropy>=6.0",
    "pyyaml>=6.0",
    "typer>=0.9",
    "rich>=13.0",
]

test_requirements = [
    "pytest>=7.0",
]

setup(
    author="Harlan Heilman",
    author_email="Harlan.Heilman@wsu.edu",
    python_requires=">=3.12",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Natural Language :: English",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    description="Reduction of CCD X-ray reflectivity frames into stitched curves.",
    entry_points={
        "console_scripts": [
            "ccdrefl=ccdrefl.cli.cli:app",
        ],
    },
    install_requires=requirements,
    extras_require={"test": test_requirements},
    license="MIT license",
    long_description=readme + "\n\n" + history,
    include_package_data=True,
    keywords="ccdrefl",
    name="ccdrefl",
    package_dir={"": "python"},
    packages=find_packages(where="python", include=["ccdrefl", "ccdrefl.*"]),
    test_suite="tests",
    tests_require=test_requirements,
    url="https://github.com/WSU-Carbon-Lab/ccdrefl",
    version="0.1.0",
    zip_safe=False,
)
