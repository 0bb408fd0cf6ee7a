import re
from setuptools import setup, find_packages

NAME = "RNAensemble"
DESCRIPTION = "Package for base pair and in loop probabilities on the " \
              "ensemble of RNA structures"

with open("RNAensemble/__init__.py") as handle:
    VERSION = re.search(r"__version__ = \"(.+)\"", handle.read()).group(1)

setup(
    name=NAME,
    version=VERSION,
    packages=find_packages(include=["RNAensemble", "RNAensemble.*"]),
    description=DESCRIPTION,
    long_description=DESCRIPTION,
    long_description_content_type="text/markdown",
    include_package_data=True,
    package_data={
        "RNAensemble": ["ensembleConfig.yaml"],
        "RNAensemble.Ensemble.tests": ["test_data/*"],
    },
    install_requires=[
        "numpy",
        "ViennaRNA",
        "biopython",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "RNAensemble = RNAensemble.executables:main"
        ]
    },
)
