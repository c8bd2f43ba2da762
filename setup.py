"""Setup configuration for dcVar package"""

from setuptools import setup, find_packages

setup(
    name="dcvar",
    version="0.1.0",
    author="dcVar Development Team",
    description="Differential correlation of gene expression conditioned on variant genotype, with Numba JIT acceleration",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["dcvar", "dcvar.*"]),
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.6.0",
        "pandas>=1.2.0",
        "h5py>=3.0.0",
        "numba>=0.50.0",
        "joblib>=1.0.0",
    ],
    extras_require={
        # PLINK .bed support
        "plink": [
            "bed-reader>=1.0.0",
        ],
        "test": [
            "pytest>=6.0",
        ],
        "all": [
            "bed-reader>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dcvar=dcvar.cli.run:main",
        ],
    },
    python_requires=">=3.7",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
